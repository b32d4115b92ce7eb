"""Tests for /proc record parsing."""

from pathlib import Path
from unittest.mock import patch

from tests.conftest import BOOT_EPOCH, FakeProc, stat_line, status_text

from proc_compare.boottime import HostClock
from proc_compare.procfs import (
    ProcessRecord,
    ProcessVanished,
    StatFields,
    StatusFields,
    build_record,
    parse_stat_line,
    parse_status,
    read_process,
    resolve_user,
    start_epoch,
)


class TestParseStatLine:
    """Tests for parse_stat_line."""

    def test_command_with_spaces_and_parens(self):
        """Command spans from the first '(' to the last ')'."""
        line = stat_line(42, "a (b) c", state="R", utime=7, stime=3, nice=5, start_ticks=900)

        stat = parse_stat_line(line)

        assert stat.pid == 42
        assert stat.command == "a (b) c"
        assert stat.state == "R"
        assert stat.utime == 7
        assert stat.stime == 3
        assert stat.nice == 5
        assert stat.start_ticks == 900

    def test_closing_paren_inside_command(self):
        """A ')' inside the command does not shift the positional fields."""
        stat = parse_stat_line(stat_line(9, "x) S 1 2 (y", utime=11, stime=22))

        assert stat.command == "x) S 1 2 (y"
        assert stat.state == "S"
        assert stat.utime == 11
        assert stat.stime == 22

    def test_negative_nice(self):
        """Negative nice values parse as ints."""
        stat = parse_stat_line(stat_line(1, "kworker", nice=-20))
        assert stat.nice == -20

    def test_truncated_line_reads_zero(self):
        """Fields past the end of a short line default to 0."""
        stat = parse_stat_line("7 (short) S 1 2\n")

        assert stat.command == "short"
        assert stat.state == "S"
        assert stat.utime == 0
        assert stat.stime == 0
        assert stat.nice == 0
        assert stat.start_ticks == 0

    def test_malformed_numbers_read_zero(self):
        """Non-numeric fields default to 0 instead of failing the record."""
        line = stat_line(3, "bad").replace(" 20 0 1 0 ", " 20 zz 1 0 ")
        stat = parse_stat_line(line)
        assert stat.nice == 0

    def test_no_parens_returns_none(self):
        """A line without a parenthesised command is unparseable."""
        assert parse_stat_line("") is None
        assert parse_stat_line("123 garbage S 1") is None


class TestParseStatus:
    """Tests for parse_status."""

    def test_reads_rss_state_and_real_uid(self):
        """VmRSS, State and the real uid are extracted."""
        text = status_text("worker", state="D", uid=1001, rss_kb=5120)
        text = text.replace("Uid:\t1001\t1001", "Uid:\t1001\t0")

        status = parse_status(text)

        assert status == StatusFields(memory_kb=5120, state="D", uid=1001)

    def test_missing_vmrss_reads_zero(self):
        """Kernel threads have no VmRSS line."""
        status = parse_status(status_text("kthreadd", uid=0, rss_kb=None))
        assert status.memory_kb == 0
        assert status.uid == 0

    def test_empty_status(self):
        """An empty status file yields all-zero fields."""
        assert parse_status("") == StatusFields(memory_kb=0, state="", uid=0)


class TestResolveUser:
    """Tests for resolve_user."""

    def test_known_uid(self):
        """uid 0 resolves to root."""
        assert resolve_user(0) == "root"

    def test_unknown_uid_falls_back_to_number(self):
        """An unknown uid is returned as text."""
        with patch("proc_compare.procfs.pwd.getpwuid", side_effect=KeyError(4242)):
            assert resolve_user(4242) == "4242"


class TestStartTime:
    """Tests for start tick conversion."""

    def test_start_epoch_rounds_to_nearest_second(self, clock: HostClock):
        """Ticks are divided by the clock rate and added to boot time."""
        assert start_epoch(0, clock) == BOOT_EPOCH
        assert start_epoch(1234, clock) == BOOT_EPOCH + 12
        assert start_epoch(1260, clock) == BOOT_EPOCH + 13

    def test_other_tick_rate(self):
        """A 250 Hz clock scales accordingly."""
        clock = HostClock(boot_epoch=1000, clock_ticks=250)
        assert start_epoch(2500, clock) == 1010


class TestBuildRecord:
    """Tests for build_record."""

    def test_combines_stat_and_status(self, clock: HostClock):
        """CPU is utime + stime; state prefers the status file."""
        stat = StatFields(pid=5, command="db", state="R", utime=40, stime=2, nice=1,
                          start_ticks=100)
        status = StatusFields(memory_kb=2048, state="S", uid=0)

        record = build_record(stat, status, clock)

        assert record.pid == 5
        assert record.cpu_ticks == 42
        assert record.memory_kb == 2048
        assert record.state == "S"
        assert record.start_epoch == BOOT_EPOCH + 1
        assert record.user == "root"

    def test_state_falls_back_to_stat(self, clock: HostClock):
        """Without a State line, the stat state is used."""
        stat = StatFields(pid=5, command="db", state="Z", utime=0, stime=0, nice=0,
                          start_ticks=0)
        record = build_record(stat, StatusFields(memory_kb=0, state="", uid=0), clock)
        assert record.state == "Z"


class TestReadProcess:
    """Tests for read_process against a fake /proc tree."""

    def test_reads_record(self, fake_proc: FakeProc, clock: HostClock):
        """A complete entry parses into a ProcessRecord."""
        fake_proc.add(321, "my app", rss_kb=4096, utime=30, stime=12, nice=-5,
                      start_ticks=500, uid=0)

        record = read_process(321, clock, fake_proc.root)

        assert isinstance(record, ProcessRecord)
        assert record.pid == 321
        assert record.command == "my app"
        assert record.memory_kb == 4096
        assert record.cpu_ticks == 42
        assert record.nice == -5
        assert record.start_epoch == BOOT_EPOCH + 5
        assert record.uid == 0
        assert record.summary() == "my app (321)"

    def test_missing_entry_is_vanished(self, fake_proc: FakeProc, clock: HostClock):
        """A pid without a /proc directory is a vanished process, not an error."""
        result = read_process(999, clock, fake_proc.root)
        assert result == ProcessVanished(pid=999, reason="gone")

    def test_missing_status_is_vanished(self, fake_proc: FakeProc, clock: HostClock):
        """Losing the status file mid-read is also a vanish."""
        proc_dir = fake_proc.add(10)
        (proc_dir / "status").unlink()

        result = read_process(10, clock, fake_proc.root)
        assert isinstance(result, ProcessVanished)

    def test_permission_denied_is_vanished(self, fake_proc: FakeProc, clock: HostClock):
        """An unreadable entry is skipped."""
        fake_proc.add(11)
        with patch.object(Path, "read_text", side_effect=PermissionError("denied")):
            result = read_process(11, clock, fake_proc.root)
        assert result == ProcessVanished(pid=11, reason="permission denied")

    def test_empty_stat_is_vanished(self, fake_proc: FakeProc, clock: HostClock):
        """An empty stat file (process exiting) is skipped."""
        proc_dir = fake_proc.add(12)
        (proc_dir / "stat").write_text("")

        result = read_process(12, clock, fake_proc.root)
        assert result == ProcessVanished(pid=12, reason="empty stat")

    def test_to_dict_keys(self, fake_proc: FakeProc, clock: HostClock):
        """Serialized records use the report field names."""
        fake_proc.add(13, uid=0)
        data = read_process(13, clock, fake_proc.root).to_dict()
        assert list(data) == [
            "pid", "command", "memory_kB", "cpu_ticks", "state", "nice",
            "start_epoch", "start_time", "uid", "user",
        ]

    def test_invalid_utf8_command(self, fake_proc: FakeProc, clock: HostClock):
        """Non-UTF-8 bytes in comm are replaced instead of failing the read."""
        proc_dir = fake_proc.add(14)
        raw_stat = stat_line(14, "badname", utime=9).encode()
        (proc_dir / "stat").write_bytes(raw_stat.replace(b"badname", b"bad\xff\xfename"))
        (proc_dir / "status").write_bytes(b"Name:\tbad\xff\xfename\nState:\tS\nVmRSS:\t 700 kB\n")

        record = read_process(14, clock, fake_proc.root)

        assert isinstance(record, ProcessRecord)
        assert record.command == "bad\ufffd\ufffdname"
        assert record.cpu_ticks == 9
        assert record.memory_kb == 700
