"""Shared test fixtures for proc-compare."""

from pathlib import Path

import pytest

from proc_compare.boottime import HostClock
from proc_compare.procfs import ProcessRecord, format_start

BOOT_EPOCH = 1_700_000_000
CLOCK_TICKS = 100


@pytest.fixture
def clock() -> HostClock:
    """Fixed host clock: booted at BOOT_EPOCH, 100 ticks per second."""
    return HostClock(boot_epoch=BOOT_EPOCH, clock_ticks=CLOCK_TICKS)


def make_record(
    pid: int = 100,
    command: str = "worker",
    memory_kb: int = 1000,
    cpu_ticks: int = 50,
    state: str = "S",
    nice: int = 0,
    start_epoch: int = BOOT_EPOCH,
    uid: int = 1000,
    user: str = "alice",
) -> ProcessRecord:
    """Create a ProcessRecord for testing with sensible defaults."""
    return ProcessRecord(
        pid=pid,
        command=command,
        memory_kb=memory_kb,
        cpu_ticks=cpu_ticks,
        state=state,
        nice=nice,
        start_epoch=start_epoch,
        start_formatted=format_start(start_epoch),
        uid=uid,
        user=user,
    )


def stat_line(
    pid: int,
    command: str,
    state: str = "S",
    utime: int = 0,
    stime: int = 0,
    nice: int = 0,
    start_ticks: int = 0,
) -> str:
    """Build a /proc/<pid>/stat line with the given fields at their kernel offsets."""
    return (
        f"{pid} ({command}) {state} 1 {pid} {pid} 0 -1 4194560 100 0 0 0 "
        f"{utime} {stime} 0 0 20 {nice} 1 0 {start_ticks} 1048576 250 "
        f"18446744073709551615\n"
    )


def status_text(
    command: str,
    state: str = "S",
    uid: int = 1000,
    rss_kb: int | None = 1000,
) -> str:
    """Build /proc/<pid>/status content. rss_kb=None omits VmRSS (kernel thread)."""
    lines = [
        f"Name:\t{command}",
        "Umask:\t0022",
        f"State:\t{state} (sleeping)",
        f"Uid:\t{uid}\t{uid}\t{uid}\t{uid}",
        f"Gid:\t{uid}\t{uid}\t{uid}\t{uid}",
    ]
    if rss_kb is not None:
        lines.append(f"VmRSS:\t{rss_kb:>8} kB")
    lines.append("Threads:\t1")
    return "\n".join(lines) + "\n"


class FakeProc:
    """A /proc tree under tmp_path, plus a pid source for ProcfsCollector."""

    def __init__(self, root: Path):
        self.root = root
        self._pids: list[int] = []

    def add(
        self,
        pid: int,
        command: str = "worker",
        *,
        rss_kb: int | None = 1000,
        utime: int = 0,
        stime: int = 0,
        nice: int = 0,
        start_ticks: int = 0,
        uid: int = 1000,
        state: str = "S",
    ) -> Path:
        """Write stat and status files for one process."""
        proc_dir = self.root / str(pid)
        proc_dir.mkdir(parents=True)
        (proc_dir / "stat").write_text(
            stat_line(pid, command, state, utime, stime, nice, start_ticks)
        )
        (proc_dir / "status").write_text(status_text(command, state, uid, rss_kb))
        self._pids.append(pid)
        return proc_dir

    def add_ghost(self, pid: int) -> None:
        """Enumerate a pid that has no /proc entry (exited mid-scan)."""
        self._pids.append(pid)

    def pids(self) -> list[int]:
        return list(self._pids)


@pytest.fixture
def fake_proc(tmp_path: Path) -> FakeProc:
    """Empty fake /proc tree."""
    return FakeProc(tmp_path / "proc")
