"""Linux /proc record parsing.

Turns /proc/<pid>/stat and /proc/<pid>/status into a ProcessRecord.

The stat line is positional: ``pid (comm) state ppid ...``. The comm field
may itself contain spaces and parentheses, so it is taken as everything
between the first '(' and the last ')'. The remaining fields are read at
fixed offsets (see proc(5)), counted from the field right after comm:

    0   state       (field 3)
    11  utime       (field 14)
    12  stime       (field 15)
    16  nice        (field 19)
    19  starttime   (field 22)

Missing or malformed fields read as zero so that records survive kernel
field-count drift.

A process that exits between enumeration and read yields ProcessVanished.
That is a normal outcome, returned rather than raised.
"""

import pwd
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import structlog

from proc_compare.boottime import HostClock

log = structlog.get_logger()

PROC_ROOT = Path("/proc")

STATE_OFFSET = 0
UTIME_OFFSET = 11
STIME_OFFSET = 12
NICE_OFFSET = 16
STARTTIME_OFFSET = 19

START_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True, slots=True)
class ProcessRecord:
    """Immutable snapshot of one process at scan time."""

    pid: int
    command: str
    memory_kb: int  # VmRSS
    cpu_ticks: int  # utime + stime
    state: str  # R, S, D, Z, T, I ...
    nice: int
    start_epoch: int
    start_formatted: str
    uid: int
    user: str

    def summary(self) -> str:
        """Short human-readable identity."""
        return f"{self.command} ({self.pid})"

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        return {
            "pid": self.pid,
            "command": self.command,
            "memory_kB": self.memory_kb,
            "cpu_ticks": self.cpu_ticks,
            "state": self.state,
            "nice": self.nice,
            "start_epoch": self.start_epoch,
            "start_time": self.start_formatted,
            "uid": self.uid,
            "user": self.user,
        }


@dataclass(frozen=True, slots=True)
class ProcessVanished:
    """The process's /proc entry went away (or became unreadable) mid-scan."""

    pid: int
    reason: str


ParseResult = ProcessRecord | ProcessVanished


@dataclass(frozen=True, slots=True)
class StatFields:
    """Fields extracted from a /proc/<pid>/stat line."""

    pid: int
    command: str
    state: str
    utime: int
    stime: int
    nice: int
    start_ticks: int


@dataclass(frozen=True, slots=True)
class StatusFields:
    """Fields extracted from /proc/<pid>/status."""

    memory_kb: int
    state: str
    uid: int


def _int_at(fields: list[str], offset: int) -> int:
    """Return fields[offset] as int, or 0 if missing or malformed."""
    try:
        return int(fields[offset])
    except (IndexError, ValueError):
        return 0


def parse_stat_line(line: str) -> StatFields | None:
    """Parse a /proc/<pid>/stat line.

    Returns None if the line has no parenthesised command at all.
    """
    open_paren = line.find("(")
    close_paren = line.rfind(")")
    if open_paren < 0 or close_paren < open_paren:
        return None

    try:
        pid = int(line[:open_paren].strip())
    except ValueError:
        pid = 0

    command = line[open_paren + 1 : close_paren]
    rest = line[close_paren + 1 :].split()

    return StatFields(
        pid=pid,
        command=command,
        state=rest[STATE_OFFSET] if len(rest) > STATE_OFFSET else "",
        utime=_int_at(rest, UTIME_OFFSET),
        stime=_int_at(rest, STIME_OFFSET),
        nice=_int_at(rest, NICE_OFFSET),
        start_ticks=_int_at(rest, STARTTIME_OFFSET),
    )


def parse_status(text: str) -> StatusFields:
    """Parse the VmRSS, State and Uid lines of /proc/<pid>/status.

    Kernel threads have no VmRSS line, so memory reads as 0.
    """
    memory_kb = 0
    state = ""
    uid = 0

    for line in text.splitlines():
        key, _, value = line.partition(":")
        parts = value.split()
        if not parts:
            continue
        if key == "VmRSS":
            memory_kb = _int_at(parts, 0)
        elif key == "State":
            state = parts[0]
        elif key == "Uid":
            uid = _int_at(parts, 0)  # real uid

    return StatusFields(memory_kb=memory_kb, state=state, uid=uid)


def resolve_user(uid: int) -> str:
    """Map a uid to a username, falling back to the uid as text."""
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return str(uid)


def start_epoch(start_ticks: int, clock: HostClock) -> int:
    """Convert a starttime tick offset to an absolute Unix timestamp."""
    return round(clock.boot_epoch + start_ticks / clock.clock_ticks)


def format_start(epoch: int) -> str:
    """Render a start epoch in local time."""
    return datetime.fromtimestamp(epoch).strftime(START_TIME_FORMAT)


def build_record(
    stat: StatFields,
    status: StatusFields,
    clock: HostClock,
    pid: int | None = None,
) -> ProcessRecord:
    """Combine parsed stat and status fields into a ProcessRecord."""
    epoch = start_epoch(stat.start_ticks, clock)
    return ProcessRecord(
        pid=stat.pid or pid or 0,
        command=stat.command,
        memory_kb=status.memory_kb,
        cpu_ticks=stat.utime + stat.stime,
        state=status.state or stat.state,
        nice=stat.nice,
        start_epoch=epoch,
        start_formatted=format_start(epoch),
        uid=status.uid,
        user=resolve_user(status.uid),
    )


def read_process(pid: int, clock: HostClock, proc_root: Path = PROC_ROOT) -> ParseResult:
    """Read and parse one process.

    Returns ProcessVanished if its /proc entry disappears or cannot be read.
    """
    proc_dir = proc_root / str(pid)
    try:
        stat_line = (proc_dir / "stat").read_text(errors="replace")
        status_text = (proc_dir / "status").read_text(errors="replace")
    except (FileNotFoundError, ProcessLookupError) as e:
        log.debug("process_vanished", pid=pid, error=str(e))
        return ProcessVanished(pid=pid, reason="gone")
    except PermissionError as e:
        log.debug("process_unreadable", pid=pid, error=str(e))
        return ProcessVanished(pid=pid, reason="permission denied")

    stat = parse_stat_line(stat_line)
    if stat is None:
        log.debug("process_stat_unparseable", pid=pid)
        return ProcessVanished(pid=pid, reason="empty stat")

    return build_record(stat, parse_status(status_text), clock, pid=pid)
