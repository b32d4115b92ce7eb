"""Process collector: enumerate /proc, parse, filter."""

import asyncio
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import psutil
import structlog

from proc_compare.boottime import HostClock
from proc_compare.config import FilterConfig
from proc_compare.errors import ConfigurationError, InsufficientData
from proc_compare.procfs import PROC_ROOT, ProcessRecord, ProcessVanished, read_process

log = structlog.get_logger()

MIN_PAIR_SIZE = 2

# Sort keys, by the field names accepted on the command line
SORT_KEYS: dict[str, Callable[[ProcessRecord], object]] = {
    "pid": lambda r: r.pid,
    "cmd": lambda r: r.command,
    "mem": lambda r: r.memory_kb,
    "cpu": lambda r: r.cpu_ticks,
    "state": lambda r: r.state,
    "nice": lambda r: r.nice,
    "start": lambda r: r.start_epoch,
    "user": lambda r: r.user,
}


@dataclass(frozen=True, slots=True)
class FilterCriteria:
    """Active filter predicates for one scan.

    Empty command/owner and a None max_memory disable that predicate.
    """

    min_memory: int = 0
    max_memory: int | None = None
    min_cpu: int = 0
    command: str = ""
    owner: str = ""

    @classmethod
    def from_config(cls, config: FilterConfig) -> "FilterCriteria":
        """Build criteria from the [filters] config section."""
        return cls(
            min_memory=config.min_memory,
            max_memory=config.max_memory,
            min_cpu=config.min_cpu,
            command=config.command,
            owner=config.owner,
        )

    def matches(self, record: ProcessRecord) -> bool:
        """Return True if the record satisfies every active predicate."""
        if record.memory_kb < self.min_memory:
            return False
        if self.max_memory is not None and record.memory_kb > self.max_memory:
            return False
        if record.cpu_ticks < self.min_cpu:
            return False
        if self.command and self.command not in record.command:
            return False
        if self.owner:
            if self.owner.isascii() and self.owner.isdigit():
                return record.uid == int(self.owner)
            return record.user.lower() == self.owner.lower()
        return True


@dataclass
class MatchSet:
    """Records that passed the filters in one scan, in enumeration order."""

    records: list[ProcessRecord]
    scanned: int = 0  # PIDs enumerated
    vanished: int = 0  # PIDs that disappeared before they could be read
    elapsed_ms: int = 0
    timestamp: datetime = field(default_factory=datetime.now)

    def __len__(self) -> int:
        return len(self.records)

    def sorted(self, sort_field: str = "pid", order: str = "asc") -> "MatchSet":
        """Return a copy with records sorted by sort_field."""
        return MatchSet(
            records=sort_records(self.records, sort_field, order),
            scanned=self.scanned,
            vanished=self.vanished,
            elapsed_ms=self.elapsed_ms,
            timestamp=self.timestamp,
        )


@dataclass(frozen=True, slots=True)
class SummaryStats:
    """Count and averages over a set of records."""

    total: int
    average_memory_kb: float
    average_cpu_ticks: float

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        return {
            "total_matching_processes": self.total,
            "average_memory_kB": round(self.average_memory_kb, 2),
            "average_cpu_ticks": round(self.average_cpu_ticks, 2),
        }


def sort_records(
    records: Iterable[ProcessRecord], sort_field: str = "pid", order: str = "asc"
) -> list[ProcessRecord]:
    """Stable sort by one of SORT_KEYS.

    Raises:
        ConfigurationError: If sort_field or order is unknown.
    """
    if sort_field not in SORT_KEYS:
        raise ConfigurationError(
            f"Invalid sort field: {sort_field!r}. Must be one of {list(SORT_KEYS)}"
        )
    if order not in ("asc", "desc"):
        raise ConfigurationError(f"Invalid sort order: {order!r}. Must be 'asc' or 'desc'")
    return sorted(records, key=SORT_KEYS[sort_field], reverse=order == "desc")


def summarize(records: list[ProcessRecord]) -> SummaryStats:
    """Compute count and average memory/CPU."""
    total = len(records)
    if total == 0:
        return SummaryStats(total=0, average_memory_kb=0.0, average_cpu_ticks=0.0)
    return SummaryStats(
        total=total,
        average_memory_kb=sum(r.memory_kb for r in records) / total,
        average_cpu_ticks=sum(r.cpu_ticks for r in records) / total,
    )


class ProcfsCollector:
    """Collects process records from /proc and applies FilterCriteria.

    Parsing of each PID is independent. With parallel=True, it runs on a
    thread pool. Executor.map keeps results in PID enumeration order, so
    pairing stays deterministic either way.
    """

    def __init__(
        self,
        criteria: FilterCriteria,
        clock: HostClock,
        *,
        parallel: bool = False,
        max_workers: int | None = None,
        proc_root: Path = PROC_ROOT,
        pid_source: Callable[[], list[int]] | None = None,
    ):
        self.criteria = criteria
        self.clock = clock
        self.parallel = parallel
        self.max_workers = max_workers
        self.proc_root = proc_root
        self._pid_source = pid_source or psutil.pids

    def _read(self, pid: int):
        return read_process(pid, self.clock, self.proc_root)

    def scan(self) -> tuple[list[ProcessRecord], int, int]:
        """Parse every visible PID.

        Returns:
            (records, scanned, vanished)
        """
        pids = list(self._pid_source())

        if self.parallel and len(pids) > 1:
            with ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="ProcfsCollector"
            ) as executor:
                results = list(executor.map(self._read, pids))
        else:
            results = [self._read(pid) for pid in pids]

        records = [r for r in results if not isinstance(r, ProcessVanished)]
        return records, len(pids), len(results) - len(records)

    def collect_sync(self) -> MatchSet:
        """Scan, filter and return the match set.

        Raises:
            InsufficientData: If fewer than two records pass the filters.
        """
        start = time.monotonic()
        records, scanned, vanished = self.scan()
        matched = [r for r in records if self.criteria.matches(r)]
        elapsed_ms = int((time.monotonic() - start) * 1000)

        log.debug(
            "scan_completed",
            scanned=scanned,
            vanished=vanished,
            matched=len(matched),
            elapsed_ms=elapsed_ms,
            parallel=self.parallel,
        )

        if len(matched) < MIN_PAIR_SIZE:
            raise InsufficientData(len(matched))

        return MatchSet(
            records=matched,
            scanned=scanned,
            vanished=vanished,
            elapsed_ms=elapsed_ms,
        )

    async def collect(self) -> MatchSet:
        """Run collection in executor (/proc reads are blocking)."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.collect_sync)
