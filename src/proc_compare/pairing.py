"""Best-pair search over a match set.

The score of a pair is

    |memory_kb_a - memory_kb_b| + |cpu_ticks_a - cpu_ticks_b|

Kilobytes and ticks are added as-is, with no unit normalization.

The search is an exhaustive O(N^2) walk over every (i, j), i < j, in list
order. Only a strictly smaller score replaces the current best, so on a
tie the first pair encountered wins. Callers that sort the records first
get reproducible results.
"""

from dataclasses import dataclass
from typing import NamedTuple

from proc_compare.collector import MIN_PAIR_SIZE
from proc_compare.errors import InsufficientData, InvalidSelection
from proc_compare.procfs import ProcessRecord


class PairIdentity(NamedTuple):
    """Comparable identity of a best pair, used for change detection."""

    pid1: int
    command1: str
    pid2: int
    command2: str
    score: int


@dataclass(frozen=True, slots=True)
class BestPair:
    """The chosen pair and its combined difference score."""

    score: int
    first: ProcessRecord
    second: ProcessRecord
    manual: bool = False  # Chosen by the caller rather than by search

    @property
    def identity(self) -> PairIdentity:
        return PairIdentity(
            self.first.pid,
            self.first.command,
            self.second.pid,
            self.second.command,
            self.score,
        )

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        return {
            "combined_difference": self.score,
            "manual": self.manual,
            "process1": self.first.to_dict(),
            "process2": self.second.to_dict(),
        }


def pair_score(a: ProcessRecord, b: ProcessRecord) -> int:
    """Combined memory + CPU difference between two records."""
    return abs(a.memory_kb - b.memory_kb) + abs(a.cpu_ticks - b.cpu_ticks)


def find_best_pair(records: list[ProcessRecord]) -> BestPair:
    """Return the pair with minimal combined difference.

    Raises:
        InsufficientData: If there are fewer than two records.
    """
    n = len(records)
    if n < MIN_PAIR_SIZE:
        raise InsufficientData(n)

    best_score: int | None = None
    best_i = best_j = 0
    for i in range(n):
        a = records[i]
        for j in range(i + 1, n):
            score = pair_score(a, records[j])
            if best_score is None or score < best_score:
                best_score = score
                best_i, best_j = i, j

    return BestPair(score=best_score, first=records[best_i], second=records[best_j])


def select_pair(records: list[ProcessRecord], first: int, second: int) -> BestPair:
    """Return the caller-chosen pair by index, skipping the search.

    Raises:
        InvalidSelection: If either index is out of range or both are equal.
    """
    n = len(records)
    for index in (first, second):
        if not 0 <= index < n:
            raise InvalidSelection(f"Index {index} out of range (0-{n - 1})")
    if first == second:
        raise InvalidSelection("The two selected indices must differ")

    a, b = records[first], records[second]
    return BestPair(score=pair_score(a, b), first=a, second=b, manual=True)


def pinned_selector(pid1: int, pid2: int):
    """Build a selector that re-applies a manual choice by PID.

    Returns None (automatic fallback) when either PID is no longer in the
    match set.
    """

    def select(match_set) -> BestPair | None:
        positions = {r.pid: i for i, r in enumerate(match_set.records)}
        if pid1 not in positions or pid2 not in positions:
            return None
        return select_pair(match_set.records, positions[pid1], positions[pid2])

    return select
