"""Host clock constants for converting /proc tick counts.

Both values are read once at startup and passed around explicitly.
"""

import os
from dataclasses import dataclass

import psutil


@dataclass(frozen=True, slots=True)
class HostClock:
    """Boot epoch and kernel clock tick rate."""

    boot_epoch: int  # Unix timestamp of system boot
    clock_ticks: int  # USER_HZ, ticks per second (usually 100)


def get_boot_time() -> int:
    """Return system boot time as Unix timestamp.

    psutil reads the ``btime`` line of /proc/stat on Linux.
    """
    return int(psutil.boot_time())


def get_clock_ticks() -> int:
    """Return clock ticks per second (``getconf CLK_TCK``).

    Raises:
        RuntimeError: If the rate cannot be determined.
    """
    try:
        ticks = os.sysconf("SC_CLK_TCK")
    except (ValueError, OSError) as e:
        raise RuntimeError("Could not determine clock ticks per second") from e
    if ticks <= 0:
        raise RuntimeError("Could not determine clock ticks per second")
    return ticks


def get_host_clock() -> HostClock:
    """Resolve both clock constants."""
    return HostClock(boot_epoch=get_boot_time(), clock_ticks=get_clock_ticks())
