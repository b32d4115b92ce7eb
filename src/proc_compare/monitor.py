"""Monitoring loop for proc-compare."""

import asyncio
import signal
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import structlog

from proc_compare import logging as console
from proc_compare.boottime import HostClock, get_host_clock
from proc_compare.collector import FilterCriteria, MatchSet, ProcfsCollector, sort_records
from proc_compare.config import Config
from proc_compare.errors import ConfigurationError, InsufficientData, InvalidSelection
from proc_compare.notifications import AlertEvent, Notifier
from proc_compare.pairing import BestPair, PairIdentity, find_best_pair

log = structlog.get_logger()

# Returns an override pair, or None to fall back to the automatic search
PairSelector = Callable[[MatchSet], BestPair | None]


class LoopState(Enum):
    """Monitor loop states."""

    IDLE = "idle"
    SCANNING = "scanning"
    COMPARING = "comparing"
    ALERT_PENDING = "alert_pending"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


@dataclass
class CycleResult:
    """Outcome of one monitor cycle."""

    cycle: int
    match_set: MatchSet | None
    best_pair: BestPair | None
    alert: AlertEvent | None = None
    error: str | None = None
    failed: bool = False


class MonitorLoop:
    """Repeats scan + pairing on an interval and alerts on best-pair change.

    previous_identity is the only state carried between cycles. It may be
    seeded by the caller. Cycles run strictly one after another.
    """

    def __init__(
        self,
        collector: ProcfsCollector,
        *,
        interval: float,
        sort_field: str = "pid",
        sort_order: str = "asc",
        notifier: Notifier | None = None,
        on_cycle: Callable[[CycleResult], None] | None = None,
        selector: PairSelector | None = None,
        previous_identity: PairIdentity | None = None,
    ):
        if interval <= 0:
            raise ConfigurationError(f"Monitor interval must be > 0, got {interval}")
        sort_records([], sort_field, sort_order)  # validates field and order

        self.collector = collector
        self.interval = interval
        self.sort_field = sort_field
        self.sort_order = sort_order
        self.notifier = notifier
        self.on_cycle = on_cycle
        self.selector = selector
        self.previous_identity = previous_identity

        self.state = LoopState.IDLE
        self.cycle_count = 0
        self.alert_count = 0
        self._stop_event = asyncio.Event()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def stop(self, reason: str = "requested") -> None:
        """Request shutdown. Aborts a pending sleep immediately."""
        log.info("monitor_stop_requested", reason=reason)
        self._stop_event.set()

    def _choose_pair(self, match_set: MatchSet) -> BestPair:
        if self.selector is not None:
            try:
                pair = self.selector(match_set)
            except InvalidSelection as e:
                log.warning("selection_invalid", error=str(e))
                pair = None
            if pair is not None:
                return pair
            log.debug("selection_fallback", cycle=self.cycle_count)
        return find_best_pair(match_set.records)

    async def run_cycle(self) -> CycleResult:
        """Run a single scan/compare cycle."""
        self.cycle_count += 1
        cycle = self.cycle_count

        self.state = LoopState.SCANNING
        try:
            match_set = await self.collector.collect()
        except InsufficientData as e:
            log.info("insufficient_data", cycle=cycle, matched=e.count)
            result = CycleResult(cycle=cycle, match_set=None, best_pair=None, error=str(e))
            self._emit(result)
            return result

        match_set = match_set.sorted(self.sort_field, self.sort_order)

        self.state = LoopState.COMPARING
        best = self._choose_pair(match_set)
        identity = best.identity

        alert = None
        if self.previous_identity is not None and identity != self.previous_identity:
            self.state = LoopState.ALERT_PENDING
            alert = AlertEvent(
                score=best.score,
                process1=best.first.summary(),
                process2=best.second.summary(),
            )
            self.alert_count += 1
            log.info(
                "best_pair_changed",
                cycle=cycle,
                score=best.score,
                process1=alert.process1,
                process2=alert.process2,
            )
            if self.notifier is not None:
                # notify-send may block up to its timeout
                await asyncio.to_thread(self.notifier.best_pair_changed, alert)

        self.previous_identity = identity

        result = CycleResult(cycle=cycle, match_set=match_set, best_pair=best, alert=alert)
        self._emit(result)
        return result

    def _emit(self, result: CycleResult) -> None:
        if self.on_cycle is not None:
            self.on_cycle(result)

    async def run(self, max_cycles: int | None = None) -> None:
        """Run cycles until stop() is called, the task is cancelled, or max_cycles is hit.

        The stop event is checked at the top of every cycle and while
        sleeping. A scan that is already running is allowed to finish.
        """
        log.info(
            "monitor_started",
            interval=self.interval,
            sort=f"{self.sort_field}/{self.sort_order}",
        )

        try:
            while not self._stop_event.is_set():
                try:
                    await self.run_cycle()
                except ConfigurationError:
                    raise
                except Exception as e:
                    log.error("cycle_failed", cycle=self.cycle_count, error=str(e))
                    self._emit(CycleResult(
                        cycle=self.cycle_count, match_set=None, best_pair=None,
                        error=str(e), failed=True,
                    ))

                if max_cycles is not None and self.cycle_count >= max_cycles:
                    break

                self.state = LoopState.SLEEPING
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
                    break  # Stop requested during sleep
                except asyncio.TimeoutError:
                    pass  # Normal timeout, next cycle
        except asyncio.CancelledError:
            log.info("monitor_cancelled")
        finally:
            self.state = LoopState.STOPPED
            log.info("monitor_stopped", cycles=self.cycle_count, alerts=self.alert_count)


def build_collector(config: Config, clock: HostClock) -> ProcfsCollector:
    """Create a collector from the [filters] and [system] config sections."""
    return ProcfsCollector(
        FilterCriteria.from_config(config.filters),
        clock,
        parallel=config.system.parallel,
        max_workers=config.system.max_workers,
    )


async def run_monitor(
    config: Config,
    *,
    clock: HostClock | None = None,
    collector: ProcfsCollector | None = None,
    on_cycle: Callable[[CycleResult], None] | None = None,
    selector: PairSelector | None = None,
    max_cycles: int | None = None,
) -> MonitorLoop:
    """Run the monitor until SIGINT/SIGTERM.

    Raises:
        ConfigurationError: Before the first scan, if config is invalid.
    """
    config.validate()
    if collector is None:
        collector = build_collector(config, clock or get_host_clock())

    monitor = MonitorLoop(
        collector,
        interval=config.monitor.interval,
        sort_field=config.sorting.field,
        sort_order=config.sorting.order,
        notifier=Notifier(enabled=config.monitor.alerts),
        on_cycle=on_cycle,
        selector=selector,
    )

    def on_signal(sig: signal.Signals) -> None:
        console.signal_received(sig.name)
        monitor.stop(sig.name)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, on_signal, sig)

    try:
        await monitor.run(max_cycles=max_cycles)
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)

    return monitor
