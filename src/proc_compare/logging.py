"""Centralized console logging with Rich formatting.

This module provides:
1. Icon vocabulary (Icon class namespace)
2. Core log functions (log, info, warn, error)
3. Domain-specific helpers (monitor_started, alert_sent, etc.)
4. Structlog configuration (configure)

Console status lines use Rich markup and go to stderr so they never mix
with report output on stdout. Structured events go through structlog:
human-readable on stderr (warnings, or everything with --verbose), and
optionally JSON Lines in a log file.
"""

from __future__ import annotations

import logging
import logging.handlers
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from rich.console import Console
from rich.markup import escape

if TYPE_CHECKING:
    from proc_compare.config import Config

_console = Console(stderr=True, highlight=False)


# ─────────────────────────────────────────────────────────────────────────────
# Icons
# ─────────────────────────────────────────────────────────────────────────────


class Icon:
    """Icon vocabulary for console output."""

    OK = "[bold green]✓[/]"
    FAIL = "[bold red]✗[/]"
    ALERT = "[bright_yellow]⚑[/]"
    SIGNAL = "⚡"


_LEVEL_STYLES = {
    "info": "[bright_blue]\\[info][/]",
    "warn": "[yellow]\\[warn][/]",
    "error": "[bold red]\\[err][/] ",
}


# ─────────────────────────────────────────────────────────────────────────────
# Core Functions
# ─────────────────────────────────────────────────────────────────────────────


def log(level: str, msg: str, icon: str = "") -> None:
    """Print a log message with timestamp and level.

    Args:
        level: Log level (info, warn, error)
        msg: Message to print (can include Rich markup)
        icon: Optional icon to show after level (e.g., Icon.OK)
    """
    ts = datetime.now().strftime("%H:%M:%S")
    lvl = _LEVEL_STYLES.get(level, f"[{level}]")
    icon_part = f" {icon}" if icon else ""
    _console.print(f"[dim]{ts}[/] {lvl}{icon_part} {msg}")


def info(msg: str, icon: str = "") -> None:
    """Log an info message."""
    log("info", msg, icon)


def warn(msg: str, icon: str = "") -> None:
    """Log a warning message."""
    log("warn", msg, icon)


def error(msg: str, icon: str = "") -> None:
    """Log an error message."""
    log("error", msg, icon)


# ─────────────────────────────────────────────────────────────────────────────
# Domain Helpers
# ─────────────────────────────────────────────────────────────────────────────


def monitor_started(interval: float, alerts: bool) -> None:
    """Log monitor loop startup."""
    alert_part = "alerts [green]on[/]" if alerts else "alerts [dim]off[/]"
    info(f"Monitoring every [cyan]{interval:g}s[/], {alert_part}", Icon.OK)


def monitor_stopped(cycles: int) -> None:
    """Log monitor loop shutdown."""
    suffix = "s" if cycles != 1 else ""
    info(f"Monitor stopped [dim]({cycles} cycle{suffix})[/]", Icon.OK)


def alert_sent(score: int, process1: str, process2: str) -> None:
    """Log a best-pair change."""
    info(
        f"New best pair [cyan]{process1}[/] / [cyan]{process2}[/] "
        f"[dim](combined diff {score})[/]",
        Icon.ALERT,
    )


def cycle_skipped(reason: str) -> None:
    """Log a monitor cycle that produced no pair."""
    warn(f"Cycle skipped [dim]({escape(reason)})[/]")


def cycle_failed(cycle: int, reason: str) -> None:
    """Log a monitor cycle that raised."""
    error(f"Cycle {cycle} failed [dim]({escape(reason)})[/]", Icon.FAIL)


def signal_received(name: str) -> None:
    """Log a shutdown signal."""
    warn(f"Received [bold]{name}[/], stopping", Icon.SIGNAL)


def selection_invalid() -> None:
    """Log an invalid interactive selection."""
    warn("Invalid selection. Falling back to automatic best pair.")


# ─────────────────────────────────────────────────────────────────────────────
# Structlog Configuration
# ─────────────────────────────────────────────────────────────────────────────


def _add_source(source: str) -> structlog.types.Processor:
    """Create a processor that adds a source field to log events."""

    def processor(
        logger: structlog.types.WrappedLogger,
        method_name: str,
        event_dict: structlog.types.EventDict,
    ) -> structlog.types.EventDict:
        event_dict["source"] = source
        return event_dict

    return processor


def configure(config: Config, verbose: bool = False, log_file: Path | None = None) -> None:
    """Configure structlog with console output and an optional JSON file.

    Console output (stderr) is human-readable: warnings and errors only,
    everything with verbose. Routine status goes through the Rich helpers.
    The log file, when given, receives every DEBUG event as JSON Lines.

    Args:
        config: Application config (log rotation settings)
        verbose: Emit debug events on the console
        log_file: Optional path for the JSON debug log
    """
    stdlib_root = logging.getLogger()
    stdlib_root.setLevel(logging.DEBUG if (verbose or log_file) else logging.INFO)
    stdlib_root.handlers.clear()

    console_handler = logging.StreamHandler()  # stderr
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(),
            foreign_pre_chain=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="%H:%M:%S", utc=False),
                structlog.processors.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
            ],
        )
    )
    stdlib_root.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=config.system.log_max_bytes,
            backupCount=config.system.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processors=[
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    _add_source("proc-compare"),
                    structlog.processors.JSONRenderer(),
                ],
                foreign_pre_chain=[
                    structlog.contextvars.merge_contextvars,
                    structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
                    structlog.processors.add_log_level,
                    structlog.processors.format_exc_info,
                ],
            )
        )
        stdlib_root.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S", utc=False),
            structlog.processors.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
