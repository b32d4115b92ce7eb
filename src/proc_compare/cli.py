"""CLI commands for proc-compare."""

import sys
from dataclasses import fields
from pathlib import Path

import click
import structlog

from proc_compare.config import OUTPUT_FORMATS, SORT_FIELDS, SORT_ORDERS, Config
from proc_compare.errors import ConfigurationError, InsufficientData, InvalidSelection

log = structlog.get_logger()

EXIT_CONFIG_ERROR = 2
EXIT_INSUFFICIENT_DATA = 3

_REPORT_OPTIONS = [
    click.option("--config", "config_path", type=click.Path(path_type=Path), default=None,
                 help="Config file (default ~/.config/proc-compare/config.toml)"),
    click.option("--min-memory", "-m", type=int, default=None, help="Minimum memory in kB"),
    click.option("--max-memory", "-M", type=int, default=None, help="Maximum memory in kB"),
    click.option("--cmd-filter", "-c", default=None, help="Command must contain this substring"),
    click.option("--min-cpu", "-C", type=int, default=None, help="Minimum CPU ticks"),
    click.option("--user", "-u", default=None, help="Owner uid or username"),
    click.option("--sort", "-s", "sort_field", type=click.Choice(SORT_FIELDS), default=None,
                 help="Sort field"),
    click.option("--order", "-O", type=click.Choice(SORT_ORDERS), default=None,
                 help="Sort order"),
    click.option("--output-format", "-o", type=click.Choice(OUTPUT_FORMATS), default=None,
                 help="Output format"),
    click.option("--csv", "csv_flag", is_flag=True, help="Shortcut for --output-format csv"),
    click.option("--html", "html_flag", is_flag=True, help="Shortcut for --output-format html"),
    click.option("--all", "-a", "list_all", is_flag=True,
                 help="List all matching processes"),
    click.option("--summary", "-S", is_flag=True,
                 help="Show count and averages"),
    click.option("--file", "-f", "output_file", type=click.Path(path_type=Path), default=None,
                 help="Also write the report to this file"),
    click.option("--interactive", "-I", is_flag=True, help="Choose the pair by index"),
    click.option("--parallel", "-p", is_flag=True,
                 help="Parse /proc on a thread pool"),
    click.option("--verbose", "-v", is_flag=True, help="Debug logging on stderr"),
    click.option("--log-file", "-l", type=click.Path(path_type=Path), default=None,
                 help="Write a JSON debug log to this file"),
]


def _report_options(f):
    for decorator in reversed(_REPORT_OPTIONS):
        f = decorator(f)
    return f


def _apply_overrides(cfg: Config, opts: dict) -> None:
    """Copy command-line values onto the loaded config.

    Unset options (None) and unset flags keep the file value.
    """
    overrides = {
        (cfg.filters, "min_memory"): opts.get("min_memory"),
        (cfg.filters, "max_memory"): opts.get("max_memory"),
        (cfg.filters, "command"): opts.get("cmd_filter"),
        (cfg.filters, "min_cpu"): opts.get("min_cpu"),
        (cfg.filters, "owner"): opts.get("user"),
        (cfg.sorting, "field"): opts.get("sort_field"),
        (cfg.sorting, "order"): opts.get("order"),
        (cfg.output, "format"): opts.get("output_format"),
        (cfg.output, "list_all"): opts.get("list_all") or None,
        (cfg.output, "summary"): opts.get("summary") or None,
        (cfg.system, "parallel"): opts.get("parallel") or None,
        (cfg.monitor, "interval"): opts.get("refresh"),
        (cfg.monitor, "alerts"): opts.get("alert") or None,
    }
    for (section, name), value in overrides.items():
        if value is not None:
            setattr(section, name, value)

    if opts.get("csv_flag"):
        cfg.output.format = "csv"
    if opts.get("html_flag"):
        cfg.output.format = "html"


def _load_config(opts: dict) -> Config:
    """Load the config file, apply overrides and validate. Exits 2 on error."""
    try:
        cfg = Config.load(opts.get("config_path"))
        _apply_overrides(cfg, opts)
        cfg.validate()
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(EXIT_CONFIG_ERROR)
    return cfg


def _build_report(cfg: Config, match_set, best_pair):
    from proc_compare.collector import FilterCriteria, summarize
    from proc_compare.formatting import Report

    return Report(
        criteria=FilterCriteria.from_config(cfg.filters),
        best_pair=best_pair,
        records=match_set.records,
        list_all=cfg.output.list_all,
        summary=summarize(match_set.records) if cfg.output.summary else None,
    )


def _prompt_pair(match_set):
    """List the match set on stderr and ask for two indices.

    Falls back to the automatic best pair on an invalid choice.
    """
    from proc_compare import logging as console
    from proc_compare.formatting import format_process_line
    from proc_compare.pairing import find_best_pair, select_pair

    click.echo("Matching processes:", err=True)
    for i, record in enumerate(match_set.records):
        click.echo(f"[{i}] {format_process_line(record)}", err=True)

    first = click.prompt("Select first process index", type=int, err=True)
    second = click.prompt("Select second process index", type=int, err=True)
    try:
        return select_pair(match_set.records, first, second)
    except InvalidSelection as e:
        log.debug("selection_invalid", error=str(e))
        console.selection_invalid()
        return find_best_pair(match_set.records)


@click.group()
@click.version_option(package_name="proc-compare")
def main() -> None:
    """Find the two most similar running processes by memory and CPU."""
    pass


@main.command()
@_report_options
def scan(**opts) -> None:
    """Scan once and report the best matching pair."""
    from proc_compare import logging as console
    from proc_compare.boottime import get_host_clock
    from proc_compare.formatting import render
    from proc_compare.monitor import build_collector
    from proc_compare.pairing import find_best_pair

    cfg = _load_config(opts)
    console.configure(cfg, verbose=opts["verbose"], log_file=opts["log_file"])

    collector = build_collector(cfg, get_host_clock())
    try:
        match_set = collector.collect_sync()
    except InsufficientData:
        click.echo("Error: Insufficient processes found matching criteria.", err=True)
        raise SystemExit(EXIT_INSUFFICIENT_DATA)

    match_set = match_set.sorted(cfg.sorting.field, cfg.sorting.order)
    if opts["interactive"]:
        pair = _prompt_pair(match_set)
    else:
        pair = find_best_pair(match_set.records)

    output = render(_build_report(cfg, match_set, pair), cfg.output.format)
    click.echo(output)

    output_file = opts["output_file"]
    if output_file is not None:
        output_file.write_text(output + "\n")
        log.debug("report_written", path=str(output_file))


@main.command()
@_report_options
@click.option("--refresh", "-r", type=float, default=None, help="Seconds between scans")
@click.option("--alert", "-A", is_flag=True,
              help="Desktop notification when the best pair changes")
@click.option("--cycles", "-n", type=int, default=None, help="Stop after this many cycles")
def monitor(**opts) -> None:
    """Rescan on an interval and alert when the best pair changes."""
    import asyncio

    from proc_compare import logging as console
    from proc_compare.boottime import get_host_clock
    from proc_compare.formatting import render
    from proc_compare.monitor import build_collector, run_monitor
    from proc_compare.pairing import pinned_selector

    cfg = _load_config(opts)
    if cfg.monitor.interval <= 0:
        click.echo("Error: monitor requires --refresh SECONDS greater than 0", err=True)
        raise SystemExit(EXIT_CONFIG_ERROR)
    console.configure(cfg, verbose=opts["verbose"], log_file=opts["log_file"])

    collector = build_collector(cfg, get_host_clock())
    output_file = opts["output_file"]

    selector = None
    if opts["interactive"]:
        try:
            match_set = collector.collect_sync().sorted(cfg.sorting.field, cfg.sorting.order)
        except InsufficientData as e:
            console.warn(f"Interactive selection skipped [dim]({e})[/]")
        else:
            pair = _prompt_pair(match_set)
            if pair.manual:
                selector = pinned_selector(pair.first.pid, pair.second.pid)

    def on_cycle(result) -> None:
        if result.failed:
            console.cycle_failed(result.cycle, result.error or "unknown error")
            return
        if result.best_pair is None:
            console.cycle_skipped(result.error or "no pair")
            return

        output = render(_build_report(cfg, result.match_set, result.best_pair), cfg.output.format)
        if sys.stdout.isatty():
            click.clear()
        click.echo(output)

        if output_file is not None:
            stamp = result.match_set.timestamp.strftime("%Y-%m-%d %H:%M:%S")
            with open(output_file, "a") as f:
                f.write(f"==== {stamp} ====\n{output}\n")

        if result.alert is not None:
            console.alert_sent(result.alert.score, result.alert.process1, result.alert.process2)

    console.monitor_started(cfg.monitor.interval, cfg.monitor.alerts)
    loop = asyncio.run(
        run_monitor(
            cfg,
            collector=collector,
            on_cycle=on_cycle,
            selector=selector,
            max_cycles=opts["cycles"],
        )
    )
    console.monitor_stopped(loop.cycle_count)


@main.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=None,
              help="Config file to show")
def config_show(config_path: Path | None) -> None:
    """Display current configuration."""
    try:
        cfg = Config.load(config_path)
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(EXIT_CONFIG_ERROR)

    path = config_path or cfg.config_path
    click.echo(f"Config file: {path}")
    click.echo(f"Exists: {path.exists()}")
    for name in ("filters", "sorting", "monitor", "output", "system"):
        section = getattr(cfg, name)
        click.echo()
        click.echo(f"[{name}]")
        for f in fields(section):
            click.echo(f"  {f.name} = {getattr(section, f.name)!r}")


@config.command("reset")
@click.confirmation_option(prompt="Reset config to defaults?")
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=None,
              help="Config file to reset")
def config_reset(config_path: Path | None) -> None:
    """Reset configuration to defaults."""
    cfg = Config()
    path = config_path or cfg.config_path
    cfg.save(path)
    click.echo(f"Config reset to defaults at {path}")
