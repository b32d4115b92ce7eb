"""Report rendering for CLI output (text, JSON, CSV, HTML)."""

import csv
import html
import io
import json
from dataclasses import dataclass

from proc_compare.collector import FilterCriteria, SummaryStats
from proc_compare.errors import ConfigurationError
from proc_compare.pairing import BestPair
from proc_compare.procfs import ProcessRecord

RULE = "=" * 45
REPORT_TITLE = "Advanced Process Comparison Report"
COMMAND_WIDTH = 40

CSV_COLUMNS = [
    "PID",
    "Command",
    "Memory_kB",
    "CPU_Ticks",
    "State",
    "Nice",
    "Start_Epoch",
    "Start_Time",
    "UID",
    "User",
]


@dataclass
class Report:
    """Everything one rendering needs."""

    criteria: FilterCriteria
    best_pair: BestPair
    records: list[ProcessRecord]
    list_all: bool = False
    summary: SummaryStats | None = None


def _diff_label(pair: BestPair) -> str:
    return "manual" if pair.manual else str(pair.score)


def _filters_dict(criteria: FilterCriteria) -> dict:
    return {
        "min_memory": criteria.min_memory,
        "max_memory": criteria.max_memory,
        "min_cpu": criteria.min_cpu,
        "cmd_filter": criteria.command,
        "user": criteria.owner,
    }


def _csv_row(r: ProcessRecord) -> list:
    return [
        r.pid,
        r.command,
        r.memory_kb,
        r.cpu_ticks,
        r.state,
        r.nice,
        r.start_epoch,
        r.start_formatted,
        r.uid,
        r.user,
    ]


def format_process_line(r: ProcessRecord, label: str = "") -> str:
    """One-line description used by the text report and interactive list."""
    prefix = f"{label}: " if label else ""
    return (
        f"{prefix}PID: {r.pid}, Command: {r.command[:COMMAND_WIDTH]}, "
        f"Memory: {r.memory_kb} kB, CPU: {r.cpu_ticks}, State: {r.state}, "
        f"Nice: {r.nice}, User: {r.user}, Started: {r.start_formatted}"
    )


def render_text(report: Report) -> str:
    """Plain text report."""
    c = report.criteria
    pair = report.best_pair
    lines = [RULE, f" {REPORT_TITLE}", RULE, "Filters applied:"]
    lines.append(f"  Minimum Memory: {c.min_memory} kB")
    if c.max_memory is not None:
        lines.append(f"  Maximum Memory: {c.max_memory} kB")
    lines.append(f"  Minimum CPU Ticks: {c.min_cpu}")
    if c.command:
        lines.append(f"  Command contains: '{c.command}'")
    if c.owner:
        lines.append(f"  User: {c.owner}")
    lines.append("")
    lines.append(f"Best Process Pair (combined diff = {_diff_label(pair)}):")
    lines.append(format_process_line(pair.first, "Process 1"))
    lines.append(format_process_line(pair.second, "Process 2"))
    lines.append(RULE)

    if report.list_all:
        lines.append("All Matching Processes:")
        lines.extend(format_process_line(r) for r in report.records)
        lines.append(RULE)

    if report.summary is not None:
        s = report.summary
        lines.append(
            f"Summary: Total matching processes: {s.total}, "
            f"Average Memory: {s.average_memory_kb:.2f} kB, "
            f"Average CPU Ticks: {s.average_cpu_ticks:.2f}"
        )
        lines.append(RULE)

    return "\n".join(lines)


def render_json(report: Report) -> str:
    """JSON report. All matching processes are always included."""
    data = {
        "filters": _filters_dict(report.criteria),
        "best_pair": report.best_pair.to_dict(),
        "all_matching_processes": [r.to_dict() for r in report.records],
    }
    if report.summary is not None:
        data["summary"] = report.summary.to_dict()
    return json.dumps(data, indent=2)


def render_csv(report: Report) -> str:
    """CSV report: best pair rows, then optional listing and summary blocks."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")

    writer.writerow(["Type", *CSV_COLUMNS])
    for r in (report.best_pair.first, report.best_pair.second):
        writer.writerow(["Best Pair", *_csv_row(r)])

    if report.list_all:
        writer.writerow([])
        writer.writerow(["All Matching Processes:"])
        writer.writerow(CSV_COLUMNS)
        for r in report.records:
            writer.writerow(_csv_row(r))

    if report.summary is not None:
        s = report.summary
        writer.writerow([])
        writer.writerow(["Summary", "Total Matching Processes", s.total])
        writer.writerow(["Summary", "Average Memory (kB)", f"{s.average_memory_kb:.2f}"])
        writer.writerow(["Summary", "Average CPU Ticks", f"{s.average_cpu_ticks:.2f}"])

    return buf.getvalue().rstrip("\n")


def render_html(report: Report) -> str:
    """Standalone HTML page. All process text is escaped."""
    e = html.escape
    c = report.criteria
    a, b = report.best_pair.first, report.best_pair.second

    parts = [
        "<html>",
        "<head>",
        f"  <title>{REPORT_TITLE}</title>",
        "  <style>",
        "    table { border-collapse: collapse; width: 100%; }",
        "    th, td { border: 1px solid #aaa; padding: 8px; text-align: left; }",
        "    th { background-color: #ddd; }",
        "  </style>",
        "</head>",
        "<body>",
        f"<h2>{REPORT_TITLE}</h2>",
        "<p>",
        "<strong>Filters applied:</strong><br>",
    ]
    mem = f"Memory &ge; {c.min_memory} kB"
    if c.max_memory is not None:
        mem += f" and &le; {c.max_memory} kB"
    parts.append(f"{mem}<br>")
    parts.append(f"CPU Ticks &ge; {c.min_cpu}<br>")
    if c.command:
        parts.append(f"Command contains: '{e(c.command)}'<br>")
    if c.owner:
        parts.append(f"User: {e(c.owner)}<br>")
    parts.append("</p>")

    parts.append(f"<h3>Best Process Pair (combined diff = {_diff_label(report.best_pair)})</h3>")
    parts.append("<table>")
    parts.append("  <tr><th>Field</th><th>Process 1</th><th>Process 2</th></tr>")
    rows = [
        ("PID", a.pid, b.pid),
        ("Command", a.command, b.command),
        ("Memory (kB)", a.memory_kb, b.memory_kb),
        ("CPU Ticks", a.cpu_ticks, b.cpu_ticks),
        ("State", a.state, b.state),
        ("Nice", a.nice, b.nice),
        ("Start Time", a.start_formatted, b.start_formatted),
        ("User", a.user, b.user),
    ]
    for label, v1, v2 in rows:
        parts.append(f"  <tr><td>{label}</td><td>{e(str(v1))}</td><td>{e(str(v2))}</td></tr>")
    parts.append("</table>")

    if report.list_all:
        parts.append("<h3>All Matching Processes</h3>")
        parts.append("<table>")
        parts.append(
            "<tr><th>PID</th><th>Command</th><th>Memory (kB)</th><th>CPU Ticks</th>"
            "<th>State</th><th>Nice</th><th>Start Time</th><th>User</th></tr>"
        )
        for r in report.records:
            cells = [r.pid, r.command, r.memory_kb, r.cpu_ticks, r.state, r.nice]
            cells += [r.start_formatted, r.user]
            parts.append("<tr>" + "".join(f"<td>{e(str(v))}</td>" for v in cells) + "</tr>")
        parts.append("</table>")

    if report.summary is not None:
        s = report.summary
        parts.append("<h3>Summary</h3>")
        parts.append(
            f"<p>Total Matching Processes: {s.total}<br>\n"
            f"Average Memory: {s.average_memory_kb:.2f} kB<br>\n"
            f"Average CPU Ticks: {s.average_cpu_ticks:.2f}</p>"
        )

    parts.append("</body></html>")
    return "\n".join(parts)


RENDERERS = {
    "text": render_text,
    "json": render_json,
    "csv": render_csv,
    "html": render_html,
}


def render(report: Report, fmt: str = "text") -> str:
    """Render a report in the given output format."""
    try:
        renderer = RENDERERS[fmt]
    except KeyError:
        raise ConfigurationError(f"Unknown output format: {fmt!r}") from None
    return renderer(report)
