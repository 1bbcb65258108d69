"""Rich live progress panel and end-of-run summary table."""

from __future__ import annotations

from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .metrics import OutcomeCollector
from .models import RequestSpec, RunSummary


def _pct(part: int, total: int) -> float:
    return 100.0 * part / total if total else 0.0


def build_progress_table(collector: OutcomeCollector, elapsed_seconds: float) -> Table:
    """Live counters read from the collector while workers run."""
    completed, success, failed = collector.counts()
    expected = collector.expected
    table = Table.grid(padding=(0, 2))
    table.add_column(style="cyan")
    table.add_column(style="green")
    table.add_row("Completed", f"{completed} / {expected} ({_pct(completed, expected):.1f}%)")
    table.add_row("Success", str(success))
    table.add_row("Failed", str(failed))
    rate = completed / elapsed_seconds if elapsed_seconds > 0 else 0.0
    table.add_row("Requests/s", f"{rate:.1f}")
    table.add_row("Elapsed", f"{elapsed_seconds:.1f}s")
    return table


def create_live_panel(
    collector: OutcomeCollector,
    spec: RequestSpec,
    elapsed_seconds: float,
) -> Panel:
    """Create Rich Panel for live display."""
    title = Text()
    title.append("volley ", style="bold magenta")
    title.append(f"| {spec.method} {spec.url}", style="dim")
    title.append(f" | {spec.threads} threads x {spec.iterations}", style="bold yellow")
    return Panel(
        build_progress_table(collector, elapsed_seconds),
        title=title,
        border_style="blue",
    )


def progress_line(collector: OutcomeCollector, elapsed_seconds: float) -> str:
    """Single status line for non-TTY output (CI, pipes, Docker without -it)."""
    completed, success, failed = collector.counts()
    return (
        f"volley | {elapsed_seconds:.1f}s | completed={completed}/{collector.expected} "
        f"success={success} failed={failed}\n"
    )


def build_summary_table(summary: RunSummary) -> Table:
    table = Table(title="Run summary", show_header=False, border_style="blue")
    table.add_column(style="cyan")
    table.add_column(style="green", justify="right")
    table.add_row("Total requests", str(summary.total_requests))
    table.add_row("Success", str(summary.success_count))
    table.add_row("Failed", Text(str(summary.failure_count), style="red" if summary.failure_count else "green"))
    table.add_row("Success rate %", f"{summary.success_rate_pct:.2f}%")
    table.add_row("Duration", f"{summary.duration_ms / 1000:.2f}s")
    table.add_row("TPS", f"{summary.tps:.1f}")
    table.add_row("Avg response (ms)", f"{summary.avg_response_time_ms:.1f}")
    table.add_row("P95 (ms)", f"{summary.p95_ms:.1f}")
    table.add_row("P99 (ms)", f"{summary.p99_ms:.1f}")
    if summary.status_code_counts:
        codes = ", ".join(f"{k}: {v}" for k, v in sorted(summary.status_code_counts.items()))
        table.add_row("Status codes", codes)
    return table
