"""Unit tests for the live panel and summary table."""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from volley.config import build_spec
from volley.dashboard import build_progress_table, build_summary_table, create_live_panel, progress_line
from volley.metrics import OutcomeCollector, summarize
from volley.models import RequestOutcome


def _render(renderable) -> str:
    buf = StringIO()
    Console(file=buf, width=120, force_terminal=False).print(renderable)
    return buf.getvalue()


def _collector() -> OutcomeCollector:
    c = OutcomeCollector(expected=4)
    c.add(RequestOutcome(thread=1, iteration=1, status=200))
    c.add(RequestOutcome(thread=2, iteration=1, status=0, error="refused"))
    return c


def test_build_progress_table() -> None:
    table = build_progress_table(_collector(), 2.0)
    assert isinstance(table, Table)
    text = _render(table)
    assert "2 / 4" in text
    assert "50.0%" in text


def test_create_live_panel() -> None:
    spec = build_spec({"url": "http://example.test/", "threads": 2, "iterations": 2})
    panel = create_live_panel(_collector(), spec, 1.5)
    assert isinstance(panel, Panel)
    assert "volley" in _render(panel)


def test_progress_line() -> None:
    line = progress_line(_collector(), 3.0)
    assert line.startswith("volley | 3.0s")
    assert "completed=2/4" in line
    assert "success=1 failed=1" in line
    assert line.endswith("\n")


def test_build_summary_table() -> None:
    summary = summarize(_collector().snapshot(), duration_ms=1000)
    text = _render(build_summary_table(summary))
    assert "Total requests" in text
    assert "Status codes" in text
