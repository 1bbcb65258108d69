"""JSON and HTML run reports."""

from __future__ import annotations

import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from urllib.parse import urlparse, urlunparse

import orjson
from jinja2 import Environment, PackageLoader, select_autoescape

from . import __version__ as volley_version
from .models import RequestSpec, RunSummary

REDACTED_PLACEHOLDER = "[REDACTED]"
# HTML report lists at most this many individual outcomes; the JSON report lists all
HTML_MAX_ROWS = 500


def mask_url(url: str, max_path_length: int = 120) -> str:
    """Remove query string and fragment from URL to avoid leaking tokens in reports."""
    if not url or not url.strip():
        return url
    try:
        parsed = urlparse(url)
    except ValueError:
        return url[:max_path_length] + ("..." if len(url) > max_path_length else "")
    clean = urlunparse((parsed.scheme, parsed.netloc, parsed.path or "", "", "", ""))
    if len(clean) > max_path_length:
        clean = clean[: max_path_length - 3] + "..."
    return clean


def mask_error_message(msg: str | None, max_length: int = 200) -> str:
    """Truncate error message and redact URLs to avoid leaking sensitive data."""
    if not msg:
        return ""
    msg = re.sub(r"https?://[^\s]+", REDACTED_PLACEHOLDER, msg)
    if len(msg) > max_length:
        return msg[: max_length - 3] + "..."
    return msg


def render_json(summary: RunSummary) -> bytes:
    return orjson.dumps(summary.to_report(), option=orjson.OPT_INDENT_2)


def generate_json_report(output_path: str | Path, summary: RunSummary) -> None:
    """Write the full report: success_count, failure_count, every response, metrics."""
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(render_json(summary))


def generate_report(
    output_path: str | Path,
    summary: RunSummary,
    spec: RequestSpec,
    start_dt: datetime | None = None,
    end_dt: datetime | None = None,
) -> None:
    """Render a single self-contained HTML report."""
    if summary.failure_count == 0:
        verdict, verdict_class = "All requests succeeded", "success"
    elif summary.success_rate_pct >= 95:
        verdict, verdict_class = "Minor failures", "warning"
    else:
        verdict, verdict_class = "Needs attention", "danger"

    rows: list[dict[str, Any]] = [
        {
            "thread": o.thread,
            "iteration": o.iteration,
            "status": o.status,
            "elapsed_ms": round(o.elapsed_ms, 2),
            "body_preview": o.body_preview,
            "error": mask_error_message(o.error),
            "success": o.success,
        }
        for o in summary.responses[:HTML_MAX_ROWS]
    ]
    top_errors = [
        {"message": mask_error_message(k), "count": v} for k, v in summary.top_errors.items()
    ]

    env = Environment(
        loader=PackageLoader("volley", "templates"),
        autoescape=select_autoescape(["html", "xml"]),
    )
    template = env.get_template("report.html")
    html = template.render(
        target=f"{spec.method} {mask_url(spec.url)}",
        threads=spec.threads,
        iterations=spec.iterations,
        random_params=sorted(spec.rules),
        total_requests=summary.total_requests,
        success_count=summary.success_count,
        failure_count=summary.failure_count,
        success_rate_pct=round(summary.success_rate_pct, 2),
        duration_s=round(summary.duration_ms / 1000, 2),
        tps=round(summary.tps, 2),
        avg_response_time_ms=round(summary.avg_response_time_ms, 2),
        p50_ms=round(summary.p50_ms, 2),
        p95_ms=round(summary.p95_ms, 2),
        p99_ms=round(summary.p99_ms, 2),
        status_code_counts=sorted(summary.status_code_counts.items(), key=lambda x: -x[1]),
        top_errors=top_errors,
        verdict=verdict,
        verdict_class=verdict_class,
        rows=rows,
        rows_truncated=summary.total_requests > HTML_MAX_ROWS,
        start_datetime_str=start_dt.strftime("%Y-%m-%d %H:%M:%S UTC") if start_dt else "",
        end_datetime_str=end_dt.strftime("%Y-%m-%d %H:%M:%S UTC") if end_dt else "",
        developer_info={
            "volley_version": volley_version,
            "report_generated_at": datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"),
            "python_version": f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
        },
    )
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(html, encoding="utf-8")
