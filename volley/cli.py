"""CLI entry point for volley."""

from __future__ import annotations

import argparse
import sys
import time
from datetime import datetime, timezone
from typing import Any

import orjson
from rich.console import Console
from rich.live import Live

from . import __version__
from .config import build_spec, merge_config, read_config_file
from .dashboard import build_summary_table, create_live_panel, progress_line
from .exceptions import ConfigError, RunnerError, VolleyError
from .logging_config import get_logger
from .metrics import OutcomeCollector
from .models import RequestSpec, RunSummary
from .report import generate_json_report, generate_report, render_json
from .runner import run_grid

logger = get_logger("cli")

LIVE_REFRESH_PER_SEC = 4
# When stdout is not a TTY, one progress line per interval
STREAMING_FALLBACK_INTERVAL_SEC = 1.0


def _parse_pairs(items: list[str] | None, sep: str, flag: str) -> dict[str, str]:
    """Parse repeated KEY<sep>VALUE flags. Raises ConfigError on a missing separator or key."""
    if not items:
        return {}
    out: dict[str, str] = {}
    for s in items:
        k, found, v = s.partition(sep)
        if not found or not k.strip():
            raise ConfigError(f"{flag} expects KEY{sep}VALUE, got {s!r}")
        out[k.strip()] = v.strip()
    return out


def _parse_param_value(value: str) -> Any:
    """JSON literal when it parses (42, true, {"a":1}), plain string otherwise."""
    try:
        return orjson.loads(value)
    except orjson.JSONDecodeError:
        return value


def _build_raw_config(args: argparse.Namespace) -> dict[str, Any]:
    """Config file (if any) with CLI flags applied on top."""
    base = read_config_file(args.config) if args.config else {}
    params = _parse_pairs(args.param, "=", "--param")
    overrides = {
        "url": args.url,
        "method": args.method,
        "headers": _parse_pairs(args.header, ":", "--header") or None,
        "params": {k: _parse_param_value(v) for k, v in params.items()} or None,
        "random_param": _parse_pairs(args.random_param, "=", "--random-param") or None,
        "threads": args.threads,
        "iterations": args.iterations,
    }
    return merge_config(base, overrides)


def _stdout_is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _run(spec: RequestSpec, live: bool, console: Console) -> RunSummary:
    if not live:
        return run_grid(spec)

    if _stdout_is_tty():
        with Live(
            create_live_panel(OutcomeCollector(spec.total_requests), spec, 0.0),
            console=console,
            refresh_per_second=LIVE_REFRESH_PER_SEC,
        ) as live_ctx:
            return run_grid(
                spec,
                on_progress=lambda c, elapsed: live_ctx.update(create_live_panel(c, spec, elapsed)),
            )

    last_line = 0.0

    def _stream(collector: OutcomeCollector, elapsed: float) -> None:
        nonlocal last_line
        now = time.monotonic()
        if now - last_line >= STREAMING_FALLBACK_INTERVAL_SEC:
            last_line = now
            sys.stdout.write(progress_line(collector, elapsed))
            sys.stdout.flush()

    return run_grid(spec, on_progress=_stream)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="volley",
        description="Concurrent HTTP request grid: threads x iterations requests against one URL, "
        "with optional per-request randomized parameters.",
    )
    parser.add_argument("-f", "--config", default=None, help="Path to YAML config (flags override its values)")
    parser.add_argument("-u", "--url", default=None, help="Target URL (http or https)")
    parser.add_argument("-X", "--method", default=None, help="HTTP method (default GET)")
    parser.add_argument(
        "-H", "--header", action="append", metavar="NAME:VALUE",
        help="Static request header (can be repeated)",
    )
    parser.add_argument(
        "-p", "--param", action="append", metavar="KEY=VALUE",
        help="Static parameter, sent as JSON body for POST/PUT (can be repeated; VALUE parsed as JSON if valid)",
    )
    parser.add_argument(
        "-r", "--random-param", action="append", metavar="KEY=RULE", dest="random_param",
        help="Randomized parameter: RULE '<min>-<max>' draws an integer per request, anything else is literal",
    )
    parser.add_argument("-t", "--threads", type=int, default=None, help="Concurrent worker threads (floor 1)")
    parser.add_argument("-n", "--iterations", type=int, default=None, help="Requests per thread (floor 1)")
    parser.add_argument("-o", "--output", default=None, metavar="PATH", help="Write HTML report to PATH")
    parser.add_argument(
        "--json", metavar="PATH", dest="json_path",
        help="Write JSON report to PATH ('-' for stdout)",
    )
    parser.add_argument("--no-live", action="store_true", help="Disable live progress and the summary table")
    parser.add_argument("-v", "--version", action="version", version=f"volley {__version__}")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    def handle_error(e: BaseException) -> int:
        if isinstance(e, VolleyError):
            print(f"Error: {e.message}", file=sys.stderr)
            return 1
        logger.exception("Unexpected error")
        print("Error: An unexpected error occurred. Check logs for details.", file=sys.stderr)
        return 1

    # With --no-live and no report path, the JSON report goes to stdout
    to_stdout = args.json_path == "-" or (args.no_live and not args.json_path and not args.output)
    live = not args.no_live and not to_stdout
    console = Console()
    try:
        spec = build_spec(_build_raw_config(args))
        start_dt = datetime.now(timezone.utc)
        summary = _run(spec, live, console)
        end_dt = datetime.now(timezone.utc)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130
    except (ConfigError, RunnerError) as e:
        return handle_error(e)
    except Exception as e:
        return handle_error(e)

    if to_stdout:
        sys.stdout.buffer.write(render_json(summary) + b"\n")
        sys.stdout.flush()
    elif args.json_path:
        generate_json_report(args.json_path, summary)
        if live:
            console.print(f"[dim]JSON report:[/dim] {args.json_path}")
    if args.output:
        generate_report(args.output, summary, spec, start_dt=start_dt, end_dt=end_dt)
        if live:
            console.print(f"[green]Report written to[/green] {args.output}")
    if live:
        console.print(build_summary_table(summary))
    return 0


if __name__ == "__main__":
    sys.exit(main())
