"""Dispatcher: one worker thread per slot, join barrier, then aggregation.

There is no run-level cancellation: a run that completes always holds exactly
threads x iterations outcomes. A run that is abandoned (worker crash or
KeyboardInterrupt) produces no summary. Its workers stop before their next
iteration and in-flight calls end within their own deadline.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Any, Callable, Mapping

import httpx

from .config import build_spec
from .engine import DEFAULT_TIMEOUT_SEC, create_client, run_worker
from .exceptions import RunnerError
from .logging_config import get_logger
from .metrics import OutcomeCollector, summarize
from .models import RequestSpec, RunSummary
from .randomizer import RandomSource, default_random_source

logger = get_logger("runner")

# Above this many threads a warning is logged; the requested count is still used
THREADS_WARNING_THRESHOLD = 1000
PROGRESS_POLL_SEC = 0.25
NS_TO_MS = 1_000_000

ProgressCallback = Callable[[OutcomeCollector, float], None]


def run_grid(
    spec: RequestSpec,
    *,
    rng: RandomSource | None = None,
    client: httpx.Client | None = None,
    timeout: float = DEFAULT_TIMEOUT_SEC,
    on_progress: ProgressCallback | None = None,
) -> RunSummary:
    """Fire spec.threads x spec.iterations requests and return the aggregated summary.

    Args:
        spec: Validated run spec (see config.build_spec)
        rng: Random source for range rules; process-wide generator if omitted
        client: Shared HTTP client; one is created (and closed) if omitted
        timeout: Total per-call budget in seconds
        on_progress: Called from the calling thread with (collector, elapsed_seconds)
            while workers run, and once more after the join

    Returns:
        RunSummary over all threads x iterations outcomes

    Raises:
        RunnerError: If a worker thread died with an unexpected exception
        KeyboardInterrupt: Re-raised at once; remaining iterations are skipped
    """
    rng = rng if rng is not None else default_random_source()
    if spec.threads > THREADS_WARNING_THRESHOLD:
        logger.warning(
            "threads=%d exceeds %d; every thread is still started, watch file descriptors and memory",
            spec.threads, THREADS_WARNING_THRESHOLD,
        )
    logger.info(
        "Starting run: %s %s, threads=%d, iterations=%d, total_requests=%d",
        spec.method, spec.url, spec.threads, spec.iterations, spec.total_requests,
    )

    collector = OutcomeCollector(expected=spec.total_requests)
    owns_client = client is None
    if client is None:
        client = create_client(max_connections=spec.threads, timeout=timeout)

    start_ns = time.perf_counter_ns()
    stop = threading.Event()
    pool = ThreadPoolExecutor(max_workers=spec.threads, thread_name_prefix="volley-worker")
    try:
        futures = {
            pool.submit(run_worker, client, spec, t, collector, rng, timeout, stop): t
            for t in range(1, spec.threads + 1)
        }
        pending = set(futures)
        while pending:
            done, pending = wait(pending, timeout=PROGRESS_POLL_SEC, return_when=FIRST_EXCEPTION)
            for f in done:
                exc = f.exception()
                if exc is not None:
                    raise RunnerError(
                        f"Worker thread {futures[f]} failed",
                        context={"thread": futures[f]},
                        original_error=exc,
                    ) from exc
            if on_progress is not None:
                on_progress(collector, (time.perf_counter_ns() - start_ns) / 1e9)
    except BaseException:
        # Abandoned run (worker crash or Ctrl-C): workers stop before their next
        # iteration and the caller does not wait for in-flight calls
        stop.set()
        pool.shutdown(wait=False, cancel_futures=True)
        if owns_client:
            client.close()
        logger.warning("Run abandoned after %d of %d cycles", len(collector), spec.total_requests)
        raise
    pool.shutdown(wait=True)
    if owns_client:
        client.close()

    duration_ms = (time.perf_counter_ns() - start_ns) / NS_TO_MS
    if on_progress is not None:
        on_progress(collector, duration_ms / 1000)
    summary = summarize(collector.snapshot(), duration_ms=duration_ms)
    logger.info(
        "Run finished: success=%d, failure=%d, duration_ms=%.1f",
        summary.success_count, summary.failure_count, duration_ms,
    )
    return summary


def run_from_config(raw: Mapping[str, Any], **kwargs: Any) -> dict[str, Any]:
    """Validate a raw config mapping, run it, and return the JSON-ready report.

    Raises:
        ConfigError: Before any request is sent, if the config is invalid
    """
    spec = build_spec(raw)
    return run_grid(spec, **kwargs).to_report()
