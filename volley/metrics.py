"""Outcome collection and aggregation.

OutcomeCollector is the only mutable structure shared by workers: every write
happens under one lock. summarize() is a pure reduction run once after all
workers have joined; percentiles come from a streaming T-Digest.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Iterable

from tdigest import TDigest

from .models import RequestOutcome, RunSummary

TOP_ERRORS_LIMIT = 5
# Error messages are truncated to keep the top-errors table compact
ERROR_KEY_MAX_LENGTH = 200


def _percentile_from_digest(digest: TDigest, p: float) -> float:
    """Get percentile from T-Digest. Returns 0.0 if empty."""
    try:
        return digest.percentile(p) or 0.0
    except (ValueError, IndexError):
        return 0.0


class OutcomeCollector:
    """Thread-safe, append-only sink for RequestOutcomes.

    Order is arrival order. Within one thread that is iteration order, across
    threads it is unspecified. Live counters can be read while workers run.
    """

    __slots__ = ("_outcomes", "_lock", "_expected", "_success_count", "_failure_count")

    def __init__(self, expected: int = 0) -> None:
        self._outcomes: list[RequestOutcome] = []
        self._lock = threading.Lock()
        self._expected = expected
        self._success_count = 0
        self._failure_count = 0

    @property
    def expected(self) -> int:
        return self._expected

    def add(self, outcome: RequestOutcome) -> None:
        with self._lock:
            self._outcomes.append(outcome)
            if outcome.success:
                self._success_count += 1
            else:
                self._failure_count += 1

    def counts(self) -> tuple[int, int, int]:
        """(completed, success, failure) at this instant."""
        with self._lock:
            return len(self._outcomes), self._success_count, self._failure_count

    def snapshot(self) -> list[RequestOutcome]:
        with self._lock:
            return list(self._outcomes)

    def __len__(self) -> int:
        with self._lock:
            return len(self._outcomes)


def summarize(outcomes: Iterable[RequestOutcome], duration_ms: float = 0.0) -> RunSummary:
    """Reduce the complete outcome list into a RunSummary.

    Success means an empty error and a status in [200, 300). Everything else,
    including status 0 transport failures and 3xx/4xx/5xx, is a failure.
    """
    responses = tuple(outcomes)
    digest = TDigest()
    success = 0
    failed = 0
    sum_times = 0.0
    status_counts: dict[str, int] = defaultdict(int)
    error_counts: dict[str, int] = defaultdict(int)

    for o in responses:
        if o.success:
            success += 1
        else:
            failed += 1
            if o.error:
                error_counts[o.error[:ERROR_KEY_MAX_LENGTH]] += 1
            else:
                error_counts[f"HTTP {o.status}"] += 1
        sum_times += o.elapsed_ms
        digest.update(o.elapsed_ms)
        status_counts[str(o.status)] += 1

    if not responses:
        return RunSummary(success_count=0, failure_count=0, responses=(), duration_ms=duration_ms)

    top_errors = sorted(error_counts.items(), key=lambda x: x[1], reverse=True)[:TOP_ERRORS_LIMIT]
    return RunSummary(
        success_count=success,
        failure_count=failed,
        responses=responses,
        duration_ms=duration_ms,
        avg_response_time_ms=sum_times / len(responses),
        p50_ms=_percentile_from_digest(digest, 50),
        p95_ms=_percentile_from_digest(digest, 95),
        p99_ms=_percentile_from_digest(digest, 99),
        status_code_counts=dict(status_counts),
        top_errors=dict(top_errors),
    )
