"""Data models for volley.

Everything here is immutable once built:
- RequestSpec is shared read-only by every worker thread
- RequestOutcome is handed to the collector and never mutated again
- RunSummary is produced once, after the join barrier
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

# Methods that carry the merged parameters as a JSON body
BODY_METHODS = frozenset({"POST", "PUT"})
# Success window for HTTP status codes (inclusive start, exclusive end)
SUCCESS_STATUS_MIN = 200
SUCCESS_STATUS_MAX = 300


def _empty_mapping() -> Mapping[str, Any]:
    return MappingProxyType({})


@dataclass(frozen=True, slots=True)
class RandomRule:
    """Per-parameter randomization rule.

    A range rule ("1-1000") yields a uniform integer in [low, high];
    anything else is a literal passed through unchanged.
    """

    source: str
    low: int | None = None
    high: int | None = None

    @property
    def is_range(self) -> bool:
        return self.low is not None and self.high is not None


@dataclass(frozen=True, slots=True)
class RequestSpec:
    """Canonical, validated run configuration."""

    url: str
    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=_empty_mapping)
    params: Mapping[str, Any] = field(default_factory=_empty_mapping)
    rules: Mapping[str, RandomRule] = field(default_factory=_empty_mapping)
    threads: int = 1
    iterations: int = 1

    @property
    def total_requests(self) -> int:
        return self.threads * self.iterations

    @property
    def sends_body(self) -> bool:
        return self.method in BODY_METHODS


@dataclass(frozen=True, slots=True)
class RequestOutcome:
    """Result of one (thread, iteration) request cycle.

    status is 0 when no response was received; error is "" when the call went through.
    """

    thread: int
    iteration: int
    status: int
    body_preview: str = ""
    error: str = ""
    elapsed_ms: float = 0.0

    @property
    def success(self) -> bool:
        return not self.error and SUCCESS_STATUS_MIN <= self.status < SUCCESS_STATUS_MAX

    def to_dict(self) -> dict[str, Any]:
        return {
            "thread": self.thread,
            "iteration": self.iteration,
            "status": self.status,
            "body_preview": self.body_preview,
            "error": self.error,
            "elapsed_ms": round(self.elapsed_ms, 2),
        }


@dataclass(frozen=True, slots=True)
class RunSummary:
    """Aggregated result of a full run. responses keep arrival order."""

    success_count: int
    failure_count: int
    responses: tuple[RequestOutcome, ...]
    duration_ms: float = 0.0
    avg_response_time_ms: float = 0.0
    p50_ms: float = 0.0
    p95_ms: float = 0.0
    p99_ms: float = 0.0
    status_code_counts: Mapping[str, int] = field(default_factory=dict)
    top_errors: Mapping[str, int] = field(default_factory=dict)

    @property
    def total_requests(self) -> int:
        return len(self.responses)

    @property
    def success_rate_pct(self) -> float:
        if not self.responses:
            return 100.0
        return 100.0 * self.success_count / len(self.responses)

    @property
    def tps(self) -> float:
        if self.duration_ms <= 0:
            return 0.0
        return 1000.0 * len(self.responses) / self.duration_ms

    def to_report(self) -> dict[str, Any]:
        """Machine-readable report: counts, every outcome, and latency metrics."""
        return {
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "responses": [r.to_dict() for r in self.responses],
            "metrics": {
                "total_requests": self.total_requests,
                "duration_ms": round(self.duration_ms, 2),
                "tps": round(self.tps, 4),
                "success_rate_pct": round(self.success_rate_pct, 4),
                "avg_response_time_ms": round(self.avg_response_time_ms, 4),
                "p50_ms": round(self.p50_ms, 4),
                "p95_ms": round(self.p95_ms, 4),
                "p99_ms": round(self.p99_ms, 4),
                "status_code_counts": dict(self.status_code_counts),
                "top_errors": dict(self.top_errors),
            },
        }
