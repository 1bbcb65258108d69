"""Exception hierarchy for volley.

Two kinds of failure exist in a run. Run-level errors (ConfigError,
RunnerError) stop the run and reach the caller. Cycle-level errors
(CycleError and its subclasses) never leave the worker: execute_cycle turns
them into a status-0 outcome whose error field is the exception message.
"""

from __future__ import annotations

from typing import Any


class VolleyError(Exception):
    """Root of every volley exception.

    ``message`` is what ends up in an outcome's error field or on stderr, so it
    stays free of context. ``context`` (e.g. the offending field or thread
    index) and ``original_error`` (the httpx, yaml or orjson exception being
    wrapped) only appear in ``str()``, which is what logs show.
    """

    def __init__(
        self,
        message: str,
        *,
        context: dict[str, Any] | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = dict(context or {})
        self.original_error = original_error

    def __str__(self) -> str:
        parts = [self.message]
        if self.context:
            parts.append("(" + ", ".join(f"{k}={v!r}" for k, v in self.context.items()) + ")")
        if self.original_error is not None:
            parts.append(f"<- {type(self.original_error).__name__}: {self.original_error}")
        return " ".join(parts)


class ConfigError(VolleyError):
    """Run config rejected before any request is sent.

    Raised for an empty or non-http(s) URL, an unreadable or malformed YAML
    file, and fields of the wrong shape (``headers: [..]``, ``threads: "many"``).
    """


class RunnerError(VolleyError):
    """A worker thread crashed outside the request cycle. The run has no summary."""


class CycleError(VolleyError):
    """One request cycle failed. Recorded on the outcome, never raised past the worker."""


class RequestConstructionError(CycleError):
    """The request could not be built: bad method token, params not JSON-encodable, or URL rejected."""


class TransportError(CycleError):
    """The request was built but the exchange failed: DNS, connect, TLS, protocol or total timeout."""
