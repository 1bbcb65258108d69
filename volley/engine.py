"""Request cycle execution on a shared, thread-safe httpx client.

This module provides the core HTTP request logic:
- prepare_headers: static headers plus the JSON content type for body methods
- build_request: params -> httpx.Request (raises RequestConstructionError)
- execute_cycle: one request cycle, always returns a RequestOutcome
- run_worker: sequential iterations for one thread slot
- create_client: shared sync HTTP client factory

Each call gets exactly one attempt. No retries. The per-call timeout is a
wall-clock budget for the whole call, not a per-phase limit.
"""

from __future__ import annotations

import codecs
import re
import socket
import threading
import time
from typing import Any, TYPE_CHECKING

import httpx
import orjson

from .exceptions import CycleError, RequestConstructionError, TransportError
from .logging_config import get_logger
from .models import RequestOutcome, RequestSpec
from .randomizer import RandomSource, build_params

if TYPE_CHECKING:
    from .metrics import OutcomeCollector

logger = get_logger("engine")

# Total budget per call: connect, send, headers and body
DEFAULT_TIMEOUT_SEC = 10.0
BODY_PREVIEW_BYTES = 100
JSON_CONTENT_TYPE = "application/json"
DEFAULT_KEEPALIVE_EXPIRY = 30.0
MAX_REDIRECTS = 10
NS_TO_MS = 1_000_000
# Floor for a phase timeout once the budget is nearly spent
MIN_PHASE_TIMEOUT_SEC = 0.001
# RFC 9110 token characters
HTTP_METHOD_TOKEN = re.compile(r"^[!#$%&'*+.^_`|~0-9A-Za-z-]+$")


def prepare_headers(spec: RequestSpec) -> dict[str, str]:
    """Static headers first; Content-Type added for POST/PUT only if the caller did not set one."""
    h = dict(spec.headers)
    if spec.sends_body and "content-type" not in {k.lower() for k in h}:
        h["Content-Type"] = JSON_CONTENT_TYPE
    return h


def build_request(
    client: httpx.Client,
    spec: RequestSpec,
    headers: dict[str, str],
    params: dict[str, Any],
    timeout: float = DEFAULT_TIMEOUT_SEC,
) -> httpx.Request:
    """Build one request. params become a JSON body for POST/PUT and are unused otherwise.

    Raises:
        RequestConstructionError: Invalid method token, unencodable params, or URL rejected by httpx
    """
    if not HTTP_METHOD_TOKEN.match(spec.method):
        raise RequestConstructionError(f"Invalid HTTP method: {spec.method!r}")

    content: bytes | None = None
    if spec.sends_body:
        try:
            content = orjson.dumps(params)
        except TypeError as e:  # orjson.JSONEncodeError is a TypeError
            raise RequestConstructionError(f"Cannot encode params as JSON: {e}", original_error=e) from e

    try:
        return client.build_request(
            spec.method,
            spec.url,
            headers=headers,
            content=content,
            timeout=httpx.Timeout(timeout),
        )
    except (httpx.InvalidURL, ValueError, TypeError) as e:
        raise RequestConstructionError(f"Cannot build request: {e}", original_error=e) from e


def _describe(request: httpx.Request, exc: Exception) -> str:
    detail = str(exc) or type(exc).__name__
    return f"{request.method} {request.url}: {detail}"


class CallDeadline:
    """Wall-clock budget shared by every phase of one call.

    Each httpx phase (pool, connect, write, read) is started with only the time
    left in the budget, and a timer shuts the socket down once the budget is
    spent so a body trickling in byte by byte cannot hold the worker.
    """

    __slots__ = ("budget", "expires_at", "_lock", "_done", "_timer")

    def __init__(self, budget: float) -> None:
        self.budget = budget
        self.expires_at = time.monotonic() + budget
        self._lock = threading.Lock()
        self._done = False
        self._timer: threading.Timer | None = None

    def remaining(self) -> float:
        return max(self.expires_at - time.monotonic(), MIN_PHASE_TIMEOUT_SEC)

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def _shrink(self, timeouts: dict[str, float | None]) -> None:
        left = self.remaining()
        for phase in ("connect", "read", "write", "pool"):
            timeouts[phase] = left

    def bind(self, request: httpx.Request) -> None:
        """Cap the request's timeouts now and again at the start of each transport phase."""
        timeouts = request.extensions.setdefault("timeout", {})
        self._shrink(timeouts)

        def _on_trace(event_name: str, info: dict[str, Any]) -> None:
            if event_name.endswith(".started"):
                self._shrink(timeouts)

        request.extensions["trace"] = _on_trace

    def arm(self, response: httpx.Response) -> None:
        """Start the timer that aborts the body read at the deadline (real sockets only)."""
        stream = response.extensions.get("network_stream")
        sock = stream.get_extra_info("socket") if stream is not None else None
        if sock is None:
            return
        self._timer = threading.Timer(max(self.expires_at - time.monotonic(), 0.0), self._abort, args=(sock,))
        self._timer.daemon = True
        self._timer.start()

    def _abort(self, sock: socket.socket) -> None:
        with self._lock:
            if self._done:
                return
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # peer already closed it

    def disarm(self) -> None:
        with self._lock:
            self._done = True
        if self._timer is not None:
            self._timer.cancel()

    def error(self, request: httpx.Request, cause: Exception | None = None) -> TransportError:
        return TransportError(
            f"{request.method} {request.url}: total timeout of {self.budget:g}s exceeded",
            context={"timeout_sec": self.budget},
            original_error=cause,
        )


def preview_text(raw: bytes) -> str:
    """Decode a body prefix for display, never longer than BODY_PREVIEW_BYTES once re-encoded.

    A code point cut at the end of the prefix is dropped; invalid bytes elsewhere
    become U+FFFD.
    """
    text = codecs.getincrementaldecoder("utf-8")(errors="replace").decode(raw, final=False)
    return text.encode("utf-8")[:BODY_PREVIEW_BYTES].decode("utf-8", errors="ignore")


def _send(
    client: httpx.Client,
    request: httpx.Request,
    deadline: CallDeadline,
) -> tuple[int, str]:
    """Send request, drain the body, keep the first BODY_PREVIEW_BYTES bytes.

    Raises:
        TransportError: httpx transport failure or total deadline exceeded
    """
    deadline.bind(request)
    try:
        response = client.send(request, stream=True)
    except httpx.TimeoutException as e:
        raise deadline.error(request, e) from e
    except httpx.HTTPError as e:
        raise TransportError(_describe(request, e), original_error=e) from e

    deadline.arm(response)
    preview = bytearray()
    try:
        for chunk in response.iter_bytes():
            if len(preview) < BODY_PREVIEW_BYTES:
                preview += chunk[: BODY_PREVIEW_BYTES - len(preview)]
            if deadline.expired:
                raise deadline.error(request)
    except httpx.HTTPError as e:
        # A shutdown from the deadline timer surfaces as a read or protocol error
        if deadline.expired or isinstance(e, httpx.TimeoutException):
            raise deadline.error(request, e) from e
        raise TransportError(_describe(request, e), original_error=e) from e
    finally:
        deadline.disarm()
        response.close()

    if deadline.expired:
        raise deadline.error(request)
    return response.status_code, preview_text(bytes(preview))


def execute_cycle(
    client: httpx.Client,
    spec: RequestSpec,
    headers: dict[str, str],
    params: dict[str, Any],
    thread: int,
    iteration: int,
    timeout: float = DEFAULT_TIMEOUT_SEC,
) -> RequestOutcome:
    """Run one request cycle and return its outcome.

    Note:
        Never raises for per-call failures: construction and transport errors are
        recorded with status 0 and an error message.
    """
    start_ns = time.perf_counter_ns()
    deadline = CallDeadline(timeout)
    try:
        request = build_request(client, spec, headers, params, timeout)
        status, preview = _send(client, request, deadline)
    except CycleError as e:
        elapsed_ms = (time.perf_counter_ns() - start_ns) / NS_TO_MS
        logger.debug("thread=%d iteration=%d failed: %s", thread, iteration, e.message)
        return RequestOutcome(
            thread=thread,
            iteration=iteration,
            status=0,
            body_preview="",
            error=e.message,
            elapsed_ms=elapsed_ms,
        )
    return RequestOutcome(
        thread=thread,
        iteration=iteration,
        status=status,
        body_preview=preview,
        error="",
        elapsed_ms=(time.perf_counter_ns() - start_ns) / NS_TO_MS,
    )


def run_worker(
    client: httpx.Client,
    spec: RequestSpec,
    thread: int,
    collector: OutcomeCollector,
    rng: RandomSource,
    timeout: float = DEFAULT_TIMEOUT_SEC,
    stop: threading.Event | None = None,
) -> int:
    """Single worker: iterations 1..M in order, each outcome pushed to collector.

    Args:
        client: Shared HTTP client
        spec: Read-only run spec
        thread: 1-based thread index recorded on every outcome
        collector: Thread-safe sink shared by all workers
        rng: Random source for range rules
        timeout: Total per-call budget in seconds
        stop: Set when the run is being abandoned; checked before each iteration

    Returns:
        Number of cycles executed (spec.iterations unless stopped early)
    """
    headers = prepare_headers(spec)
    done = 0
    for iteration in range(1, spec.iterations + 1):
        if stop is not None and stop.is_set():
            logger.debug("thread=%d stopped after %d of %d iterations", thread, done, spec.iterations)
            break
        params = build_params(spec.params, spec.rules, rng)
        collector.add(execute_cycle(client, spec, headers, params, thread, iteration, timeout))
        done += 1
    return done


def create_client(
    max_connections: int,
    timeout: float = DEFAULT_TIMEOUT_SEC,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """Create the HTTP client shared by all workers.

    The pool holds one connection per worker so no thread waits on another's connection.

    Args:
        max_connections: Pool size, normally the thread count
        timeout: Default per-phase timeout in seconds
        transport: Optional transport override (e.g. httpx.MockTransport in tests)
    """
    size = max(1, max_connections)
    limits = httpx.Limits(
        max_connections=size,
        max_keepalive_connections=size,
        keepalive_expiry=DEFAULT_KEEPALIVE_EXPIRY,
    )
    return httpx.Client(
        timeout=timeout,
        limits=limits,
        transport=transport,
        follow_redirects=True,
        max_redirects=MAX_REDIRECTS,
    )
