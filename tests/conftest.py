"""Pytest fixtures for volley tests."""

from __future__ import annotations

import random
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Callable

import httpx
import pytest

from volley.engine import create_client


@pytest.fixture
def mock_client_factory() -> Callable[..., httpx.Client]:
    """Build shared clients backed by httpx.MockTransport; all are closed on teardown."""
    clients: list[httpx.Client] = []

    def _make(handler: Callable[[httpx.Request], httpx.Response], max_connections: int = 4) -> httpx.Client:
        client = create_client(max_connections=max_connections, transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _make
    for c in clients:
        c.close()


@pytest.fixture
def ok_handler() -> Callable[[httpx.Request], httpx.Response]:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b'{"ok":true}')

    return _handler


@pytest.fixture
def seeded_rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def tmp_config_file(tmp_path: Path) -> Path:
    """Minimal valid run config."""
    p = tmp_path / "run.yaml"
    p.write_text(
        """
url: http://example.test/orders
method: post
headers:
  X-Api-Key: secret
params:
  source: load
threads: 3
iterations: 2
random_param:
  id: "1-1000"
""",
        encoding="utf-8",
    )
    return p


@pytest.fixture
def slow_http_server() -> Callable[..., str]:
    """Local HTTP server that delays the response headers and then the body.

    Returns a factory: slow_http_server(header_delay, body_delay) -> base URL.
    """
    servers: list[ThreadingHTTPServer] = []

    def _start(header_delay: float, body_delay: float, body: bytes = b"hello") -> str:
        class _Handler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:
                time.sleep(header_delay)
                self.send_response(200)
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.flush()
                time.sleep(body_delay)
                try:
                    self.wfile.write(body)
                except OSError:
                    pass  # client gave up

            def log_message(self, format: str, *args: object) -> None:
                pass

        server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
        server.daemon_threads = True
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        host, port = server.server_address[:2]
        return f"http://{host}:{port}/"

    yield _start
    for s in servers:
        s.shutdown()
        s.server_close()
