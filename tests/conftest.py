"""Shared test fixtures.

``local_server`` is a threaded HTTP server standing in for the application the
health checks are mounted into. Its behaviour is switched per test through
``server.state`` (reset before every test).
"""

from __future__ import annotations

import json
import socket
import threading
import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import urlsplit

import pytest

from healthchecks.health.resolver import RequestContext

DEFAULT_STATE: dict[str, Any] = {
    "error": False,
    "delay": 0.0,
    "status": 200,
    "expected": "Expected to see foo and bar",
    "redirect": None,
    "subdomain": "admin",
}


class _Handler(BaseHTTPRequestHandler):
    def log_message(self, format: str, *args) -> None:  # noqa: A002
        return

    def _send(self, status: int, body: str = "", headers: dict[str, str] | None = None) -> None:
        body_bytes = body.encode("utf-8")
        self.send_response(status)
        for k, v in (headers or {}).items():
            self.send_header(k, v)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body_bytes)))
        self.end_headers()
        self.wfile.write(body_bytes)

    def do_GET(self) -> None:  # noqa: N802
        state = self.server.state  # type: ignore[attr-defined]
        path = urlsplit(self.path).path

        if path == "/ok":
            self._send(200, "ok")
        elif path == "/empty":
            self._send(204)
        elif path == "/error":
            if state["error"]:
                # Drop the connection without a response
                self.close_connection = True
                self.connection.shutdown(socket.SHUT_RDWR)
            else:
                self._send(204)
        elif path == "/timeout":
            time.sleep(state["delay"])
            self._send(200)
        elif path.startswith("/delay/"):
            time.sleep(int(path.rsplit("/", 1)[1]) / 1000)
            self._send(200, "done")
        elif path == "/status":
            self._send(state["status"])
        elif path == "/expected":
            self._send(200, state["expected"])
        elif path == "/redirect":
            if state["redirect"]:
                self._send(302, headers={"Location": state["redirect"]})
            else:
                self._send(204)
        elif path == "/loop":
            self._send(302, headers={"Location": "/loop"})
        elif path.startswith("/chain/"):
            remaining = int(path.rsplit("/", 1)[1])
            if remaining > 0:
                self._send(301, headers={"Location": f"/chain/{remaining - 1}"})
            else:
                self._send(200, "end of chain")
        elif path == "/no-location":
            self._send(302)
        elif path == "/subdomain":
            subdomain = self.headers.get("Host", "").split(".")[0]
            self._send(200 if subdomain == state["subdomain"] else 404)
        elif path == "/ssl-required":
            proto = self.headers.get("X-Forwarded-Proto", "")
            self._send(200 if proto == "https" else 403)
        elif path == "/echo-headers":
            self._send(200, json.dumps({k.lower(): v for k, v in self.headers.items()}))
        else:
            self._send(404, "Not Found")


class _Server(ThreadingHTTPServer):
    daemon_threads = True

    def handle_error(self, request, client_address) -> None:
        # Late writes to connections the prober abandoned
        return


@dataclass
class LocalServer:
    host: str
    port: int
    state: dict[str, Any] = field(default_factory=dict)

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def reset(self) -> None:
        self.state.clear()
        self.state.update(DEFAULT_STATE)


@pytest.fixture(scope="session")
def local_server() -> Iterator[LocalServer]:
    httpd = _Server(("127.0.0.1", 0), _Handler)
    host, port = httpd.server_address[:2]
    server = LocalServer(host=host, port=port, state=dict(DEFAULT_STATE))
    httpd.state = server.state  # type: ignore[attr-defined]
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()

    try:
        yield server
    finally:
        httpd.shutdown()
        thread.join(timeout=5)
        httpd.server_close()


@pytest.fixture
def server(local_server: LocalServer) -> LocalServer:
    local_server.reset()
    return local_server


@pytest.fixture
def context(server: LocalServer) -> RequestContext:
    return RequestContext(protocol="http", host=server.host, port=server.port, request_id="req-123")


@pytest.fixture
def closed_port() -> int:
    """A port nothing listens on."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port
