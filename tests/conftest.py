"""
pytest configuration and fixtures.
"""

import socket
import sys
import threading
import time
from pathlib import Path
from typing import Dict, Generator, Optional, Tuple

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from miniweb import HTTPServer, ServerConfig
from miniweb.context import RequestContext
from miniweb.http import HTTPRequest, ResponseWriter
from miniweb.stores import Stores
from miniweb.templates import TemplateEngine


def make_request(
    method: str = "GET",
    path: str = "/",
    headers: Optional[dict] = None,
    body: bytes = b"",
    query: Optional[dict] = None,
    target: str = "",
) -> HTTPRequest:
    """Build an HTTPRequest directly, without going through the parser."""
    return HTTPRequest(
        method=method,
        path=path,
        headers={k.lower(): v for k, v in (headers or {}).items()},
        query_params={k: [v] for k, v in (query or {}).items()},
        body=body,
        target=target,
        client_address=("127.0.0.1", 50000),
    )


def make_context(
    request: Optional[HTTPRequest] = None,
    stores: Optional[Stores] = None,
    params: Optional[dict] = None,
    templates: Optional[TemplateEngine] = None,
) -> RequestContext:
    return RequestContext.create(
        request or make_request(),
        ResponseWriter(),
        stores or Stores.create(),
        params=params,
        templates=templates,
    )


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /api/productos?categoria=Audio&pagina=1 HTTP/1.1\r\n"
        b"Host: localhost:3000\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"Cookie: session=abc123; theme=dark\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a JSON body."""
    body = b'{"author": "ana", "text": "Muy bueno"}'
    return (
        b"POST /api/productos/3/comments HTTP/1.1\r\n"
        b"Host: localhost:3000\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def stores() -> Stores:
    return Stores.create(cache_ttl=60)


@pytest.fixture
def views_dir(tmp_path: Path) -> Path:
    """A small views directory with a layout and a 404 page."""
    views = tmp_path / "views"
    views.mkdir()
    (views / "layout.html").write_text(
        "<title>{{titulo}}</title><main>{{{content}}}</main>", encoding="utf-8"
    )
    (views / "page.html").write_text("<h1>{{titulo}}</h1>", encoding="utf-8")
    (views / "404.html").write_text("<p>{{mensaje}}</p>", encoding="utf-8")
    return views


@pytest.fixture
def config() -> ServerConfig:
    """Test server configuration; port 0 lets the OS pick."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        keep_alive_timeout=1.0,
        log_level="WARNING",
    )


def read_all(sock: socket.socket) -> bytes:
    chunks = []
    while True:
        chunk = sock.recv(65536)
        if not chunk:
            return b"".join(chunks)
        chunks.append(chunk)


def read_response(sock: socket.socket) -> Tuple[bytes, Dict[str, str], bytes]:
    """Read exactly one response from a keep-alive connection."""
    data = b""
    while b"\r\n\r\n" not in data:
        chunk = sock.recv(65536)
        if not chunk:
            raise ConnectionError("Connection closed before headers")
        data += chunk
    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode("iso-8859-1").split("\r\n")
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()
    length = int(headers.get("content-length", "0"))
    while len(body) < length:
        chunk = sock.recv(65536)
        if not chunk:
            break
        body += chunk
    return lines[0].encode("iso-8859-1"), headers, body[:length]


class RunningServer:
    """Runs an HTTPServer on a background thread for socket-level tests."""

    def __init__(self, server: HTTPServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self._port

    def start(self) -> "RunningServer":
        self.server.bind()
        self._port = self.server.address[1]
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        deadline = time.monotonic() + 5.0
        while time.monotonic() < deadline:
            if self.server.is_running:
                return self
            time.sleep(0.05)
        raise RuntimeError("Server failed to start")

    def connect(self, timeout: float = 5.0) -> socket.socket:
        return socket.create_connection(("127.0.0.1", self._port), timeout=timeout)

    def request(self, raw: bytes) -> bytes:
        """Send one raw request on a fresh connection and read until close."""
        with self.connect() as sock:
            sock.sendall(raw)
            return read_all(sock)

    def stop(self) -> None:
        self.server.stop()
        if self._thread is not None:
            self._thread.join(timeout=10.0)


@pytest.fixture
def running_server() -> Generator:
    """Factory fixture: running_server(server) starts it; all are stopped at teardown."""
    started = []

    def start(server: HTTPServer) -> RunningServer:
        running = RunningServer(server).start()
        started.append(running)
        return running

    yield start

    for running in started:
        running.stop()
