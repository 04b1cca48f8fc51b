"""
Integration tests: a real server on a local socket.
"""

import json

import pytest

from miniweb import HTTPServer
from miniweb.shop import Catalog, create_shop_app

from conftest import read_response


@pytest.fixture
def app(config, running_server):
    server = HTTPServer(config)

    @server.get("/hola/:nombre")
    def hola(ctx):
        ctx.json({"hola": ctx.params["nombre"]})

    @server.post("/eco")
    def eco(ctx):
        ctx.send(200, ctx.request.body.decode("utf-8"))

    @server.get("/boom")
    def boom(ctx):
        raise RuntimeError("handler failed")

    return running_server(server)


class TestServerIntegration:
    """End-to-end requests over TCP."""

    def test_simple_get(self, app):
        raw = app.request(b"GET /hola/mundo HTTP/1.1\r\nHost: x\r\nConnection: close\r\n\r\n")

        head, _, body = raw.partition(b"\r\n\r\n")
        assert head.startswith(b"HTTP/1.1 200 OK")
        assert b"Connection: close" in head
        assert b"Server: miniweb/1.0" in head
        assert json.loads(body) == {"hola": "mundo"}

    def test_post_body(self, app):
        raw = app.request(
            b"POST /eco HTTP/1.1\r\nHost: x\r\nContent-Length: 4\r\n"
            b"Connection: close\r\n\r\nping"
        )
        assert raw.endswith(b"\r\n\r\nping")

    def test_keep_alive(self, app):
        """Several requests share one connection."""
        with app.connect() as sock:
            for name in ("a", "b", "c"):
                sock.sendall(f"GET /hola/{name} HTTP/1.1\r\nHost: x\r\n\r\n".encode())
                status, headers, body = read_response(sock)

                assert status == b"HTTP/1.1 200 OK"
                assert headers["connection"] == "keep-alive"
                assert headers["keep-alive"] == "timeout=1"
                assert json.loads(body) == {"hola": name}

    def test_pipelined_requests(self, app):
        with app.connect() as sock:
            sock.sendall(
                b"GET /hola/uno HTTP/1.1\r\nHost: x\r\n\r\n"
                b"GET /hola/dos HTTP/1.1\r\nHost: x\r\n\r\n"
            )
            first = read_response(sock)
            second = read_response(sock)

        assert json.loads(first[2]) == {"hola": "uno"}
        assert json.loads(second[2]) == {"hola": "dos"}

    def test_failed_request_leaves_connection_usable(self, app):
        with app.connect() as sock:
            sock.sendall(b"GET /boom HTTP/1.1\r\nHost: x\r\n\r\n")
            status, headers, body = read_response(sock)

            assert status == b"HTTP/1.1 500 Internal Server Error"
            assert body == b"Internal Server Error"

            sock.sendall(b"GET /hola/otra HTTP/1.1\r\nHost: x\r\n\r\n")
            status, headers, body = read_response(sock)

            assert status == b"HTTP/1.1 200 OK"
            assert json.loads(body) == {"hola": "otra"}

    def test_http10_closes(self, app):
        raw = app.request(b"GET /hola/viejo HTTP/1.0\r\n\r\n")
        assert b"Connection: close" in raw

    def test_not_found(self, app):
        raw = app.request(b"GET /api/nada HTTP/1.1\r\nConnection: close\r\n\r\n")

        assert raw.startswith(b"HTTP/1.1 404 Not Found")
        assert raw.endswith(b'{"error": "Not found"}')

    def test_malformed_request(self, app):
        raw = app.request(b"NONSENSE\r\n\r\n")

        assert raw.startswith(b"HTTP/1.1 400 Bad Request")
        assert b"Connection: close" in raw

    def test_unknown_method(self, app):
        raw = app.request(b"BREW /pot HTTP/1.1\r\n\r\n")
        assert raw.startswith(b"HTTP/1.1 405")

    def test_head_has_no_body(self, app):
        raw = app.request(b"HEAD /hola/x HTTP/1.1\r\nConnection: close\r\n\r\n")

        head, _, body = raw.partition(b"\r\n\r\n")
        assert head.startswith(b"HTTP/1.1 200 OK")
        assert b"Content-Length: 13" in head
        assert body == b""

    def test_idle_keep_alive_connection_closed(self, app):
        with app.connect() as sock:
            sock.sendall(b"GET /hola/x HTTP/1.1\r\nHost: x\r\n\r\n")
            read_response(sock)
            # the server drops the connection after keep_alive_timeout
            assert sock.recv(1024) == b""


class TestShopIntegration:
    """The storefront served over TCP."""

    @pytest.fixture
    def shop(self, config, tmp_path, running_server):
        config.data_dir = str(tmp_path / "data")
        server = create_shop_app(config, catalog=Catalog([
            {"id": 1, "nombre": "Lámpara", "precio": 25, "categoria": "Hogar"},
        ]))
        return running_server(server)

    def test_api_and_comments(self, shop):
        body = b'{"author": "ana", "text": "Linda"}'
        created = shop.request(
            b"POST /api/productos/1/comments HTTP/1.1\r\n"
            b"Content-Type: application/json\r\n"
            + f"Content-Length: {len(body)}\r\n".encode()
            + b"Connection: close\r\n\r\n" + body
        )
        assert created.startswith(b"HTTP/1.1 201 Created")

        listed = shop.request(
            b"GET /api/productos/1/comments HTTP/1.1\r\nConnection: close\r\n\r\n"
        )
        comments = json.loads(listed.partition(b"\r\n\r\n")[2])
        assert [c["author"] for c in comments] == ["ana"]

    def test_static_asset(self, shop):
        raw = shop.request(b"GET /static/css/styles.css HTTP/1.1\r\nConnection: close\r\n\r\n")

        assert raw.startswith(b"HTTP/1.1 200 OK")
        assert b"Content-Type: text/css" in raw
        assert b"ETag: " in raw

    def test_traversal_rejected(self, shop):
        raw = shop.request(b"GET /static/../app.py HTTP/1.1\r\nConnection: close\r\n\r\n")
        assert raw.startswith(b"HTTP/1.1 400")

    def test_html_page(self, shop):
        raw = shop.request(b"GET /productos/1 HTTP/1.1\r\nConnection: close\r\n\r\n")

        assert raw.startswith(b"HTTP/1.1 200 OK")
        assert "Lámpara".encode("utf-8") in raw
        assert b"Set-Cookie: session=" in raw
