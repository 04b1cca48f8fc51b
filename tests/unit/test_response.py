"""
Unit tests for responses: HTTPResponse, ResponseBuilder and ResponseWriter.
"""

import json

import pytest

from miniweb.http import (
    HTTPResponse,
    HTTPStatus,
    ResponseBuilder,
    ResponseWriter,
    bad_request,
    created,
    internal_error,
    not_found,
    ok,
    reason_phrase,
)


class TestHTTPResponse:
    """Tests for HTTPResponse serialisation."""

    def test_status_line(self):
        response = HTTPResponse(status=HTTPStatus.NOT_FOUND)
        assert response.status_line == "HTTP/1.1 404 Not Found"

    def test_unknown_status_phrase(self):
        assert HTTPResponse(status=599).status_line == "HTTP/1.1 599 Unknown"
        assert reason_phrase(599) == "Unknown"

    def test_to_bytes_adds_length_date_and_server(self):
        raw = HTTPResponse(body=b"hola").to_bytes(server_name="test/1")
        head, body = raw.split(b"\r\n\r\n", 1)

        assert head.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"Content-Length: 4" in head
        assert b"Date: " in head
        assert b"Server: test/1" in head
        assert body == b"hola"

    def test_explicit_headers_are_not_replaced(self):
        response = HTTPResponse(headers={"content-length": "0", "Server": "x"})
        raw = response.to_bytes()

        assert raw.count(b"Server:") == 1
        assert b"Content-Length" not in raw

    def test_head_omits_body_but_keeps_length(self):
        raw = HTTPResponse(body=b"abcdef").to_bytes(include_body=False)

        assert raw.endswith(b"\r\n\r\n")
        assert b"Content-Length: 6" in raw

    def test_get_header_is_case_insensitive(self):
        response = HTTPResponse(headers={"Content-Type": "text/plain"})

        assert response.get_header("content-type") == "text/plain"
        assert response.get_header("x-missing", "d") == "d"


class TestResponseBuilder:
    """Tests for ResponseBuilder."""

    def test_status(self):
        response = ResponseBuilder().status(HTTPStatus.CREATED).build()
        assert response.status == HTTPStatus.CREATED

    def test_json_body(self):
        data = {"nombre": "Monitor 27\"", "precio": 300}
        response = ResponseBuilder().json(data).build()

        assert response.headers["Content-Type"] == "application/json; charset=utf-8"
        assert json.loads(response.body) == data

    def test_json_keeps_non_ascii(self):
        response = ResponseBuilder().json({"categoria": "Electrónica"}).build()
        assert "Electrónica".encode("utf-8") in response.body

    def test_html_and_text(self):
        html = ResponseBuilder().html("<p>hola</p>").build()
        text = ResponseBuilder().text("hola").build()

        assert html.headers["Content-Type"] == "text/html; charset=utf-8"
        assert text.headers["Content-Type"] == "text/plain; charset=utf-8"
        assert text.body == b"hola"

    def test_redirect(self):
        response = ResponseBuilder().redirect("/login").build()

        assert response.status == HTTPStatus.FOUND
        assert response.headers["Location"] == "/login"

    def test_redirect_permanent(self):
        response = ResponseBuilder().redirect("/new", permanent=True).build()
        assert response.status == HTTPStatus.MOVED_PERMANENTLY

    def test_cache_headers(self):
        assert ResponseBuilder().cache(60).build().headers["Cache-Control"] == "public, max-age=60"
        assert ResponseBuilder().no_cache().build().headers["Cache-Control"] == "no-store"


class TestHelpers:
    """Tests for the response helper functions."""

    def test_ok_json_for_dicts(self):
        response = ok({"ok": True})

        assert response.status == 200
        assert json.loads(response.body) == {"ok": True}

    def test_ok_text_for_strings(self):
        assert ok("fine").headers["Content-Type"].startswith("text/plain")

    def test_created_with_location(self):
        response = created({"id": 1}, location="/api/productos/1")

        assert response.status == 201
        assert response.headers["Location"] == "/api/productos/1"

    def test_error_helpers(self):
        assert json.loads(not_found().body) == {"error": "Not found"}
        assert json.loads(bad_request("falta author").body) == {"error": "falta author"}

    def test_internal_error_is_fixed_text(self):
        response = internal_error()

        assert response.status == 500
        assert response.body == b"Internal Server Error"


class TestResponseWriter:
    """Tests for ResponseWriter state handling."""

    def test_defaults(self):
        writer = ResponseWriter()

        assert writer.status == 200
        assert writer.headers_sent is False
        assert writer.finished is False
        assert writer.result is None

    def test_end_builds_result(self):
        writer = ResponseWriter()
        writer.status = 201
        writer.set_header("X-Test", "1")
        writer.end("listo")

        assert writer.finished is True
        assert writer.headers_sent is True
        assert writer.result.status == 201
        assert writer.result.headers == {"X-Test": "1"}
        assert writer.result.body == b"listo"
        assert writer.body == b"listo"

    def test_header_names_case_insensitive(self):
        writer = ResponseWriter()
        writer.set_header("Content-Type", "text/plain")
        writer.set_header("content-type", "text/html")

        assert writer.get_header("CONTENT-TYPE") == "text/html"
        assert len(writer.headers) == 1

    def test_remove_header(self):
        writer = ResponseWriter()
        writer.set_header("X-A", "1")
        writer.remove_header("x-a")
        assert writer.get_header("X-A") is None

    def test_set_header_after_headers_sent(self):
        writer = ResponseWriter()
        writer.write_head(200, {"Content-Type": "text/plain"})

        with pytest.raises(RuntimeError):
            writer.set_header("X-Late", "1")

    def test_write_commits_headers(self):
        writer = ResponseWriter()
        writer.write("a")
        writer.write(b"b")

        assert writer.headers_sent is True
        assert writer.finished is False
        assert writer.body == b"ab"

        writer.end("c")
        assert writer.result.body == b"abc"

    def test_write_after_end(self):
        writer = ResponseWriter()
        writer.end()
        with pytest.raises(RuntimeError):
            writer.write("more")

    def test_second_end_is_ignored(self, caplog):
        writer = ResponseWriter()
        writer.text("first")
        writer.end("second")

        assert writer.result.body == b"first"
        assert "finished response" in caplog.text

    def test_on_finish_listeners(self):
        writer = ResponseWriter()
        seen = []
        writer.on_finish(lambda w: seen.append(w.status))

        writer.json({"ok": True}, status=201)

        assert seen == [201]

    def test_on_finish_after_end_runs_immediately(self):
        writer = ResponseWriter()
        writer.end()
        seen = []
        writer.on_finish(lambda w: seen.append("late"))
        assert seen == ["late"]

    def test_failing_listener_does_not_break_end(self):
        writer = ResponseWriter()

        def broken(w):
            raise ValueError("boom")

        writer.on_finish(broken)
        writer.end("ok")

        assert writer.finished is True

    def test_abort(self):
        writer = ResponseWriter()
        writer.abort()

        assert writer.aborted is True
        assert writer.headers_sent is True
        assert writer.result is None

    def test_shortcuts_set_content_type(self):
        writer = ResponseWriter()
        writer.html("<p>x</p>", status=404)

        assert writer.result.status == 404
        assert writer.get_header("Content-Type") == "text/html; charset=utf-8"

    def test_redirect(self):
        writer = ResponseWriter()
        writer.redirect("/")

        assert writer.result.status == 302
        assert writer.result.headers["Location"] == "/"

    def test_send_response_keeps_existing_headers(self):
        writer = ResponseWriter()
        writer.set_header("Set-Cookie", "session=abc")
        writer.send_response(not_found())

        assert writer.result.status == 404
        assert writer.get_header("Set-Cookie") == "session=abc"
        assert json.loads(writer.body) == {"error": "Not found"}
