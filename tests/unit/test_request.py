"""
Unit tests for HTTP request parsing.
"""

import pytest

from miniweb.http.request import HTTPParseError, HTTPRequest, RequestParser, parse_request


class TestRequestParser:
    """Tests for RequestParser."""

    def test_parse_simple_get(self, sample_get_request: bytes):
        """Request line, headers and query are all parsed."""
        request = parse_request(sample_get_request, ("10.0.0.1", 4000))

        assert request.method == "GET"
        assert request.path == "/api/productos"
        assert request.version == "HTTP/1.1"
        assert request.client_address == ("10.0.0.1", 4000)
        assert request.headers["host"] == "localhost:3000"
        assert request.get_header("User-Agent") == "pytest"

    def test_target_keeps_query_string(self, sample_get_request: bytes):
        """target is the request-target as sent, path is without the query."""
        request = parse_request(sample_get_request)

        assert request.target == "/api/productos?categoria=Audio&pagina=1"
        assert request.get_query("categoria") == "Audio"
        assert request.get_query("missing", "x") == "x"

    def test_repeated_query_parameters(self):
        """Every value is kept; query_first_values collapses them."""
        request = parse_request(b"GET /p?tag=a&tag=b&empty= HTTP/1.1\r\n\r\n")

        assert request.get_query_list("tag") == ["a", "b"]
        assert request.query_first_values() == {"tag": "a", "empty": ""}

    def test_parse_post_with_json_body(self, sample_post_request: bytes):
        """JSON bodies are exposed through .json."""
        request = parse_request(sample_post_request)

        assert request.method == "POST"
        assert request.is_json is True
        assert request.json == {"author": "ana", "text": "Muy bueno"}

    def test_invalid_json_raises(self):
        """Malformed JSON in .json is a 400 parse error."""
        raw = (
            b"POST /x HTTP/1.1\r\nContent-Type: application/json\r\n"
            b"Content-Length: 5\r\n\r\n{nope"
        )
        request = parse_request(raw)

        with pytest.raises(HTTPParseError) as exc_info:
            request.json
        assert exc_info.value.status_code == 400

    def test_percent_encoded_path(self):
        """Paths are percent-decoded."""
        request = parse_request(b"GET /productos/caf%C3%A9 HTTP/1.1\r\n\r\n")
        assert request.path == "/productos/café"

    def test_body_trimmed_to_content_length(self):
        """Bytes after Content-Length belong to the next request."""
        raw = b"POST /x HTTP/1.1\r\nContent-Length: 3\r\n\r\nabcdef"
        assert parse_request(raw).body == b"abc"

    def test_short_body_rejected(self):
        """A body shorter than Content-Length is an error."""
        raw = b"POST /x HTTP/1.1\r\nContent-Length: 10\r\n\r\nabc"
        with pytest.raises(HTTPParseError):
            parse_request(raw)

    @pytest.mark.parametrize("value", [b"abc", b"-1"])
    def test_invalid_content_length(self, value: bytes):
        raw = b"POST /x HTTP/1.1\r\nContent-Length: " + value + b"\r\n\r\n"
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)
        assert exc_info.value.status_code == 400

    def test_unknown_method(self):
        """Unknown methods are rejected with 405."""
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"BREW /pot HTTP/1.1\r\n\r\n")
        assert exc_info.value.status_code == 405

    def test_unsupported_version(self):
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"GET / HTTP/2.0\r\n\r\n")
        assert exc_info.value.status_code == 505

    def test_invalid_request_line(self):
        with pytest.raises(HTTPParseError):
            parse_request(b"GET\r\nHost: test\r\n\r\n")

    def test_missing_header_terminator(self):
        with pytest.raises(HTTPParseError):
            parse_request(b"GET / HTTP/1.1\r\nHost: test\r\n")

    def test_path_traversal_blocked(self):
        """'..' segments never reach routing or static files."""
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"GET /static/../../etc/passwd HTTP/1.1\r\n\r\n")
        assert "path" in str(exc_info.value).lower()

    def test_encoded_traversal_blocked(self):
        with pytest.raises(HTTPParseError):
            parse_request(b"GET /static/%2e%2e/secret HTTP/1.1\r\n\r\n")

    def test_request_too_large(self):
        """Oversized requests are rejected with 413."""
        parser = RequestParser(max_request_size=100)
        raw = b"GET / HTTP/1.1\r\nX-Large: " + b"A" * 200 + b"\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parser.parse(raw)
        assert exc_info.value.status_code == 413

    def test_duplicate_headers_joined(self):
        raw = b"GET / HTTP/1.1\r\nAccept: text/html\r\nAccept: application/json\r\n\r\n"
        assert parse_request(raw).headers["accept"] == "text/html, application/json"

    def test_folded_header(self):
        raw = b"GET / HTTP/1.1\r\nX-Long: first\r\n  second\r\n\r\n"
        assert parse_request(raw).headers["x-long"] == "first second"


class TestHTTPRequest:
    """Tests for HTTPRequest properties."""

    def test_cookies(self, sample_get_request: bytes):
        request = parse_request(sample_get_request)
        assert request.cookies == {"session": "abc123", "theme": "dark"}

    def test_cookies_first_occurrence_wins(self):
        request = HTTPRequest("GET", "/", headers={"cookie": "a=1; junk; a=2"})
        assert request.cookies == {"a": "1"}

    def test_no_cookie_header(self):
        assert HTTPRequest("GET", "/").cookies == {}

    def test_content_type_strips_parameters(self):
        request = HTTPRequest(
            "POST", "/", headers={"content-type": "Application/JSON; charset=utf-8"}
        )
        assert request.content_type == "application/json"
        assert request.is_json is True

    def test_keep_alive_rules(self):
        """HTTP/1.1 defaults to keep-alive, HTTP/1.0 to close."""
        assert HTTPRequest("GET", "/", version="HTTP/1.1").is_keep_alive is True
        assert HTTPRequest(
            "GET", "/", version="HTTP/1.1", headers={"connection": "close"}
        ).is_keep_alive is False
        assert HTTPRequest("GET", "/", version="HTTP/1.0").is_keep_alive is False
        assert HTTPRequest(
            "GET", "/", version="HTTP/1.0", headers={"connection": "keep-alive"}
        ).is_keep_alive is True

    def test_target_defaults_to_path(self):
        assert HTTPRequest("GET", "/a").target == "/a"
