"""
=============================================================================
REQUEST PARSING
=============================================================================

Turns the raw bytes read from a client socket into an HTTPRequest.

    ┌──────────────────────────────────────────────────────────────────┐
    │  POST /api/productos/3/comments?src=web HTTP/1.1\r\n              │ ← request line
    │  Host: localhost:3000\r\n                                         │
    │  Content-Type: application/json\r\n                               │ ← headers
    │  Cookie: session=Zb1...; theme=dark\r\n                           │
    │  Content-Length: 35\r\n                                           │
    │  \r\n                                                             │ ← separator
    │  {"author": "ana", "text": "Genial"}                              │ ← body
    └──────────────────────────────────────────────────────────────────┘

The parser only understands Content-Length framed bodies. Header names are
folded to lower case once, here, so every consumer can look them up
directly.

Failures raise HTTPParseError carrying the status the server should answer
with:

    400  malformed request line, path escaping upwards, short body
    405  method outside VALID_METHODS
    413  request larger than max_request_size
    505  anything other than HTTP/1.0 or HTTP/1.1
=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Tuple
from urllib.parse import parse_qs, urlsplit, unquote
import json
import re


class HTTPParseError(Exception):
    """A request that cannot be understood; `status_code` is the answer."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    `path` is the decoded path without the query string; `target` keeps the
    request-target exactly as the client sent it, which is what access logs
    and the response cache key on. `query_params` maps each name to every
    value it was given, in order.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    body: bytes = b""
    target: str = ""
    client_address: Tuple[str, int] = ("", 0)

    _cookies: Optional[Dict[str, str]] = field(default=None, repr=False)

    def __post_init__(self):
        if not self.target:
            self.target = self.path

    @property
    def content_type(self) -> Optional[str]:
        """Media type of the body, lower-cased and stripped of parameters."""
        raw = self.headers.get("content-type", "")
        media_type = raw.split(";", 1)[0].strip().lower()
        return media_type or None

    @property
    def content_length(self) -> int:
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def is_json(self) -> bool:
        return self.content_type == "application/json"

    @property
    def json(self) -> Any:
        """
        The body decoded as JSON.

        Raises:
            HTTPParseError: if the body is not valid UTF-8 JSON.
        """
        if not self.body:
            return None
        try:
            return json.loads(self.body.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise HTTPParseError(f"Invalid JSON body: {e}")

    @property
    def cookies(self) -> Dict[str, str]:
        """
        Cookies sent in the Cookie header.

            Cookie: session=abc; theme=dark  →  {"session": "abc", "theme": "dark"}

        Pairs without "=" are ignored. The first occurrence of a name wins.
        """
        if self._cookies is None:
            jar: Dict[str, str] = {}
            for pair in self.headers.get("cookie", "").split(";"):
                name, sep, value = pair.strip().partition("=")
                if sep and name and name not in jar:
                    jar[name] = unquote(value.strip())
            self._cookies = jar
        return self._cookies

    @property
    def is_keep_alive(self) -> bool:
        """
        HTTP/1.1 keeps the connection open unless the client says "close";
        HTTP/1.0 closes it unless the client asks for "keep-alive".
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value given for a query parameter, or `default`."""
        values = self.query_params.get(name)
        return values[0] if values else default

    def get_query_list(self, name: str) -> List[str]:
        return list(self.query_params.get(name, []))

    def query_first_values(self) -> Dict[str, str]:
        """Query parameters collapsed to their first value each."""
        return {name: values[0] for name, values in self.query_params.items() if values}


class RequestParser:
    """
    Parses raw request bytes into HTTPRequest objects.

        parser = RequestParser(max_request_size=1024 * 1024)
        request = parser.parse(data, ("127.0.0.1", 50312))

    One parser is shared by every connection; it keeps no per-request state.
    """

    VALID_METHODS = frozenset({
        "GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS",
    })

    SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")

    REQUEST_LINE = re.compile(r"^([A-Z]+) (\S+) (HTTP/\d\.\d)$")
    HEADER_LINE = re.compile(r"^([^:\s][^:]*):[ \t]*(.*?)[ \t]*$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: Tuple[str, int] = ("", 0),
    ) -> HTTPRequest:
        """
        Parse one complete request.

        Args:
            data: Request bytes, headers and the full body.
            client_address: (ip, port) of the peer.

        Raises:
            HTTPParseError: if the request is malformed or too large.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request of {len(data)} bytes exceeds limit of "
                f"{self.max_request_size}",
                status_code=413,
            )

        head, sep, body = data.partition(b"\r\n\r\n")
        if not sep:
            raise HTTPParseError("Incomplete request: no header terminator")

        lines = head.decode("iso-8859-1").split("\r\n")
        method, target, version = self._parse_request_line(lines[0])
        path, query_params = self._split_target(target)
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if content_length < 0:
            raise HTTPParseError("Invalid Content-Length header")
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, "
                f"got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body[:content_length],
            target=target,
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> Tuple[str, str, str]:
        match = self.REQUEST_LINE.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = match.groups()
        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Method not allowed: {method}", status_code=405)
        if version not in self.SUPPORTED_VERSIONS:
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}", status_code=505
            )
        return method, target, version

    def _split_target(self, target: str) -> Tuple[str, Dict[str, List[str]]]:
        parts = urlsplit(target)
        path = unquote(parts.path) or "/"

        # Reject any attempt to climb out of the served tree.
        if ".." in path.split("/"):
            raise HTTPParseError("Invalid path: contains '..'")

        return path, parse_qs(parts.query, keep_blank_values=True)

    def _parse_headers(self, lines: List[str]) -> Dict[str, str]:
        """
        Header lines to a dict with lower-case names.

        Repeated headers are joined with ", ". Obsolete line folding
        (a line starting with whitespace) extends the previous value.
        Lines that do not look like headers are skipped.
        """
        headers: Dict[str, str] = {}
        last_name: Optional[str] = None

        for line in lines:
            if not line:
                continue
            if line[0] in " \t":
                if last_name is not None:
                    headers[last_name] += " " + line.strip()
                continue

            match = self.HEADER_LINE.match(line)
            if not match:
                continue

            name = match.group(1).strip().lower()
            value = match.group(2)
            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value
            last_name = name

        return headers


def parse_request(
    data: bytes,
    client_address: Tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024,
) -> HTTPRequest:
    """Parse `data` with a throwaway RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
