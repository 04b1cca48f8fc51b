"""
=============================================================================
RESPONSES
=============================================================================

Two ways of producing a response live here.

HTTPResponse / ResponseBuilder build a complete response in one go; the
server uses them for its own error pages and they remain handy in tests:

    response = (ResponseBuilder()
        .status(HTTPStatus.CREATED)
        .json({"id": 7})
        .build())

ResponseWriter is what route handlers and middlewares receive. It is filled
in piece by piece while the chain runs and finalised with end():

    ┌──────────────┐  set_header / write_head / write   ┌──────────────┐
    │   handlers   │ ─────────────────────────────────► │ResponseWriter│
    └──────────────┘                                    └──────┬───────┘
                                                          end()│
                                         ┌─────────────────────┴──────┐
                                         ▼                            ▼
                                  writer.result                on_finish
                                  (HTTPResponse,               listeners
                                   sent by Connection)     (cache, metrics)

Headers count as sent once write_head(), write() or end() is called; after
that the headers can no longer change, and a failing handler can only have
its connection closed (abort()).
=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Optional, Dict, Any, Union, Callable, List, Tuple
import json
import logging

from .status_codes import HTTPStatus, reason_phrase

logger = logging.getLogger(__name__)

SERVER_NAME = "miniweb/1.0"

Body = Union[str, bytes]


def _to_bytes(data: Optional[Body]) -> bytes:
    if data is None:
        return b""
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


@dataclass
class HTTPResponse:
    """A complete response: status, headers and body."""

    status: int = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        return f"{self.version} {int(self.status)} {reason_phrase(self.status)}"

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return default

    def to_bytes(self, server_name: str = SERVER_NAME, include_body: bool = True) -> bytes:
        """
        Serialise for the wire.

        Content-Length, Date and Server are filled in unless already set.
        With `include_body=False` (HEAD requests) the headers still announce
        the real length but no body bytes follow.
        """
        headers = dict(self.headers)
        present = {name.lower() for name in headers}
        if "content-length" not in present:
            headers["Content-Length"] = str(len(self.body))
        if "date" not in present:
            headers["Date"] = format_http_date(datetime.now(timezone.utc))
        if "server" not in present:
            headers["Server"] = server_name

        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in headers.items())
        head = ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")
        return head + self.body if include_body else head


class ResponseBuilder:
    """
    Fluent construction of an HTTPResponse.

    Every method except build() returns the builder:

        ResponseBuilder().status(HTTPStatus.FOUND).header("Location", "/").build()
    """

    def __init__(self):
        self._status: int = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: int) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def body(self, body: Body) -> "ResponseBuilder":
        self._body = _to_bytes(body)
        return self

    def text(self, text: str) -> "ResponseBuilder":
        self._headers["Content-Type"] = "text/plain; charset=utf-8"
        return self.body(text)

    def html(self, markup: str) -> "ResponseBuilder":
        self._headers["Content-Type"] = "text/html; charset=utf-8"
        return self.body(markup)

    def json(self, data: Any, pretty: bool = False) -> "ResponseBuilder":
        self._headers["Content-Type"] = "application/json; charset=utf-8"
        return self.body(dump_json(data, pretty))

    def redirect(self, location: str, permanent: bool = False) -> "ResponseBuilder":
        self._status = HTTPStatus.MOVED_PERMANENTLY if permanent else HTTPStatus.FOUND
        self._headers["Location"] = location
        return self

    def no_cache(self) -> "ResponseBuilder":
        self._headers["Cache-Control"] = "no-store"
        return self

    def cache(self, max_age: int = 3600) -> "ResponseBuilder":
        self._headers["Cache-Control"] = f"public, max-age={max_age}"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=dict(self._headers),
            body=self._body,
        )


class ResponseWriter:
    """
    The response a request's handlers write into.

    =========================================================================
    LIFECYCLE
    =========================================================================

        open      status and headers may change freely
          │
          │  write_head() / write()
          ▼
        committed headers_sent is True; only body bytes may be added
          │
          │  end()
          ▼
        finished  `result` holds the HTTPResponse, listeners have run

    abort() can happen in any state; the connection is then closed without
    sending whatever was buffered.
    =========================================================================
    """

    def __init__(self, server_name: str = SERVER_NAME):
        self.status: int = HTTPStatus.OK
        self.server_name = server_name
        self.headers_sent = False
        self.finished = False
        self.aborted = False
        self.result: Optional[HTTPResponse] = None

        # lower-case name -> (name as given, value)
        self._headers: Dict[str, Tuple[str, str]] = {}
        self._chunks: List[bytes] = []
        self._finish_listeners: List[Callable[["ResponseWriter"], None]] = []

    # -------------------------------------------------------------------------
    # Headers
    # -------------------------------------------------------------------------

    @property
    def headers(self) -> Dict[str, str]:
        """A copy of the headers set so far."""
        return {name: value for name, value in self._headers.values()}

    def set_header(self, name: str, value: str) -> "ResponseWriter":
        """
        Set (or replace) a header; names are case-insensitive.

        Raises:
            RuntimeError: once headers have been sent.
        """
        if self.headers_sent:
            raise RuntimeError(f"Cannot set header {name!r}: headers already sent")
        self._headers[name.lower()] = (name, str(value))
        return self

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        entry = self._headers.get(name.lower())
        return entry[1] if entry else default

    def remove_header(self, name: str) -> None:
        if self.headers_sent:
            raise RuntimeError(f"Cannot remove header {name!r}: headers already sent")
        self._headers.pop(name.lower(), None)

    def write_head(self, status: int, headers: Optional[Dict[str, str]] = None) -> "ResponseWriter":
        """Set status and headers together and commit them."""
        self.status = int(status)
        for name, value in (headers or {}).items():
            self.set_header(name, value)
        self.headers_sent = True
        return self

    # -------------------------------------------------------------------------
    # Body
    # -------------------------------------------------------------------------

    def write(self, data: Body) -> None:
        if self.finished:
            raise RuntimeError("Cannot write after end()")
        self.headers_sent = True
        self._chunks.append(_to_bytes(data))

    def end(self, data: Optional[Body] = None) -> None:
        """
        Finalise the response.

        Later calls are ignored with a warning, so a handler that answers
        after a middleware already did cannot corrupt the connection.
        """
        if self.finished:
            logger.warning("end() called on a finished response; ignoring")
            return
        if data is not None:
            self._chunks.append(_to_bytes(data))

        self.headers_sent = True
        self.finished = True
        self.result = HTTPResponse(
            status=self.status,
            headers=self.headers,
            body=b"".join(self._chunks),
        )
        self._chunks = []

        for listener in self._finish_listeners:
            try:
                listener(self)
            except Exception:
                logger.exception("Response finish listener failed")

    @property
    def body(self) -> bytes:
        """Body of the finished response, or what has been buffered so far."""
        if self.result is not None:
            return self.result.body
        return b"".join(self._chunks)

    def on_finish(self, listener: Callable[["ResponseWriter"], None]) -> None:
        """Call `listener(writer)` right after end(); immediately if already ended."""
        if self.finished:
            listener(self)
        else:
            self._finish_listeners.append(listener)

    def abort(self) -> None:
        """Drop the response and have the connection closed."""
        self.aborted = True
        self.headers_sent = True

    # -------------------------------------------------------------------------
    # Shortcuts
    # -------------------------------------------------------------------------

    def text(self, body: str, status: Optional[int] = None) -> None:
        self._finish(body, "text/plain; charset=utf-8", status)

    def html(self, markup: str, status: Optional[int] = None) -> None:
        self._finish(markup, "text/html; charset=utf-8", status)

    def json(self, data: Any, status: Optional[int] = None) -> None:
        self._finish(dump_json(data), "application/json; charset=utf-8", status)

    def redirect(self, location: str, status: int = HTTPStatus.FOUND) -> None:
        self.status = int(status)
        self.set_header("Location", location)
        self.end()

    def send_response(self, response: HTTPResponse) -> None:
        """Finish with a prebuilt HTTPResponse, keeping headers already set."""
        self.status = int(response.status)
        for name, value in response.headers.items():
            self.set_header(name, value)
        self.end(response.body)

    def _finish(self, body: Body, content_type: str, status: Optional[int]) -> None:
        if status is not None:
            self.status = int(status)
        self.set_header("Content-Type", content_type)
        self.end(body)


# =============================================================================
# HELPERS
# =============================================================================

def dump_json(data: Any, pretty: bool = False) -> str:
    return json.dumps(data, indent=2 if pretty else None, ensure_ascii=False, default=str)


def format_http_date(dt: datetime) -> str:
    """RFC 7231 date, e.g. "Mon, 19 Oct 2026 12:00:00 GMT"."""
    return format_datetime(dt.astimezone(timezone.utc), usegmt=True)


def ok(body: Union[Body, dict, list] = "") -> HTTPResponse:
    """200 with a JSON body for dicts and lists, plain text otherwise."""
    builder = ResponseBuilder()
    if isinstance(body, (dict, list)):
        builder.json(body)
    elif isinstance(body, str):
        builder.text(body)
    else:
        builder.body(body)
    return builder.build()


def created(body: Union[dict, list], location: Optional[str] = None) -> HTTPResponse:
    builder = ResponseBuilder().status(HTTPStatus.CREATED).json(body)
    if location:
        builder.header("Location", location)
    return builder.build()


def redirect(location: str, permanent: bool = False) -> HTTPResponse:
    return ResponseBuilder().redirect(location, permanent).build()


def error_response(status: int, message: Optional[str] = None) -> HTTPResponse:
    """JSON error body: {"error": message}."""
    return (ResponseBuilder()
        .status(status)
        .json({"error": message or reason_phrase(status)})
        .build())


def bad_request(message: str = "Bad Request") -> HTTPResponse:
    return error_response(HTTPStatus.BAD_REQUEST, message)


def not_found(message: str = "Not found") -> HTTPResponse:
    return error_response(HTTPStatus.NOT_FOUND, message)


def internal_error() -> HTTPResponse:
    """The fixed plain-text 500 sent when a handler fails."""
    return (ResponseBuilder()
        .status(HTTPStatus.INTERNAL_SERVER_ERROR)
        .text("Internal Server Error")
        .build())
