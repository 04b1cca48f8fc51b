"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted socket and frames requests on it.

    recv ─► buffer ─► "\\r\\n\\r\\n" found? ─► Content-Length ─► body complete?
                                                                  │
                            one request's bytes ◄─────────────────┘

Bytes past the end of one request stay buffered for the next, so pipelined
requests on a keep-alive connection are not lost. The first request waits
up to `timeout`; later ones only `keep_alive_timeout`.

    NEW ─► READING ─► PROCESSING ─► WRITING ─► KEEP_ALIVE ─► READING ...
                                                   └────────► CLOSED
=============================================================================
"""

import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from ..http.request import HTTPParseError
from ..http.status_codes import HTTPStatus

logger = logging.getLogger(__name__)

HEADER_END = b"\r\n\r\n"


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSED = "closed"


@dataclass
class Connection:
    socket: socket.socket
    address: Tuple[str, int]
    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 10 * 1024 * 1024

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.monotonic)
    requests_handled: int = 0
    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    def read_request(self) -> Optional[bytes]:
        """
        Read exactly one request (head and body).

        Returns:
            The request bytes, or None when the client closed the connection
            or went quiet on a keep-alive connection.

        Raises:
            HTTPParseError: 413 when the request exceeds max_request_size.
            TimeoutError: when the first request never arrives.
        """
        self.state = ConnectionState.READING
        if self.requests_handled:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while HEADER_END not in self._buffer:
                if not self._fill():
                    return None

            head_end = self._buffer.index(HEADER_END) + len(HEADER_END)
            total = head_end + _content_length(self._buffer[:head_end])
            if total > self.max_request_size:
                raise HTTPParseError("Request too large", HTTPStatus.PAYLOAD_TOO_LARGE)

            while len(self._buffer) < total:
                if not self._fill():
                    break
        except socket.timeout:
            if self.requests_handled or not self._buffer:
                logger.debug(f"[{self.id}] Idle timeout")
                return None
            raise TimeoutError("Timed out reading request")
        finally:
            self.socket.settimeout(self.timeout)

        data, self._buffer = self._buffer[:total], self._buffer[total:]
        self.requests_handled += 1
        self.state = ConnectionState.PROCESSING
        return data

    def _fill(self) -> bool:
        try:
            chunk = self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return False
        if not chunk:
            return False
        self._buffer += chunk
        if len(self._buffer) > self.max_request_size:
            raise HTTPParseError("Request too large", HTTPStatus.PAYLOAD_TOO_LARGE)
        return True

    def send(self, data: bytes) -> bool:
        """Send everything in `data`. Returns False if the peer is gone."""
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False
        self.state = ConnectionState.KEEP_ALIVE
        return True

    def close(self) -> None:
        if self.state is ConnectionState.CLOSED:
            return
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            self.socket.close()
        except OSError:
            pass
        self.state = ConnectionState.CLOSED
        logger.debug(
            f"[{self.id}] Closed after {self.requests_handled} request(s), "
            f"{time.monotonic() - self.created_at:.2f}s"
        )

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def _content_length(head: bytes) -> int:
    """Content-Length from a raw request head; 0 when absent or unreadable."""
    for line in head.split(b"\r\n")[1:]:
        name, _, value = line.partition(b":")
        if name.strip().lower() == b"content-length":
            try:
                return max(int(value.strip()), 0)
            except ValueError:
                return 0
    return 0
