"""
=============================================================================
TCP LISTENER
=============================================================================

    bind() ──► listen(backlog) ──► accept loop ──► handler(Connection)
                                       ▲     │
                                       └─────┘  1s accept timeout so that
                                                shutdown() is noticed

SIGINT and SIGTERM trigger shutdown() when the server runs on the main
thread. Binding is a separate step so that a port already in use is
reported before the accept loop starts.
=============================================================================
"""

import logging
import signal
import socket
import threading
from typing import Callable, Dict, Optional, Tuple

from ..config import ServerConfig
from .connection import Connection

logger = logging.getLogger(__name__)


class SocketServer:
    """
        server = SocketServer(config)
        server.bind()                    # raises OSError if the port is taken
        server.serve_forever(handle)     # blocks until shutdown()
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._stopped = threading.Event()
        self._previous_handlers: Dict[int, object] = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_bound(self) -> bool:
        return self._socket is not None

    @property
    def address(self) -> Tuple[str, int]:
        """Actual bound address; the port differs from the config when it was 0."""
        if self._socket is not None:
            host, port = self._socket.getsockname()[:2]
            return host, port
        return self.config.host, self.config.port

    def bind(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(1.0)
        try:
            sock.bind((self.config.host, self.config.port))
        except OSError as e:
            sock.close()
            logger.error(f"Cannot bind {self.config.host}:{self.config.port}: {e}")
            raise
        sock.listen(self.config.backlog)
        self._socket = sock
        host, port = self.address
        logger.info(f"Listening on {host}:{port}")

    def serve_forever(self, handler: Callable[[Connection], None]) -> None:
        if self._socket is None:
            self.bind()
        self._running = True
        self._stopped.clear()
        self._install_signal_handlers()
        try:
            while self._running:
                try:
                    client, address = self._socket.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    if self._running:
                        logger.error(f"Accept failed: {e}")
                    break
                logger.debug(f"Accepted {address[0]}:{address[1]}")
                handler(Connection(
                    socket=client,
                    address=address,
                    buffer_size=self.config.buffer_size,
                    timeout=self.config.timeout,
                    keep_alive_timeout=self.config.keep_alive_timeout,
                    max_request_size=self.config.max_request_size,
                ))
        finally:
            self._close()

    def start(self, handler: Callable[[Connection], None]) -> None:
        """bind() then serve_forever()."""
        self.bind()
        self.serve_forever(handler)

    def shutdown(self) -> None:
        """Stop the accept loop. Safe to call from any thread, more than once."""
        if self._running:
            logger.info("Stopping listener")
        self._running = False

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        return self._stopped.wait(timeout)

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return

        def on_signal(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, shutting down")
            self.shutdown()

        for sig in (signal.SIGINT, signal.SIGTERM):
            self._previous_handlers[sig] = signal.signal(sig, on_signal)

    def _close(self) -> None:
        for sig, previous in self._previous_handlers.items():
            signal.signal(sig, previous)
        self._previous_handlers.clear()
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
        self._running = False
        self._stopped.set()
        logger.info("Listener stopped")
