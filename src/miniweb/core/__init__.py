"""
=============================================================================
NETWORK CORE
=============================================================================

    SocketServer      accepts TCP connections
    Connection        frames HTTP requests on one socket, keep-alive aware
    ThreadPool        runs each connection on a worker thread

    SocketServer ──accept──► Connection ──submit──► ThreadPool worker
                                                         │
                                            HTTPServer._handle_connection
=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "ThreadPool",
]
