"""
=============================================================================
HTTP SERVER
=============================================================================

Ties the network core to routing and the middleware chain.

    SocketServer ──► ThreadPool worker ──► _process_connection (keep-alive loop)
                                              │
                                              ▼
                                      RequestParser.parse
                                              │
                                              ▼
    ┌──────────────────────────── dispatch ─────────────────────────────────┐
    │  1. StaticFileHandler.serve()      claimed? ─► done                   │
    │  2. RouteTable.resolve()           no match? ─► 404 (JSON under /api, │
    │                                                   HTML page otherwise) │
    │  3. ChainExecutor.execute()        globals, then the route's handlers │
    └───────────────────────────────────────────────────────────────────────┘
                                              │
                                              ▼
                                  ResponseWriter.result ──► socket

A failure in any request is answered (500 or connection close) and logged;
it never reaches the accept loop.
=============================================================================
"""

from datetime import datetime
from typing import Callable, Optional
import logging
import os
import time

from .config import ServerConfig
from .core import Connection, SocketServer, ThreadPool
from .http import (
    HTTPParseError,
    HTTPRequest,
    HTTPResponse,
    HTTPStatus,
    RequestParser,
    ResponseBuilder,
    ResponseWriter,
    RouteTable,
)
from .context import RequestContext
from .handlers import StaticFileHandler
from .middleware.base import ChainExecutor, HandlerLike, fail_response
from .stores import Stores
from .templates import TemplateEngine

logger = logging.getLogger(__name__)

ACCESS_LOGGER = "miniweb.access"

_NOT_FOUND_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>404</title></head>
<body><h1>404</h1><p>Página no encontrada</p></body>
</html>
"""


class HTTPServer:
    """
    An HTTP/1.1 server with a route table and a global middleware chain.

    =========================================================================
    USAGE
    =========================================================================

        server = HTTPServer(ServerConfig(port=3000, views_dir="views"))
        server.use(LoggingMiddleware())
        server.use(SessionMiddleware())

        @server.get("/items/:id")
        def show_item(ctx):
            ctx.json({"id": ctx.params["id"]})

        server.run()

    Stores (sessions, cache, metrics) and the template engine are injected;
    when omitted they are built from the config.
    =========================================================================
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        stores: Optional[Stores] = None,
        templates: Optional[TemplateEngine] = None,
    ):
        self.config = config or ServerConfig()
        self.config.validate()

        self.stores = stores or Stores.create(
            cache_ttl=self.config.cache_ttl, session_ttl=self.config.session_ttl
        )
        if templates is None and self.config.views_dir:
            templates = TemplateEngine(self.config.views_dir)
        self.templates = templates
        self.static: Optional[StaticFileHandler] = None
        if self.config.static_dir:
            self.static = StaticFileHandler(
                self.config.static_dir, cache_max_age=self.config.static_max_age
            )

        self.routes = RouteTable()
        self.executor = ChainExecutor()
        self.started_at = time.time()

        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
        )
        self._running = False

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def use(self, middleware: HandlerLike) -> "HTTPServer":
        """Append a global middleware. They run in the order added."""
        self.executor.use(middleware)
        return self

    def route(self, method: str, pattern: str, *before: HandlerLike) -> Callable:
        return self.routes.route(method, pattern, *before)

    def get(self, pattern: str, *before: HandlerLike) -> Callable:
        return self.routes.get(pattern, *before)

    def post(self, pattern: str, *before: HandlerLike) -> Callable:
        return self.routes.post(pattern, *before)

    def put(self, pattern: str, *before: HandlerLike) -> Callable:
        return self.routes.put(pattern, *before)

    def patch(self, pattern: str, *before: HandlerLike) -> Callable:
        return self.routes.patch(pattern, *before)

    def delete(self, pattern: str, *before: HandlerLike) -> Callable:
        return self.routes.delete(pattern, *before)

    def options(self, pattern: str, *before: HandlerLike) -> Callable:
        return self.routes.options(pattern, *before)

    @property
    def uptime(self) -> float:
        return time.time() - self.started_at

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def dispatch(self, request: HTTPRequest, response: ResponseWriter) -> None:
        """
        Answer one parsed request into `response`.

        When nothing finished the response, it is ended as it stands (status
        and headers set so far, empty body).
        """
        try:
            if self.static is not None and self.static.serve(request, response):
                return

            match = self.routes.resolve(request.method, request.path)
            if match is None and request.method == "HEAD":
                match = self.routes.resolve("GET", request.path)
            if match is None:
                self._not_found(request, response)
                return

            ctx = RequestContext.create(
                request, response, self.stores, match.params, self.templates
            )
            self.executor.execute(ctx, match.entry.handlers)
        except Exception:
            logger.exception(f"Dispatch failed for {request.method} {request.path}")
            fail_response(response)
        finally:
            if not response.finished and not response.aborted:
                response.end()

    def handle(self, request: HTTPRequest) -> Optional[HTTPResponse]:
        """
        Dispatch `request` and return the finished response, or None when it
        was aborted.
        """
        response = ResponseWriter(self.config.server_name)
        self.dispatch(request, response)
        return None if response.aborted else response.result

    def _not_found(self, request: HTTPRequest, response: ResponseWriter) -> None:
        if request.path.startswith(self.config.api_prefix):
            response.json({"error": "Not found"}, status=HTTPStatus.NOT_FOUND)
            return
        if self.templates is not None and self.templates.exists("404"):
            page = self.templates.render("404", {
                "titulo": "404",
                "mensaje": "Página no encontrada",
                "user": None,
            })
        else:
            page = _NOT_FOUND_PAGE
        response.html(page, status=HTTPStatus.NOT_FOUND)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def address(self):
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._socket_server.is_running

    def bind(self) -> None:
        """
        Claim the listening socket without serving yet.

        Raises:
            OSError: when the address cannot be bound.
        """
        self._socket_server.bind()

    def run(self) -> None:
        """Serve until stop() or SIGINT/SIGTERM. Binds first if needed."""
        self._setup_logging()
        if not self._socket_server.is_bound:
            self.bind()

        self._running = True
        self.started_at = time.time()
        self._thread_pool.start()
        self._print_startup_banner()
        try:
            self._socket_server.serve_forever(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Interrupted")
        finally:
            self._shutdown()

    def stop(self) -> None:
        self._socket_server.shutdown()

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_stopped(timeout)

    def _setup_logging(self) -> None:
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("miniweb").setLevel(level)

        if not self.config.log_file:
            return
        access = logging.getLogger(ACCESS_LOGGER)
        path = os.path.abspath(self.config.log_file)
        for handler in access.handlers:
            if isinstance(handler, logging.FileHandler) and handler.baseFilename == path:
                return
        os.makedirs(os.path.dirname(path), exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        access.addHandler(file_handler)

    def _print_startup_banner(self) -> None:
        host, port = self.address
        shown = "localhost" if host in ("127.0.0.1", "0.0.0.0") else host
        print()
        print(f"  {self.config.server_name} at http://{shown}:{port}")
        print(f"  workers: {self.config.min_workers}-{self.config.max_workers}"
              f"  started: {datetime.now():%Y-%m-%d %H:%M:%S}")
        print("  Ctrl+C to stop")
        print()
        self.routes.print_routes()

    def _shutdown(self) -> None:
        logger.info("Shutting down server")
        self._running = False
        self._thread_pool.shutdown(wait=True)
        logger.info("Server stopped")

    # -------------------------------------------------------------------------
    # Connections
    # -------------------------------------------------------------------------

    def _handle_connection(self, conn: Connection) -> None:
        if not self._thread_pool.submit(self._process_connection, args=(conn,)):
            logger.warning(f"[{conn.id}] Worker queue full, rejecting connection")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded")
            conn.close()

    def _process_connection(self, conn: Connection) -> None:
        """Keep-alive loop for one connection, run on a worker thread."""
        with conn:
            while self._running:
                try:
                    raw = conn.read_request()
                except HTTPParseError as e:
                    self._send_error(conn, e.status_code, str(e))
                    return
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    return
                except OSError as e:
                    logger.debug(f"[{conn.id}] Read failed: {e}")
                    return
                if raw is None:
                    return

                try:
                    request = self._parser.parse(raw, conn.address)
                except HTTPParseError as e:
                    self._send_error(conn, e.status_code, str(e))
                    return

                response = ResponseWriter(self.config.server_name)
                self.dispatch(request, response)
                if response.aborted or response.result is None:
                    logger.debug(f"[{conn.id}] Response aborted, closing")
                    return

                keep_alive = self.config.keep_alive and request.is_keep_alive
                result = response.result
                if keep_alive:
                    result.headers.setdefault("Connection", "keep-alive")
                    result.headers.setdefault(
                        "Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}"
                    )
                else:
                    result.headers["Connection"] = "close"

                data = result.to_bytes(
                    self.config.server_name, include_body=request.method != "HEAD"
                )
                if not conn.send(data) or not keep_alive:
                    return

    def _send_error(self, conn: Connection, status: int, message: str) -> None:
        response = (ResponseBuilder()
            .status(status)
            .json({"error": message})
            .header("Connection", "close")
            .build())
        conn.send(response.to_bytes(self.config.server_name))


def create_app(config: Optional[ServerConfig] = None, **kwargs) -> HTTPServer:
    """Factory for an empty server; register middlewares and routes on it."""
    return HTTPServer(config, **kwargs)
