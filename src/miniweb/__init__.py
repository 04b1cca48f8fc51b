"""
=============================================================================
MINIWEB - a small HTTP/1.1 server with routing, middlewares and templates
=============================================================================

    miniweb/
    ├── __main__.py          python -m miniweb (runs the storefront)
    ├── server.py            HTTPServer: connections, dispatch, lifecycle
    ├── config.py            ServerConfig
    ├── context.py           RequestContext handed to every handler
    ├── stores.py            sessions, response cache, metrics
    ├── templates.py         {{var}} / {{#if}} / {{#each}} views with a layout
    ├── core/                sockets, connections, worker threads
    ├── http/                parsing, responses, routing, multipart
    ├── middleware/          chain executor and built-in middlewares
    ├── handlers/            static files
    └── shop/                demo storefront application

=============================================================================
QUICK START
=============================================================================

    from miniweb import HTTPServer, ServerConfig
    from miniweb.middleware import LoggingMiddleware, with_next

    server = HTTPServer(ServerConfig(port=3000))
    server.use(LoggingMiddleware())

    @server.get("/items/:id")
    def show_item(ctx):
        ctx.json({"id": ctx.params["id"]})

    server.run()
=============================================================================
"""

__version__ = "1.0.0"

from .server import HTTPServer, create_app
from .config import ServerConfig
from .context import RequestContext
from .middleware import CONTINUE, HALT, Flow, with_next

__all__ = [
    "HTTPServer",
    "create_app",
    "ServerConfig",
    "RequestContext",
    "CONTINUE",
    "HALT",
    "Flow",
    "with_next",
    "__version__",
]
