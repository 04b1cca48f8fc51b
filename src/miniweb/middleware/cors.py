"""
=============================================================================
CORS
=============================================================================

Adds Access-Control-* headers so pages served from another origin may call
the API from a browser.

    Browser (page from http://localhost:5173)
        │  OPTIONS /api/productos/3/comments
        │  Origin: http://localhost:5173
        │  Access-Control-Request-Method: POST
        ▼
    CORSMiddleware  ──► 204, Allow-Origin / Allow-Methods / Allow-Headers
                        (chain stops)

    Any other method gets the same headers and the chain continues.

A preflight only reaches the middleware when some route matches the OPTIONS
request, so register one for the paths that need it:

    server.routes.options("/api/productos/:id/comments")(lambda ctx: None)
=============================================================================
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .base import BeforeMiddleware, CONTINUE, HALT, Flow
from ..http.status_codes import HTTPStatus


@dataclass
class CORSConfig:
    allow_origins: List[str] = field(default_factory=lambda: ["*"])
    allow_methods: List[str] = field(
        default_factory=lambda: ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]
    )
    allow_headers: List[str] = field(default_factory=lambda: ["Content-Type"])
    allow_credentials: bool = False
    max_age: int = 86400


class CORSMiddleware(BeforeMiddleware):

    def __init__(self, config: Optional[CORSConfig] = None):
        self.config = config or CORSConfig()

    def __call__(self, ctx) -> Flow:
        request = ctx.request
        response = ctx.response
        origin = request.get_header("origin")

        allowed = self._allowed_origin(origin)
        if allowed is None:
            return CONTINUE

        response.set_header("Access-Control-Allow-Origin", allowed)
        response.set_header("Access-Control-Allow-Methods", ", ".join(self.config.allow_methods))
        response.set_header("Access-Control-Allow-Headers", ", ".join(self.config.allow_headers))
        if self.config.allow_credentials:
            response.set_header("Access-Control-Allow-Credentials", "true")
        if allowed != "*":
            response.set_header("Vary", "Origin")

        if request.method == "OPTIONS":
            response.set_header("Access-Control-Max-Age", str(self.config.max_age))
            response.status = HTTPStatus.NO_CONTENT
            response.end()
            return HALT
        return CONTINUE

    def _allowed_origin(self, origin: str) -> Optional[str]:
        if "*" in self.config.allow_origins:
            # A wildcard cannot be combined with credentials; echo the origin.
            if self.config.allow_credentials and origin:
                return origin
            return "*"
        if origin in self.config.allow_origins:
            return origin
        return None
