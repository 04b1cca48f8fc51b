"""
=============================================================================
ACCESS LOGGING
=============================================================================

One line per routed request on the "miniweb.access" logger:

    2026-10-19T14:03:11.204+00:00 GET /api/productos?pagina=2 200 812B 3.41ms

The server's logging setup can point this logger at a file (the CLI uses
logs/server.log), so the access log and the application log stay apart.

LoggingMiddleware wraps the rest of the chain, which is why it is a
continuation-taking middleware: it stamps the start time, lets everything
downstream run inside next(), then reads the final status from the
response. A failing handler is logged here and the exception re-raised so
the chain executor still produces the 500.

Register it first so its timing covers every other middleware:

    server.use(LoggingMiddleware())
    server.use(MetricsMiddleware())
=============================================================================
"""

from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Iterable, Optional
import json
import logging
import time

from .base import Middleware, Next


access_logger = logging.getLogger("miniweb.access")


@dataclass
class RequestLog:
    """Everything the access log records about one request."""

    timestamp: str
    method: str
    target: str
    client_ip: str
    status: int
    content_length: int
    duration_ms: float

    def to_dict(self) -> dict:
        entry = asdict(self)
        entry["duration_ms"] = round(self.duration_ms, 2)
        return entry

    def to_text(self) -> str:
        return (
            f"{self.timestamp} {self.method} {self.target} {self.status} "
            f"{self.content_length}B {self.duration_ms:.2f}ms"
        )


class LoggingMiddleware(Middleware):
    """
    Writes the access log.

    Args:
        log_format: "text" (one readable line) or "json".
        log_level: Level the entries are logged at.
        skip_paths: Exact paths that are never logged.
    """

    def __init__(
        self,
        log_format: str = "text",
        log_level: int = logging.INFO,
        skip_paths: Optional[Iterable[str]] = None,
    ):
        if log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', got {log_format!r}")
        self.log_format = log_format
        self.log_level = log_level
        self.skip_paths = frozenset(skip_paths or ())

    def __call__(self, ctx, next: Next) -> None:
        request = ctx.request
        started_at = datetime.now(timezone.utc)
        started = time.perf_counter()

        try:
            next()
        except Exception as e:
            duration_ms = (time.perf_counter() - started) * 1000
            access_logger.error(
                f"{request.method} {request.target} failed after "
                f"{duration_ms:.2f}ms: {type(e).__name__}: {e}"
            )
            raise

        if request.path in self.skip_paths:
            return

        entry = RequestLog(
            timestamp=started_at.isoformat(timespec="milliseconds"),
            method=request.method,
            target=request.target,
            client_ip=request.client_address[0] or "-",
            status=ctx.response.status,
            content_length=len(ctx.response.body),
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        if self.log_format == "json":
            access_logger.log(self.log_level, json.dumps(entry.to_dict()))
        else:
            access_logger.log(self.log_level, entry.to_text())
