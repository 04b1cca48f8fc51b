"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Every knob lives in one dataclass. It can be built in code, from the
command line (see __main__.py) or from the environment:

    ┌──────────────────┬──────────────────────────┬──────────────────────────┐
    │ Variable         │ Field                    │ Default                  │
    ├──────────────────┼──────────────────────────┼──────────────────────────┤
    │ PORT / HTTP_PORT │ port                     │ 3000                     │
    │ HTTP_HOST        │ host                     │ 127.0.0.1                │
    │ HTTP_WORKERS     │ max_workers              │ 16                       │
    │ HTTP_TIMEOUT     │ timeout                  │ 30                       │
    │ HTTP_LOG_LEVEL   │ log_level                │ INFO                     │
    │ HTTP_LOG_FILE    │ log_file                 │ (none)                   │
    │ HTTP_STATIC_DIR  │ static_dir               │ (none)                   │
    │ HTTP_VIEWS_DIR   │ views_dir                │ (none)                   │
    │ HTTP_DATA_DIR    │ data_dir                 │ (none)                   │
    │ HTTP_CACHE_TTL   │ cache_ttl                │ 300                      │
    │ HTTP_SESSION_TTL │ session_ttl              │ 1800                     │
    └──────────────────┴──────────────────────────┴──────────────────────────┘

PORT wins over HTTP_PORT so the usual hosting convention works unchanged.
The environment is read once, at startup. validate() fails fast on values
that would only break later under load.
=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class ServerConfig:
    """
    Configuration for the HTTP server and the applications built on it.

    Network: host, port, backlog, buffer_size, timeout
    HTTP: keep_alive, keep_alive_timeout, max_request_size
    Threads: min_workers, max_workers
    Content: static_dir, views_dir, data_dir, api_prefix
    Caching: cache_ttl, static_max_age
    Sessions: session_ttl
    Logging: log_level, log_format, log_file
    """

    host: str = "127.0.0.1"
    port: int = 3000
    backlog: int = 128
    buffer_size: int = 8192

    timeout: Optional[float] = 30.0
    """Socket timeout in seconds. None blocks forever."""

    keep_alive: bool = True
    keep_alive_timeout: float = 5.0

    max_request_size: int = 10 * 1024 * 1024
    """Largest accepted request, headers and body together. Uploads count."""

    min_workers: int = 4
    max_workers: int = 16

    static_dir: Optional[str] = None
    """Served under /static/ and /public/ when set."""

    views_dir: Optional[str] = None
    """Templates directory. Without it, ctx.render() is unavailable."""

    data_dir: Optional[str] = None
    """Where applications keep their JSON files."""

    api_prefix: str = "/api"
    """Paths under this prefix get JSON 404s and are eligible for caching."""

    cache_ttl: float = 300.0
    static_max_age: int = 3600

    session_ttl: float = 1800.0
    """Seconds a session may sit idle before it is forgotten."""

    log_level: str = "INFO"
    log_format: str = "text"
    log_file: Optional[str] = None
    """Access log file; the console keeps logging either way."""

    server_name: str = "miniweb/1.0"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Build a configuration from environment variables.

            PORT=8000 HTTP_LOG_LEVEL=DEBUG python -m miniweb
        """
        port = os.getenv("PORT") or os.getenv("HTTP_PORT") or "3000"
        timeout = os.getenv("HTTP_TIMEOUT", "30")
        return cls(
            host=os.getenv("HTTP_HOST", "127.0.0.1"),
            port=int(port),
            max_workers=int(os.getenv("HTTP_WORKERS", "16")),
            timeout=float(timeout) if timeout else None,
            log_level=os.getenv("HTTP_LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("HTTP_LOG_FILE") or None,
            static_dir=os.getenv("HTTP_STATIC_DIR") or None,
            views_dir=os.getenv("HTTP_VIEWS_DIR") or None,
            data_dir=os.getenv("HTTP_DATA_DIR") or None,
            cache_ttl=float(os.getenv("HTTP_CACHE_TTL", "300")),
            session_ttl=float(os.getenv("HTTP_SESSION_TTL", "1800")),
        )

    def validate(self) -> None:
        """
        Raises:
            ValueError: on the first invalid value.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")
        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")
        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")
        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")
        if self.cache_ttl < 0:
            raise ValueError("cache_ttl must be >= 0")
        if self.session_ttl <= 0:
            raise ValueError("session_ttl must be > 0")
        if self.log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', got {self.log_format!r}")
        if not self.api_prefix.startswith("/"):
            raise ValueError("api_prefix must start with '/'")
