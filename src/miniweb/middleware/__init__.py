"""
=============================================================================
MIDDLEWARE PACKAGE
=============================================================================

The chain machinery (base.py) and the built-in global middlewares.

    ┌────────────────────┬──────────────┬──────────────────────────────────┐
    │ Middleware         │ Kind         │ Does                             │
    ├────────────────────┼──────────────┼──────────────────────────────────┤
    │ LoggingMiddleware  │ continuation │ access log with status and time  │
    │ MetricsMiddleware  │ return       │ counts and timings per path      │
    │ SessionMiddleware  │ return       │ session cookie, ctx.session      │
    │ BodyParserMiddleware│ return      │ ctx.body / ctx.files             │
    │ CacheMiddleware    │ return       │ serves cached /api GETs          │
    │ CORSMiddleware     │ return       │ Access-Control-* headers         │
    └────────────────────┴──────────────┴──────────────────────────────────┘

The storefront registers them in the order logging, metrics, session,
body, cache.
=============================================================================
"""

from .base import (
    CONTINUE,
    HALT,
    BeforeMiddleware,
    ChainExecutor,
    Flow,
    Handler,
    HandlerKind,
    Middleware,
    as_handler,
    with_next,
)
from .logging import LoggingMiddleware
from .metrics import MetricsMiddleware
from .session import SessionMiddleware
from .body import BodyParserMiddleware
from .cache import CacheMiddleware
from .cors import CORSConfig, CORSMiddleware

__all__ = [
    "CONTINUE",
    "HALT",
    "Flow",
    "Handler",
    "HandlerKind",
    "Middleware",
    "BeforeMiddleware",
    "ChainExecutor",
    "as_handler",
    "with_next",
    "LoggingMiddleware",
    "MetricsMiddleware",
    "SessionMiddleware",
    "BodyParserMiddleware",
    "CacheMiddleware",
    "CORSConfig",
    "CORSMiddleware",
]
