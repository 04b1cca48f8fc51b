"""
Response cache for GET requests under a path prefix (the JSON API).

    GET /api/productos?pagina=2
        hit   → cached body sent with X-Cache: HIT, chain stops
        miss  → chain continues; a 200 answer is stored on finish

Entries are keyed by the full request target, query string included, and
expire after the store's TTL. Handlers that change data drop stale entries
with ctx.stores.cache.invalidate_prefix(...). A miss that was still being
answered when its prefix was invalidated is not stored.
"""

import logging

from .base import BeforeMiddleware, CONTINUE, HALT, Flow
from ..http.status_codes import HTTPStatus

logger = logging.getLogger(__name__)


class CacheMiddleware(BeforeMiddleware):

    def __init__(self, prefix: str = "/api"):
        self.prefix = prefix

    def __call__(self, ctx) -> Flow:
        request = ctx.request
        if request.method != "GET" or not request.path.startswith(self.prefix):
            return CONTINUE

        cache = ctx.stores.cache
        key = request.target
        entry = cache.get(key)
        if entry is not None:
            logger.debug(f"Cache hit for {key}")
            ctx.response.write_head(HTTPStatus.OK, {
                "Content-Type": entry.content_type,
                "X-Cache": "HIT",
            })
            ctx.response.end(entry.body)
            return HALT

        ctx.response.set_header("X-Cache", "MISS")
        since = cache.generation

        def store(response) -> None:
            if response.status == HTTPStatus.OK:
                content_type = response.get_header("Content-Type", "application/json")
                cache.set(key, response.body, content_type, since=since)

        ctx.response.on_finish(store)
        return CONTINUE
