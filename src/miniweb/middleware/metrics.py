"""
Request metrics.

Counts every routed request by path and status and keeps its duration, as
measured from this middleware to the moment the response is finished.
Aborted responses are not counted.
"""

import time

from .base import BeforeMiddleware, CONTINUE, Flow


class MetricsMiddleware(BeforeMiddleware):

    def __call__(self, ctx) -> Flow:
        metrics = ctx.stores.metrics
        path = ctx.request.path
        started = time.perf_counter()

        def record(response) -> None:
            metrics.record(path, response.status, (time.perf_counter() - started) * 1000)

        ctx.response.on_finish(record)
        return CONTINUE
