"""
=============================================================================
HANDLERS AND THE MIDDLEWARE CHAIN
=============================================================================

Every request that matches a route runs one chain:

    global middlewares (registration order)  +  route handlers (registration order)

    ┌─────────┐   ┌─────────┐   ┌─────────┐   ┌──────────┐   ┌──────────┐
    │ logging │──►│ session │──►│  body   │──►│ auth     │──►│ handler  │
    │ (next)  │   │ (flow)  │   │ (flow)  │   │ (flow)   │   │ (flow)   │
    └─────────┘   └─────────┘   └─────────┘   └──────────┘   └──────────┘
       global        global        global        route          route

=============================================================================
TWO KINDS OF HANDLER
=============================================================================

The kind is fixed when the handler is registered; arity is never inspected.

RETURN-SIGNALED (the default for any plain callable)

    def require_login(ctx):
        if ctx.session.user is None:
            ctx.redirect("/login")
            return HALT
        return CONTINUE

    Called as func(ctx). Returning Flow.CONTINUE runs the next step,
    Flow.HALT stops the chain. Returning None means CONTINUE for a global
    middleware and HALT for a route handler, so an ordinary endpoint that
    answers and returns nothing ends the chain. Any other return value is
    a TypeError.

CONTINUATION (with_next(func) or a Middleware subclass)

    @with_next
    def timing(ctx, next):
        started = time.perf_counter()
        next()                          # the rest of the chain runs here
        log(time.perf_counter() - started)

    Called as func(ctx, next). next() runs everything downstream and returns
    when it is done, so code after next() wraps the rest of the chain.
    Returning without calling next() stops the chain. A second call to
    next() is ignored.

Either kind may be an `async def`; its result is awaited on the worker
thread before the chain moves on. An async continuation may call next()
while downstream handlers are async too.

=============================================================================
FAILURES
=============================================================================

An exception from any step aborts the remainder of the chain. It is logged
and the client gets a plain-text 500, or, when the headers were already
committed, the connection is closed without a response. Nothing from a
failed request leaks into the next one.
=============================================================================
"""

from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union, TYPE_CHECKING
import asyncio
import inspect
import logging

if TYPE_CHECKING:
    from ..context import RequestContext
    from ..http.response import ResponseWriter


logger = logging.getLogger(__name__)


class Flow(Enum):
    """What a return-signaled handler wants to happen next."""

    CONTINUE = "continue"
    HALT = "halt"


CONTINUE = Flow.CONTINUE
HALT = Flow.HALT


class HandlerKind(Enum):
    RETURN_SIGNALED = "return-signaled"
    CONTINUATION = "continuation"


@dataclass(frozen=True)
class Handler:
    """A callable tagged with its calling convention."""

    func: Callable[..., Any]
    kind: HandlerKind = HandlerKind.RETURN_SIGNALED

    @property
    def name(self) -> str:
        return getattr(self.func, "__name__", type(self.func).__name__)


HandlerLike = Union[Handler, Callable[..., Any]]
Next = Callable[[], None]


def with_next(func: Callable[..., Any]) -> Handler:
    """Mark `func(ctx, next)` as a continuation-taking handler."""
    return Handler(func, HandlerKind.CONTINUATION)


def as_handler(obj: HandlerLike) -> Handler:
    """
    Tag a registered object with its handler kind.

    Handler instances are kept as they are. Objects that declare a
    `handler_kind` attribute (the Middleware base classes below) get that
    kind. Any other callable is return-signaled.

    Raises:
        TypeError: if `obj` is not callable.
    """
    if isinstance(obj, Handler):
        return obj
    if not callable(obj):
        raise TypeError(f"Handler must be callable, got {obj!r}")
    kind = getattr(obj, "handler_kind", HandlerKind.RETURN_SIGNALED)
    return Handler(obj, kind)


class Middleware(ABC):
    """
    Base class for middlewares that wrap the rest of the chain.

        class Timing(Middleware):
            def __call__(self, ctx, next):
                started = time.perf_counter()
                next()
                ctx.response.set_header(...)  # too late if already sent

    Subclasses are registered as continuation-taking handlers.
    """

    handler_kind = HandlerKind.CONTINUATION

    @abstractmethod
    def __call__(self, ctx: "RequestContext", next: Next) -> None:
        ...


class BeforeMiddleware(ABC):
    """
    Base class for middlewares that run before the handlers and signal
    whether the chain continues.

        class RequireJSON(BeforeMiddleware):
            def __call__(self, ctx):
                if not ctx.request.is_json:
                    ctx.json({"error": "JSON required"}, status=415)
                    return HALT
                return CONTINUE
    """

    handler_kind = HandlerKind.RETURN_SIGNALED

    @abstractmethod
    def __call__(self, ctx: "RequestContext") -> Optional[Flow]:
        ...


def _resolve(result: Any) -> Any:
    """Run an awaitable result to completion on this worker thread."""
    if not inspect.isawaitable(result):
        return result

    async def wait():
        return await result

    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(wait())

    # An async continuation upstream is blocked in next() on this thread's
    # loop, so the awaitable gets a loop of its own on a helper thread.
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="miniweb-async") as pool:
        return pool.submit(asyncio.run, wait()).result()


class ChainExecutor:
    """
    Runs global middlewares followed by a route's handlers.

        executor = ChainExecutor([log_requests, session_mw, body_parser])
        executor.execute(ctx, match.entry.handlers)

    The executor itself is stateless between requests and may be shared by
    all worker threads.
    """

    def __init__(self, middlewares: Sequence[HandlerLike] = ()):
        self.middlewares: List[Handler] = [as_handler(m) for m in middlewares]

    def use(self, middleware: HandlerLike) -> "ChainExecutor":
        self.middlewares.append(as_handler(middleware))
        return self

    def execute(self, ctx: "RequestContext", route_handlers: Sequence[Handler]) -> None:
        """
        Run the chain for one request.

        Never raises for handler failures: they are logged and answered
        here.
        """
        steps: List[Tuple[Handler, Flow]] = (
            [(h, Flow.CONTINUE) for h in self.middlewares]
            + [(as_handler(h), Flow.HALT) for h in route_handlers]
        )
        try:
            self._run(ctx, steps, 0)
        except Exception:
            logger.exception(
                f"Handler failed for {ctx.request.method} {ctx.request.path}"
            )
            fail_response(ctx.response)

    def _run(self, ctx: "RequestContext", steps: List[Tuple[Handler, Flow]], index: int) -> None:
        while index < len(steps):
            handler, default = steps[index]

            if handler.kind is HandlerKind.CONTINUATION:
                _resolve(handler.func(ctx, self._make_next(ctx, steps, index + 1, handler)))
                return

            flow = self._interpret(_resolve(handler.func(ctx)), default, handler)
            if flow is Flow.HALT:
                return
            index += 1

    def _make_next(
        self,
        ctx: "RequestContext",
        steps: List[Tuple[Handler, Flow]],
        index: int,
        owner: Handler,
    ) -> Next:
        called = False

        def next_() -> None:
            nonlocal called
            if called:
                logger.warning(f"{owner.name} called next() more than once; ignoring")
                return
            called = True
            self._run(ctx, steps, index)

        return next_

    @staticmethod
    def _interpret(result: Any, default: Flow, handler: Handler) -> Flow:
        if result is None:
            return default
        if isinstance(result, Flow):
            return result
        raise TypeError(
            f"{handler.name} returned {result!r}; "
            f"expected Flow.CONTINUE, Flow.HALT or None"
        )


def fail_response(response: "ResponseWriter") -> None:
    """
    Answer a failed request.

    Open responses become a plain-text 500. Responses whose headers are
    already committed are aborted, which closes the connection. A finished
    response has already been handed to the connection and is left alone.
    """
    if response.finished:
        return
    if response.headers_sent:
        response.abort()
        return
    response.status = 500
    response.set_header("Content-Type", "text/plain; charset=utf-8")
    response.end("Internal Server Error")
