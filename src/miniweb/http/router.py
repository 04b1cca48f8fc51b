"""
=============================================================================
ROUTING
=============================================================================

Maps (method, path) to the ordered list of handlers registered for it.

    ┌──────────────────────────────────────────────────────────────────┐
    │  RouteTable                                                      │
    │                                                                  │
    │   GET  ──► /productos/upload         [upload_form]               │
    │            /productos/:id            [product_detail]            │
    │            /api/productos/:id        [api_product]               │
    │                                                                  │
    │   POST ──► /api/productos/:id/comments  [require_json, add]      │
    │                                                                  │
    │  resolve("GET", "/productos/7")                                  │
    │      → RouteMatch(entry=/productos/:id, params={"id": "7"})      │
    └──────────────────────────────────────────────────────────────────┘

=============================================================================
PATTERNS
=============================================================================

A pattern is literal text with `:name` parameters (name = word characters).
A parameter matches one or more characters that are not "/":

    /productos/:id        →  ^/productos/(?P<id>[^/]+)$
    /a.b/:x-:y            →  ^/a\\.b/(?P<x>[^/]+)\\-(?P<y>[^/]+)$

Everything outside a parameter is matched literally, and the whole path must
match. Paths are not normalised: "/productos" and "/productos/" are
different routes.

=============================================================================
ORDERING
=============================================================================

Entries are kept per method in registration order and the first entry whose
pattern matches wins. Register specific routes before general ones:

    table.add("GET", "/productos/upload", upload_form)   # first
    table.add("GET", "/productos/:id", product_detail)

The table is filled during setup and only read once the server runs.
=============================================================================
"""

from dataclasses import dataclass
from typing import Callable, Optional, Dict, List, Tuple, Iterator
import re

from ..middleware.base import Handler, HandlerLike, as_handler


_PARAM = re.compile(r":(\w+)")


class PathMatcher:
    """
    A compiled route pattern.

        >>> matcher = PathMatcher.compile("/items/:id")
        >>> matcher.match("/items/42")
        [('id', '42')]
        >>> matcher.match("/items/42/") is None
        True
    """

    def __init__(self, pattern: str, regex: "re.Pattern[str]", param_names: Tuple[str, ...]):
        self.pattern = pattern
        self.regex = regex
        self.param_names = param_names

    @classmethod
    def compile(cls, pattern: str) -> "PathMatcher":
        """
        Raises:
            ValueError: if a parameter name appears twice.
        """
        parts: List[str] = ["^"]
        names: List[str] = []
        position = 0

        for found in _PARAM.finditer(pattern):
            name = found.group(1)
            if name in names:
                raise ValueError(
                    f"Duplicate parameter ':{name}' in route pattern {pattern!r}"
                )
            names.append(name)
            parts.append(re.escape(pattern[position:found.start()]))
            parts.append(f"(?P<{name}>[^/]+)")
            position = found.end()

        parts.append(re.escape(pattern[position:]))
        parts.append("$")
        return cls(pattern, re.compile("".join(parts)), tuple(names))

    def match(self, path: str) -> Optional[List[Tuple[str, str]]]:
        """Captured (name, value) pairs in pattern order, or None."""
        found = self.regex.match(path)
        if found is None:
            return None
        return [(name, found.group(name)) for name in self.param_names]

    def __repr__(self) -> str:
        return f"PathMatcher({self.pattern!r})"


@dataclass(frozen=True)
class RouteEntry:
    """One registered route. Immutable once in the table."""

    method: str
    pattern: str
    matcher: PathMatcher
    handlers: Tuple[Handler, ...]

    @property
    def param_names(self) -> Tuple[str, ...]:
        return self.matcher.param_names


@dataclass(frozen=True)
class RouteMatch:
    """A resolved route and the parameters captured from the path."""

    entry: RouteEntry
    params: Dict[str, str]


class RouteTable:
    """
    Per-method, insertion-ordered route registry.

    Handlers can be added directly or with the decorator helpers. Any
    positional handlers given to a decorator run before the decorated one:

        routes = RouteTable()

        @routes.get("/api/productos/:id")
        def api_product(ctx):
            ctx.json(catalog.get(ctx.params["id"]))

        @routes.post("/api/productos/:id/comments", require_json)
        def add_comment(ctx):
            ...
    """

    def __init__(self):
        self._entries: Dict[str, List[RouteEntry]] = {}

    def add(self, method: str, pattern: str, *handlers: HandlerLike) -> RouteEntry:
        """
        Register `handlers` for `method` + `pattern`.

        Raises:
            ValueError: on an empty handler list or an invalid pattern.
        """
        if not handlers:
            raise ValueError(f"Route {method} {pattern} needs at least one handler")

        entry = RouteEntry(
            method=method.upper(),
            pattern=pattern,
            matcher=PathMatcher.compile(pattern),
            handlers=tuple(as_handler(h) for h in handlers),
        )
        self._entries.setdefault(entry.method, []).append(entry)
        return entry

    def resolve(self, method: str, path: str) -> Optional[RouteMatch]:
        """First entry registered for `method` whose pattern matches `path`."""
        for entry in self._entries.get(method.upper(), ()):
            captured = entry.matcher.match(path)
            if captured is not None:
                return RouteMatch(entry=entry, params=dict(captured))
        return None

    def entries(self) -> Iterator[RouteEntry]:
        """Every entry, grouped by method, in registration order."""
        for method_entries in self._entries.values():
            yield from method_entries

    def __len__(self) -> int:
        return sum(len(method_entries) for method_entries in self._entries.values())

    # -------------------------------------------------------------------------
    # Decorators
    # -------------------------------------------------------------------------

    def route(self, method: str, pattern: str, *before: HandlerLike) -> Callable:
        def decorator(func):
            self.add(method, pattern, *before, func)
            return func
        return decorator

    def get(self, pattern: str, *before: HandlerLike) -> Callable:
        return self.route("GET", pattern, *before)

    def post(self, pattern: str, *before: HandlerLike) -> Callable:
        return self.route("POST", pattern, *before)

    def put(self, pattern: str, *before: HandlerLike) -> Callable:
        return self.route("PUT", pattern, *before)

    def patch(self, pattern: str, *before: HandlerLike) -> Callable:
        return self.route("PATCH", pattern, *before)

    def delete(self, pattern: str, *before: HandlerLike) -> Callable:
        return self.route("DELETE", pattern, *before)

    def options(self, pattern: str, *before: HandlerLike) -> Callable:
        return self.route("OPTIONS", pattern, *before)

    def print_routes(self) -> None:
        print("\nRegistered Routes:")
        print("-" * 60)
        for entry in self.entries():
            print(f"  {entry.method:8} {entry.pattern}")
        print("-" * 60)
