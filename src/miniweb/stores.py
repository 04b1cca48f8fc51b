"""
=============================================================================
SHARED STORES
=============================================================================

State that outlives a single request: sessions, cached API responses and
request metrics. All three are plain in-memory maps owned by the server and
passed to every RequestContext; nothing here is persisted.

    ┌──────────────────────────────────────────────────────────────┐
    │  Stores                                                      │
    │    sessions  token → Session          (SessionMiddleware)    │
    │    cache     key   → CacheEntry       (CacheMiddleware)      │
    │    metrics   counters and timings     (MetricsMiddleware)    │
    └──────────────────────────────────────────────────────────────┘

Worker threads share these objects. Each store serialises its own updates
with a lock, so two requests touching the same key simply see the last
write win.
=============================================================================
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
import logging
import secrets
import threading
import time


logger = logging.getLogger(__name__)

SESSION_COOKIE = "session"


# =============================================================================
# SESSIONS
# =============================================================================

@dataclass
class Session:
    """One browser session, identified by the `session` cookie."""

    id: str
    created: float = field(default_factory=time.time)
    last_active: float = field(default_factory=time.time)
    user: Optional[Any] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


class SessionStore:
    """
    Session registry keyed by an unguessable token.

        session = store.create()
        store.get(session.id) is session   # True, and last_active is refreshed
        store.destroy(session.id)

    A session left idle for `idle_ttl` seconds counts as gone. Idle sessions
    are swept from memory by create(), at most once per `cleanup_interval`.
    """

    def __init__(
        self,
        token_bytes: int = 24,
        idle_ttl: float = 1800.0,
        cleanup_interval: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()
        self._token_bytes = token_bytes
        self.idle_ttl = idle_ttl
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._last_cleanup = clock()
        self.on_expire: Optional[Callable[[int], None]] = None

    def create(self) -> Session:
        now = self._clock()
        with self._lock:
            expired = 0
            if now - self._last_cleanup > self.cleanup_interval:
                expired = self._cleanup(now)
            token = secrets.token_urlsafe(self._token_bytes)
            while token in self._sessions:
                token = secrets.token_urlsafe(self._token_bytes)
            session = Session(id=token, created=now, last_active=now)
            self._sessions[token] = session

        if expired and self.on_expire is not None:
            self.on_expire(expired)
        return session

    def get(self, token: Optional[str]) -> Optional[Session]:
        if not token:
            return None
        now = self._clock()
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            if now - session.last_active <= self.idle_ttl:
                session.last_active = now
                return session
            del self._sessions[token]

        if self.on_expire is not None:
            self.on_expire(1)
        return None

    def save(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.id] = session

    def destroy(self, token: str) -> bool:
        """Remove a session. Returns False if it did not exist."""
        with self._lock:
            return self._sessions.pop(token, None) is not None

    def _cleanup(self, now: float) -> int:
        """Drop idle sessions; the caller holds the lock."""
        idle = [
            token for token, session in self._sessions.items()
            if now - session.last_active > self.idle_ttl
        ]
        for token in idle:
            del self._sessions[token]
        self._last_cleanup = now
        if idle:
            logger.debug(f"Expired {len(idle)} idle sessions")
        return len(idle)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, token: str) -> bool:
        with self._lock:
            return token in self._sessions


# =============================================================================
# RESPONSE CACHE
# =============================================================================

@dataclass(frozen=True)
class CacheEntry:
    body: bytes
    content_type: str
    stored_at: float = field(default_factory=time.monotonic)


class CacheStore:
    """
    Time-limited cache of response bodies.

    Entries older than `ttl` seconds are treated as absent. Expired entries
    are dropped when looked up and swept from the whole map on every set().

    Each invalidate_prefix() call bumps `generation`. A writer that read the
    generation before computing its body passes it as `since`, and set()
    refuses the write if a matching prefix was invalidated in between:

        since = cache.generation
        body = render()                       # a POST may invalidate here
        cache.set(key, body, "application/json", since=since)
    """

    def __init__(self, ttl: float = 300.0, clock=time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._invalidated: Dict[str, int] = {}
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.stored_at >= self.ttl:
                del self._entries[key]
                return None
            return entry

    def set(
        self, key: str, body: bytes, content_type: str, since: Optional[int] = None
    ) -> Optional[CacheEntry]:
        """Store a body; returns None when an invalidation since `since` covers `key`."""
        now = self._clock()
        entry = CacheEntry(body=body, content_type=content_type, stored_at=now)
        with self._lock:
            if since is not None and any(
                generation > since and key.startswith(prefix)
                for prefix, generation in self._invalidated.items()
            ):
                logger.debug(f"Not caching {key}: invalidated while it was computed")
                return None
            expired = [k for k, e in self._entries.items() if now - e.stored_at >= self.ttl]
            for k in expired:
                del self._entries[k]
            self._entries[key] = entry
        return entry

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every key starting with `prefix`; returns how many were dropped."""
        with self._lock:
            self._generation += 1
            self._invalidated[prefix] = self._generation
            stale = [key for key in self._entries if key.startswith(prefix)]
            for key in stale:
                del self._entries[key]
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# =============================================================================
# METRICS
# =============================================================================

class Metrics:
    """
    Request counters and timings.

    `record` is called once per finished response. `snapshot` returns a
    JSON-ready copy, so callers never hold references into the live maps.
    Only the most recent `max_timings` durations are kept per path.
    """

    def __init__(self, max_timings: int = 100):
        self._lock = threading.Lock()
        self._max_timings = max_timings
        self.total_requests = 0
        self.total_errors = 0
        self.active_sessions = 0
        self.last_response_time = 0.0
        self._total_time = 0.0
        self._routes: Dict[str, int] = {}
        self._status_codes: Dict[int, int] = {}
        self._timings: Dict[str, List[float]] = {}

    def record(self, path: str, status: int, duration_ms: float) -> None:
        with self._lock:
            self.total_requests += 1
            if status >= 400:
                self.total_errors += 1
            self._routes[path] = self._routes.get(path, 0) + 1
            self._status_codes[status] = self._status_codes.get(status, 0) + 1

            timings = self._timings.setdefault(path, [])
            timings.append(duration_ms)
            if len(timings) > self._max_timings:
                del timings[0]

            self.last_response_time = duration_ms
            self._total_time += duration_ms

    def session_opened(self) -> None:
        with self._lock:
            self.active_sessions += 1

    def session_closed(self, count: int = 1) -> None:
        with self._lock:
            self.active_sessions = max(0, self.active_sessions - count)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            average = self._total_time / self.total_requests if self.total_requests else 0.0
            return {
                "total_requests": self.total_requests,
                "total_errors": self.total_errors,
                "routes": dict(self._routes),
                "status_codes": {str(code): count for code, count in self._status_codes.items()},
                "timings": {path: list(values) for path, values in self._timings.items()},
                "avg_response_time": round(average, 3),
                "last_response_time": round(self.last_response_time, 3),
                "active_sessions": self.active_sessions,
            }


@dataclass
class Stores:
    """The stores one server instance hands to its requests."""

    sessions: SessionStore = field(default_factory=SessionStore)
    cache: CacheStore = field(default_factory=CacheStore)
    metrics: Metrics = field(default_factory=Metrics)

    def __post_init__(self) -> None:
        self.sessions.on_expire = self.metrics.session_closed

    @classmethod
    def create(cls, cache_ttl: float = 300.0, session_ttl: float = 1800.0) -> "Stores":
        return cls(
            sessions=SessionStore(idle_ttl=session_ttl),
            cache=CacheStore(ttl=cache_ttl),
        )
