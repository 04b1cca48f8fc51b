"""
Unit tests for the shared stores.
"""

from miniweb.stores import CacheStore, Metrics, SessionStore, Stores


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestSessionStore:
    """Tests for SessionStore."""

    def test_create_and_get(self):
        store = SessionStore()
        session = store.create()

        assert store.get(session.id) is session
        assert session.user is None
        assert not session.is_authenticated

    def test_tokens_are_unique(self):
        store = SessionStore()
        tokens = {store.create().id for _ in range(50)}

        assert len(tokens) == 50
        assert len(store) == 50

    def test_get_unknown_or_empty(self):
        store = SessionStore()

        assert store.get("nope") is None
        assert store.get(None) is None
        assert store.get("") is None

    def test_get_refreshes_last_active(self):
        clock = FakeClock()
        store = SessionStore(clock=clock)
        session = store.create()

        clock.now += 100
        store.get(session.id)

        assert session.last_active == clock.now

    def test_idle_session_expires(self):
        clock = FakeClock()
        expired = []
        store = SessionStore(idle_ttl=60, clock=clock)
        store.on_expire = expired.append
        session = store.create()

        clock.now += 59
        assert store.get(session.id) is session

        clock.now += 61
        assert store.get(session.id) is None
        assert session.id not in store
        assert expired == [1]

    def test_create_sweeps_idle_sessions(self):
        clock = FakeClock()
        expired = []
        store = SessionStore(idle_ttl=60, cleanup_interval=30, clock=clock)
        store.on_expire = expired.append
        for _ in range(5):
            store.create()

        clock.now += 120
        fresh = store.create()

        assert len(store) == 1
        assert fresh.id in store
        assert expired == [5]

    def test_sweep_waits_for_the_interval(self):
        clock = FakeClock()
        store = SessionStore(idle_ttl=10, cleanup_interval=300, clock=clock)
        store.create()

        clock.now += 20
        store.create()

        assert len(store) == 2

    def test_destroy(self):
        store = SessionStore()
        session = store.create()

        assert store.destroy(session.id) is True
        assert store.destroy(session.id) is False
        assert session.id not in store


class TestCacheStore:
    """Tests for CacheStore."""

    def test_set_and_get(self):
        cache = CacheStore(ttl=10)
        cache.set("/api/productos", b"[]", "application/json")

        entry = cache.get("/api/productos")
        assert entry.body == b"[]"
        assert entry.content_type == "application/json"

    def test_expiry(self):
        clock = FakeClock()
        cache = CacheStore(ttl=10, clock=clock)
        cache.set("k", b"v", "text/plain")

        clock.now += 9.9
        assert cache.get("k") is not None

        clock.now += 0.1
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_invalidate_prefix(self):
        cache = CacheStore()
        cache.set("/api/productos", b"1", "a")
        cache.set("/api/productos/2/comments", b"2", "a")
        cache.set("/apix", b"3", "a")

        assert cache.invalidate_prefix("/api/productos") == 2
        assert len(cache) == 1

    def test_set_sweeps_expired_entries(self):
        clock = FakeClock()
        cache = CacheStore(ttl=10, clock=clock)
        for n in range(20):
            cache.set(f"/api/productos?pagina={n}", b"[]", "application/json")

        clock.now += 11
        cache.set("/api/productos", b"[]", "application/json")

        assert len(cache) == 1

    def test_set_skipped_after_invalidation(self):
        cache = CacheStore()
        since = cache.generation

        cache.invalidate_prefix("/api/productos/3/comments")

        assert cache.set("/api/productos/3/comments", b"[]", "a", since=since) is None
        assert cache.get("/api/productos/3/comments") is None
        assert cache.set("/api/productos/4/comments", b"[]", "a", since=since) is not None

    def test_set_allowed_after_earlier_invalidation(self):
        cache = CacheStore()
        cache.invalidate_prefix("/api/productos/3/comments")
        since = cache.generation

        assert cache.set("/api/productos/3/comments", b"[]", "a", since=since) is not None
        assert len(cache) == 1

    def test_clear(self):
        cache = CacheStore()
        cache.set("a", b"", "x")
        cache.clear()
        assert len(cache) == 0


class TestMetrics:
    """Tests for Metrics."""

    def test_empty_snapshot(self):
        snapshot = Metrics().snapshot()

        assert snapshot["total_requests"] == 0
        assert snapshot["avg_response_time"] == 0.0
        assert snapshot["routes"] == {}

    def test_record(self):
        metrics = Metrics()
        metrics.record("/", 200, 10.0)
        metrics.record("/", 200, 20.0)
        metrics.record("/x", 500, 30.0)

        snapshot = metrics.snapshot()
        assert snapshot["total_requests"] == 3
        assert snapshot["total_errors"] == 1
        assert snapshot["routes"] == {"/": 2, "/x": 1}
        assert snapshot["status_codes"] == {"200": 2, "500": 1}
        assert snapshot["timings"]["/"] == [10.0, 20.0]
        assert snapshot["avg_response_time"] == 20.0
        assert snapshot["last_response_time"] == 30.0

    def test_timings_are_bounded(self):
        metrics = Metrics(max_timings=3)
        for ms in range(5):
            metrics.record("/", 200, float(ms))

        assert metrics.snapshot()["timings"]["/"] == [2.0, 3.0, 4.0]

    def test_snapshot_is_a_copy(self):
        metrics = Metrics()
        metrics.record("/", 200, 1.0)
        snapshot = metrics.snapshot()
        snapshot["routes"]["/"] = 99

        assert metrics.snapshot()["routes"]["/"] == 1

    def test_sessions_never_negative(self):
        metrics = Metrics()
        metrics.session_opened()
        metrics.session_closed()
        metrics.session_closed()

        assert metrics.active_sessions == 0


class TestStores:
    def test_create_uses_ttl(self):
        assert Stores.create(cache_ttl=42).cache.ttl == 42

    def test_create_uses_session_ttl(self):
        assert Stores.create(session_ttl=5).sessions.idle_ttl == 5

    def test_expired_sessions_leave_metrics(self):
        clock = FakeClock()
        stores = Stores(sessions=SessionStore(idle_ttl=10, clock=clock))
        session = stores.sessions.create()
        stores.metrics.session_opened()

        clock.now += 11
        stores.sessions.get(session.id)

        assert stores.metrics.active_sessions == 0
