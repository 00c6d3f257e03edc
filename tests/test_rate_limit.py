"""Tests for the fixed-window limiter and the /api middleware."""

from fastapi.testclient import TestClient
from limits.storage import MemoryStorage

from parley.api.app import create_app
from parley.api.deps import get_settings, get_store
from parley.api.rate_limit import FixedWindowRateLimiter


def test_allows_up_to_max_then_blocks():
    limiter = FixedWindowRateLimiter(max_requests=3, window_seconds=60)

    assert [limiter.allow("ip") for _ in range(4)] == [True, True, True, False]
    assert limiter.allow("other-ip")
    assert limiter.remaining("other-ip") == 2


def test_retry_after_is_within_window():
    limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=10)

    assert limiter.allow("ip")
    assert not limiter.allow("ip")
    assert 1 <= limiter.retry_after("ip") <= 10


def test_reset_clears_key():
    limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=60)
    limiter.allow("ip")
    assert not limiter.allow("ip")

    limiter.reset("ip")

    assert limiter.allow("ip")


def test_shared_storage_counts_across_limiters():
    shared = MemoryStorage()
    first = FixedWindowRateLimiter(max_requests=2, window_seconds=60, backend=shared)
    second = FixedWindowRateLimiter(max_requests=2, window_seconds=60, backend=shared)

    assert first.allow("ip")
    assert second.allow("ip")
    assert not first.allow("ip")


def test_middleware_returns_429_with_retry_after(store, test_settings):
    limiter = FixedWindowRateLimiter(max_requests=2, window_seconds=60)
    app = create_app(rate_limiter=limiter)
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_settings] = lambda: test_settings
    client = TestClient(app)
    headers = {"X-Forwarded-For": "203.0.113.9, 10.0.0.1"}

    params = {"deviceId": "d"}

    for _ in range(2):
        ok = client.get("/api/conversations", params=params, headers=headers)
        assert ok.status_code == 200

    blocked = client.get("/api/conversations", params=params, headers=headers)
    assert blocked.status_code == 429
    assert int(blocked.headers["Retry-After"]) >= 1

    # Keyed by the first forwarded hop
    other = client.get(
        "/api/conversations",
        params={"deviceId": "d"},
        headers={"X-Forwarded-For": "198.51.100.1"},
    )
    assert other.status_code == 200

    # Non-API paths are never limited
    assert client.get("/health").status_code == 200
