"""Tests for the fixed window rate limiter and its middleware."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from erpbridge.app.main import create_app
from erpbridge.app.middleware.rate_limit import (
    FixedWindowRateLimiter,
    RateLimitMiddleware,
    RateLimitResult,
)


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def never() -> float:
    """Random source that never triggers the cleanup sweep."""
    return 1.0


def always() -> float:
    """Random source that always triggers the cleanup sweep."""
    return 0.0


class TestFixedWindowRateLimiter:
    """Tests for the in-memory fixed window limiter."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def limiter(self, clock):
        return FixedWindowRateLimiter(
            max_requests=3, window_seconds=60, clock=clock, rng=never
        )

    @pytest.mark.asyncio
    async def test_first_request_opens_window(self, limiter, clock):
        result = await limiter.hit("1.2.3.4:/products")

        assert result.allowed is True
        assert result.limit == 3
        assert result.remaining == 2
        assert result.reset_time == int(clock.now + 60)
        record = limiter.get_record("1.2.3.4:/products")
        assert record.count == 1

    @pytest.mark.asyncio
    async def test_requests_up_to_limit_are_allowed(self, limiter):
        results = [await limiter.hit("k") for _ in range(3)]

        assert all(r.allowed for r in results)
        assert [r.remaining for r in results] == [2, 1, 0]

    @pytest.mark.asyncio
    async def test_request_over_limit_is_rejected(self, limiter, clock):
        for _ in range(3):
            await limiter.hit("k")
        clock.advance(20)

        result = await limiter.hit("k")

        assert result.allowed is False
        assert result.remaining == 0
        assert result.retry_after == 40
        assert result.retry_after <= limiter.window_seconds

    @pytest.mark.asyncio
    async def test_rejections_do_not_extend_window(self, limiter, clock):
        for _ in range(3):
            await limiter.hit("k")
        for _ in range(5):
            rejected = await limiter.hit("k")
            assert rejected.allowed is False

        assert limiter.get_record("k").count == 3

    @pytest.mark.asyncio
    async def test_window_expiry_resets_count(self, limiter, clock):
        for _ in range(4):
            await limiter.hit("k")
        clock.advance(60)

        result = await limiter.hit("k")

        assert result.allowed is True
        assert result.remaining == 2
        assert limiter.get_record("k").count == 1

    @pytest.mark.asyncio
    async def test_retry_after_never_below_one_second(self, limiter, clock):
        for _ in range(3):
            await limiter.hit("k")
        clock.advance(59.9)

        result = await limiter.hit("k")

        assert result.allowed is False
        assert result.retry_after == 1

    @pytest.mark.asyncio
    async def test_different_keys_independent(self, limiter):
        for _ in range(3):
            await limiter.hit("a:/orders")

        assert (await limiter.hit("a:/orders")).allowed is False
        assert (await limiter.hit("a:/products")).allowed is True
        assert (await limiter.hit("b:/orders")).allowed is True

    @pytest.mark.asyncio
    async def test_sampled_sweep_removes_expired_records(self, clock):
        limiter = FixedWindowRateLimiter(
            max_requests=3, window_seconds=10, clock=clock, rng=always
        )
        await limiter.hit("old")
        clock.advance(11)

        await limiter.hit("new")

        assert limiter.get_record("old") is None
        assert len(limiter) == 1

    @pytest.mark.asyncio
    async def test_unsampled_requests_keep_expired_records(self, limiter, clock):
        await limiter.hit("old")
        clock.advance(61)

        await limiter.hit("new")

        assert limiter.get_record("old") is not None

    @pytest.mark.asyncio
    async def test_cleanup_removes_only_expired(self, limiter, clock):
        await limiter.hit("old")
        clock.advance(30)
        await limiter.hit("fresh")
        clock.advance(31)

        removed = await limiter.cleanup()

        assert removed == 1
        assert limiter.get_record("fresh") is not None

    @pytest.mark.asyncio
    async def test_reset_clears_all_records(self, limiter):
        await limiter.hit("k")
        limiter.reset()
        assert len(limiter) == 0

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            FixedWindowRateLimiter(max_requests=0)
        with pytest.raises(ValueError):
            FixedWindowRateLimiter(window_seconds=0)
        with pytest.raises(ValueError):
            FixedWindowRateLimiter(window_seconds=0.5)


class TestRateLimitResult:
    """Tests for RateLimitResult."""

    def test_headers(self):
        result = RateLimitResult(allowed=True, limit=100, remaining=99, reset_time=1234567890)
        assert result.headers == {
            "X-RateLimit-Limit": "100",
            "X-RateLimit-Remaining": "99",
            "X-RateLimit-Reset": "1234567890",
        }


class TestRateLimitMiddleware:
    """Tests for the rate limit middleware."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def limiter(self, clock):
        return FixedWindowRateLimiter(
            max_requests=2, window_seconds=30, clock=clock, rng=never
        )

    @pytest.fixture
    def client(self, limiter):
        app = FastAPI()
        app.add_middleware(RateLimitMiddleware, limiter=limiter)

        @app.get("/ping")
        async def ping():
            return {"ok": True}

        @app.get("/pong")
        async def pong():
            return {"ok": True}

        @app.get("/health")
        async def health():
            return {"status": "ok"}

        return TestClient(app)

    def test_allowed_response_has_headers(self, client):
        resp = client.get("/ping")

        assert resp.status_code == 200
        assert resp.headers["X-RateLimit-Limit"] == "2"
        assert resp.headers["X-RateLimit-Remaining"] == "1"
        assert "X-RateLimit-Reset" in resp.headers

    def test_rejected_response(self, client, clock):
        client.get("/ping")
        client.get("/ping")
        clock.advance(10)

        resp = client.get("/ping")

        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "20"
        assert resp.headers["X-RateLimit-Remaining"] == "0"
        assert resp.headers["X-RateLimit-Limit"] == "2"
        body = resp.json()
        assert body["success"] is False
        assert body["error"] == "Too Many Requests"
        assert body["retryAfter"] == 20

    def test_key_includes_path(self, client):
        client.get("/ping")
        client.get("/ping")

        assert client.get("/ping").status_code == 429
        assert client.get("/pong").status_code == 200

    def test_key_uses_forwarded_ip(self, client):
        headers = {"X-Forwarded-For": "10.0.0.1, 172.16.0.1"}
        client.get("/ping", headers=headers)
        client.get("/ping", headers=headers)

        assert client.get("/ping", headers=headers).status_code == 429
        assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.2"}).status_code == 200
        assert client.get("/ping", headers={"X-Real-IP": "10.0.0.3"}).status_code == 200

    def test_window_elapses(self, client, clock):
        client.get("/ping")
        client.get("/ping")
        assert client.get("/ping").status_code == 429

        clock.advance(30)

        resp = client.get("/ping")
        assert resp.status_code == 200
        assert resp.headers["X-RateLimit-Remaining"] == "1"

    def test_exempt_paths_are_not_counted(self, client, limiter):
        for _ in range(5):
            assert client.get("/health").status_code == 200
        assert len(limiter) == 0


class TestConfiguredRateLimit:
    """The app's middleware enforces the configured limits."""

    @pytest.fixture
    def configured_app(self, monkeypatch):
        monkeypatch.setattr("erpbridge.app.main.settings.rate_limit_max_requests", 2)
        monkeypatch.setattr("erpbridge.app.main.settings.rate_limit_window_ms", 5000)
        return create_app()

    def test_middleware_uses_app_limiter(self, configured_app):
        limiter = configured_app.state.rate_limiter
        middleware = next(
            m for m in configured_app.user_middleware if m.cls is RateLimitMiddleware
        )

        assert middleware.kwargs["limiter"] is limiter
        assert limiter.max_requests == 2
        assert limiter.window_seconds == 5.0

    def test_request_over_configured_max_is_rejected(self, configured_app):
        client = TestClient(configured_app)

        statuses = [client.get("/products").status_code for _ in range(3)]

        # Counted before the auth gate, so unauthenticated calls still use the window.
        assert statuses == [401, 401, 429]
        resp = client.get("/products")
        assert resp.headers["X-RateLimit-Limit"] == "2"
        assert int(resp.headers["Retry-After"]) <= 5
        assert len(configured_app.state.rate_limiter) == 1

    def test_reset_clears_live_counters(self, configured_app):
        client = TestClient(configured_app)
        for _ in range(3):
            client.get("/products")

        configured_app.state.rate_limiter.reset()

        assert client.get("/products").status_code == 401
