"""Tests for middleware components."""

import pytest
from httpx import ASGITransport, AsyncClient

from api.config import Settings
from api.middleware import RateLimitMiddleware, SlidingWindowRateLimiter
from worker.audit.history import InMemoryHistoryStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestSlidingWindowRateLimiter:
    """Tests for the sliding window limiter."""

    def test_allows_up_to_limit(self):
        limiter = SlidingWindowRateLimiter(3, 60, clock=FakeClock())
        assert [limiter.hit("1.2.3.4")[0] for _ in range(4)] == [True, True, True, False]

    def test_keys_are_independent(self):
        limiter = SlidingWindowRateLimiter(1, 60, clock=FakeClock())
        assert limiter.hit("a")[0] is True
        assert limiter.hit("b")[0] is True
        assert limiter.hit("a")[0] is False

    def test_retry_after_counts_down(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(1, 60, clock=clock)
        limiter.hit("a")
        clock.advance(15.5)
        allowed, retry_after = limiter.hit("a")
        assert allowed is False
        assert retry_after == 45

    def test_retry_after_at_least_one_second(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(1, 60, clock=clock)
        limiter.hit("a")
        clock.advance(59.9)
        assert limiter.hit("a") == (False, 1)

    def test_window_slides(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(2, 60, clock=clock)
        limiter.hit("a")
        clock.advance(30)
        limiter.hit("a")
        clock.advance(31)
        # First hit has left the window, second has not
        assert limiter.remaining("a") == 1
        assert limiter.hit("a")[0] is True
        assert limiter.hit("a")[0] is False

    def test_rejected_hits_do_not_extend_the_window(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(1, 10, clock=clock)
        limiter.hit("a")
        for _ in range(5):
            clock.advance(1)
            limiter.hit("a")
        clock.advance(5)
        assert limiter.hit("a")[0] is True

    def test_idle_keys_are_reaped(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(5, 60, clock=clock)
        limiter.hit("a")
        limiter.hit("b")
        assert limiter.tracked_keys == 2
        clock.advance(61)
        assert limiter.remaining("a") == 5
        assert limiter.tracked_keys == 1

    def test_one_off_keys_swept_on_later_hit(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(5, 60, clock=clock)
        for key in ("10.0.0.1", "10.0.0.2", "10.0.0.3"):
            limiter.hit(key)
        clock.advance(30)
        limiter.hit("10.0.0.4")
        assert limiter.tracked_keys == 4
        clock.advance(31)
        limiter.hit("10.0.0.4")
        assert limiter.tracked_keys == 1

    def test_sweep_keeps_active_keys(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(5, 60, clock=clock)
        limiter.hit("a")
        clock.advance(50)
        limiter.hit("b")
        clock.advance(20)
        assert limiter.sweep() == 1
        assert limiter.tracked_keys == 1
        assert limiter.remaining("b") == 4

    def test_reset(self):
        limiter = SlidingWindowRateLimiter(1, 60, clock=FakeClock())
        limiter.hit("a")
        limiter.reset()
        assert limiter.tracked_keys == 0
        assert limiter.hit("a")[0] is True


def _app(max_requests: int = 1000, **settings_overrides):
    from api.main import create_app

    settings = Settings(_env_file=None, env="test", openai_api_key="test-key", **settings_overrides)
    return create_app(
        settings=settings,
        history_store=InMemoryHistoryStore(),
        rate_limiter=SlidingWindowRateLimiter(max_requests, 60),
    )


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


class TestRateLimitMiddleware:
    """Tests for per-IP rate limiting over HTTP."""

    def test_excluded_paths(self):
        assert "/health" in RateLimitMiddleware.EXCLUDE_PATHS

    @pytest.mark.asyncio
    async def test_limit_returns_429(self):
        async with _client(_app(max_requests=2)) as client:
            first = await client.get("/rubric")
            await client.get("/rubric")
            response = await client.get("/rubric")

        assert first.headers["X-RateLimit-Limit"] == "2"
        assert first.headers["X-RateLimit-Remaining"] == "1"
        assert response.status_code == 429
        assert response.json()["error"]["code"] == "rate_limit_exceeded"
        assert int(response.headers["Retry-After"]) >= 1

    @pytest.mark.asyncio
    async def test_forwarded_ips_counted_separately(self):
        async with _client(_app(max_requests=1)) as client:
            a = await client.get("/rubric", headers={"X-Forwarded-For": "10.0.0.1"})
            b = await client.get("/rubric", headers={"X-Forwarded-For": "10.0.0.2, 172.16.0.1"})
            again = await client.get("/rubric", headers={"X-Forwarded-For": "10.0.0.1"})

        assert (a.status_code, b.status_code, again.status_code) == (200, 200, 429)

    @pytest.mark.asyncio
    async def test_health_not_limited(self):
        async with _client(_app(max_requests=1)) as client:
            statuses = [(await client.get("/health")).status_code for _ in range(3)]
        assert statuses == [200, 200, 200]

    @pytest.mark.asyncio
    async def test_disabled(self):
        async with _client(_app(max_requests=1, rate_limit_enabled=False)) as client:
            statuses = [(await client.get("/rubric")).status_code for _ in range(3)]
        assert statuses == [200, 200, 200]


class TestRequestSizeLimitMiddleware:
    """Tests for the request body limit."""

    @pytest.mark.asyncio
    async def test_oversized_body_returns_413(self):
        async with _client(_app(max_request_bytes=1024)) as client:
            response = await client.post(
                "/analyze",
                content=b'{"url": "' + b"x" * 2048 + b'"}',
                headers={"Content-Type": "application/json"},
            )
        assert response.status_code == 413
        assert response.json() == {
            "error": {"code": "request_too_large", "message": "Request too large"}
        }

    @pytest.mark.asyncio
    async def test_small_body_passes(self):
        async with _client(_app(max_request_bytes=1024)) as client:
            response = await client.patch("/audits/audit_0_missing", json={"url": "x"})
        assert response.status_code == 404


class TestRequestIDMiddleware:
    """Tests for request id propagation."""

    @pytest.mark.asyncio
    async def test_generated(self):
        async with _client(_app()) as client:
            response = await client.get("/health")
        assert response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_echoed(self):
        async with _client(_app()) as client:
            response = await client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"
