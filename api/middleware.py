"""Custom middleware for the API."""

from __future__ import annotations

import math
import time
import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from fastapi import Request, Response, status
from fastapi.responses import ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

# Type alias for call_next function
CallNext = Callable[[Request], Awaitable[Response]]

logger = structlog.get_logger()


def _error_response(status_code: int, code: str, message: str, headers: dict | None = None) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
        headers=headers,
    )


def get_client_ip(request: Request) -> str:
    """Get client IP, handling proxies."""
    # Check X-Forwarded-For header (from reverse proxy)
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # First IP is the original client
        ip: str = forwarded.split(",")[0].strip()
        return ip
    # Fall back to direct connection
    return request.client.host if request.client else "unknown"


class SlidingWindowRateLimiter:
    """Per-key sliding window request counter.

    Each key keeps the timestamps of its recent requests. Timestamps older
    than the window are dropped whenever the key is touched, and a key
    with no timestamps left is forgotten. Keys that are never touched again
    are swept from ``hit`` at most once per window.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._last_sweep = clock()

    def _reap(self, key: str, now: float) -> deque[float] | None:
        hits = self._hits.get(key)
        if hits is None:
            return None
        cutoff = now - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        if not hits:
            del self._hits[key]
            return None
        return hits

    def sweep(self, now: float | None = None) -> int:
        """Forget every key whose hits have all left the window. Returns keys removed."""
        now = self._clock() if now is None else now
        before = len(self._hits)
        for key in list(self._hits):
            self._reap(key, now)
        self._last_sweep = now
        return before - len(self._hits)

    def hit(self, key: str) -> tuple[bool, int]:
        """Record a request. Returns (allowed, retry_after_seconds)."""
        now = self._clock()
        if now - self._last_sweep >= self.window_seconds:
            self.sweep(now)
        hits = self._reap(key, now)
        if hits is None:
            hits = self._hits.setdefault(key, deque())

        if len(hits) >= self.max_requests:
            retry_after = max(1, math.ceil(hits[0] + self.window_seconds - now))
            return False, retry_after

        hits.append(now)
        return True, 0

    def remaining(self, key: str) -> int:
        """Requests left for ``key`` in the current window."""
        hits = self._reap(key, self._clock())
        used = len(hits) if hits else 0
        return max(0, self.max_requests - used)

    def reset(self) -> None:
        """Forget every key."""
        self._hits.clear()

    @property
    def tracked_keys(self) -> int:
        return len(self._hits)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add unique request ID to each request for tracing."""

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        # Bind request ID to structlog context
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log request/response details."""

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        start_time = time.perf_counter()
        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client_ip=get_client_ip(request),
        )

        response = await call_next(request)

        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP rate limiting backed by a sliding window limiter."""

    # Paths excluded from rate limiting
    EXCLUDE_PATHS = {"/health", "/docs", "/openapi.json"}

    def __init__(self, app: Any, limiter: SlidingWindowRateLimiter, enabled: bool = True) -> None:
        super().__init__(app)
        self.limiter = limiter
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        if not self.enabled or request.url.path in self.EXCLUDE_PATHS:
            return await call_next(request)

        client_ip = get_client_ip(request)
        allowed, retry_after = self.limiter.hit(client_ip)
        if not allowed:
            logger.warning("rate_limit_exceeded", client_ip=client_ip, path=request.url.path)
            return _error_response(
                status.HTTP_429_TOO_MANY_REQUESTS,
                "rate_limit_exceeded",
                "Rate limit exceeded. Please try again later.",
                headers={"Retry-After": str(retry_after)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.limiter.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(self.limiter.remaining(client_ip))
        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject request bodies above a byte limit with 413."""

    def __init__(self, app: Any, max_bytes: int) -> None:
        super().__init__(app)
        self.max_bytes = max_bytes

    def _too_large(self, size: int, request: Request) -> Response:
        logger.warning("request_too_large", size=size, limit=self.max_bytes, path=request.url.path)
        return _error_response(
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            "request_too_large",
            "Request too large",
        )

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        content_length = request.headers.get("Content-Length")
        if content_length is not None:
            try:
                size = int(content_length)
            except ValueError:
                return _error_response(
                    status.HTTP_400_BAD_REQUEST, "bad_request", "Invalid Content-Length header"
                )
            if size > self.max_bytes:
                return self._too_large(size, request)
        elif request.method in ("POST", "PUT", "PATCH"):
            # Chunked uploads carry no length up front
            body = await request.body()
            if len(body) > self.max_bytes:
                return self._too_large(len(body), request)

        return await call_next(request)
