"""Rate limiting middleware for the bridge.

Fixed-window counters are kept per client IP and request path in process
memory. Counts are not shared between server instances; running several
workers multiplies the effective limit by the number of workers.
"""

import asyncio
import math
import random
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from erpbridge.app.core.logging import get_logger
from erpbridge.app.exceptions import RateLimitExceededError

logger = get_logger(__name__)

DEFAULT_EXEMPT_PATHS = ("/health", "/docs", "/redoc", "/openapi.json")


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    limit: int
    remaining: int
    reset_time: int
    retry_after: Optional[int] = None

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_time),
        }


@dataclass
class RateLimitRecord:
    """Request count for one key inside the current window."""
    count: int
    reset_at: float


class FixedWindowRateLimiter:
    """In-memory fixed window rate limiter.

    The first request for a key opens a window of window_seconds; up to
    max_requests are allowed until the window's reset deadline, after which
    the next request opens a fresh window. Expired records are swept on a
    random sample of requests instead of by a background timer.
    """

    CLEANUP_PROBABILITY = 0.01

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
        rng: Callable[[], float] = random.random,
    ):
        """Initialize rate limiter.

        Args:
            max_requests: Requests allowed per key per window
            window_seconds: Window length in seconds
            clock: Source of the current time (epoch seconds)
            rng: Source of uniform [0, 1) samples for the cleanup sweep
        """
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be at least 1")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._rng = rng
        self._records: Dict[str, RateLimitRecord] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def get_record(self, key: str) -> Optional[RateLimitRecord]:
        return self._records.get(key)

    async def hit(self, key: str) -> RateLimitResult:
        """Count a request for key and decide whether it is allowed."""
        async with self._lock:
            now = self._clock()

            if self._rng() < self.CLEANUP_PROBABILITY:
                self._sweep(now)

            record = self._records.get(key)
            if record is None or now >= record.reset_at:
                record = RateLimitRecord(count=1, reset_at=now + self.window_seconds)
                self._records[key] = record
            elif record.count < self.max_requests:
                record.count += 1
            else:
                retry_after = max(1, math.ceil(record.reset_at - now))
                return RateLimitResult(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    reset_time=int(math.ceil(record.reset_at)),
                    retry_after=retry_after,
                )

            return RateLimitResult(
                allowed=True,
                limit=self.max_requests,
                remaining=self.max_requests - record.count,
                reset_time=int(math.ceil(record.reset_at)),
            )

    def _sweep(self, now: float) -> int:
        expired = [key for key, record in self._records.items() if record.reset_at <= now]
        for key in expired:
            del self._records[key]
        if expired:
            logger.debug(f"Removed {len(expired)} expired rate limit records")
        return len(expired)

    async def cleanup(self) -> int:
        """Remove every expired record and return how many were dropped."""
        async with self._lock:
            return self._sweep(self._clock())

    def reset(self) -> None:
        """Forget all counters (for testing)."""
        self._records.clear()


def get_client_ip(request: Request) -> str:
    """Best-effort caller address, honouring reverse proxy headers."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce per-client, per-path rate limits on requests."""

    def __init__(
        self,
        app,
        limiter: Optional[FixedWindowRateLimiter] = None,
        max_requests: int = 100,
        window_seconds: float = 60.0,
        exempt_paths: Iterable[str] = DEFAULT_EXEMPT_PATHS,
    ):
        super().__init__(app)
        # An empty limiter is falsy (__len__), so test against None.
        if limiter is None:
            limiter = FixedWindowRateLimiter(
                max_requests=max_requests,
                window_seconds=window_seconds,
            )
        self.limiter = limiter
        self.exempt_paths = frozenset(exempt_paths)

    def _get_client_key(self, request: Request) -> str:
        return f"{get_client_ip(request)}:{request.url.path}"

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request with rate limiting."""
        if request.url.path in self.exempt_paths:
            return await call_next(request)

        key = self._get_client_key(request)
        result = await self.limiter.hit(key)

        if not result.allowed:
            exc = RateLimitExceededError(
                retry_after=result.retry_after or 1,
                limit=result.limit,
                reset_time=result.reset_time,
            )
            logger.warning(
                f"Rate limit exceeded for {key}",
                extra={
                    "client_ip": get_client_ip(request),
                    "path": request.url.path,
                    "method": request.method,
                },
            )
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response(),
                headers=exc.headers,
            )

        response = await call_next(request)
        for name, value in result.headers.items():
            response.headers[name] = value
        return response
