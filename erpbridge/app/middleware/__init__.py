"""Middleware package for the bridge."""

from erpbridge.app.middleware.auth import require_client
from erpbridge.app.middleware.rate_limit import (
    FixedWindowRateLimiter,
    RateLimitMiddleware,
)
from erpbridge.app.middleware.request_id import RequestIdMiddleware, get_request_id

__all__ = [
    "require_client",
    "FixedWindowRateLimiter",
    "RateLimitMiddleware",
    "RequestIdMiddleware",
    "get_request_id",
]
