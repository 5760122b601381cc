"""Shared HTTP client management for connection pooling.

The client is created in the application lifespan and reused by the Odoo
session client for every backend request.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx

from erpbridge.app.core.config import settings


_shared_http_client: httpx.AsyncClient | None = None


def get_http_client() -> httpx.AsyncClient:
    """Get the shared HTTP client instance.

    Raises:
        RuntimeError: If the HTTP client has not been initialized.
    """
    if _shared_http_client is None:
        raise RuntimeError(
            "HTTP client not initialized. Ensure lifespan context is active."
        )
    return _shared_http_client


def build_timeout(**overrides: float) -> httpx.Timeout:
    return httpx.Timeout(
        connect=overrides.get("connect_timeout", settings.httpx_connect_timeout),
        read=overrides.get("read_timeout", settings.httpx_read_timeout),
        write=overrides.get("write_timeout", settings.httpx_write_timeout),
        pool=overrides.get("pool_timeout", settings.httpx_pool_timeout),
    )


@asynccontextmanager
async def init_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Initialize and yield the shared HTTP client.

    Used from the FastAPI lifespan:

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            async with init_http_client():
                yield
    """
    global _shared_http_client

    limits = httpx.Limits(
        max_connections=settings.httpx_max_connections,
        max_keepalive_connections=settings.httpx_max_keepalive_connections,
        keepalive_expiry=settings.httpx_keepalive_expiry,
    )
    _shared_http_client = httpx.AsyncClient(timeout=build_timeout(), limits=limits)

    try:
        yield _shared_http_client
    finally:
        if _shared_http_client is not None:
            await _shared_http_client.aclose()
            _shared_http_client = None
