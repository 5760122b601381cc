from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from erpbridge.app.api.orders import router as orders_router
from erpbridge.app.api.products import router as products_router
from erpbridge.app.core.config import settings
from erpbridge.app.core.http_client import init_http_client
from erpbridge.app.core.logging import get_logger, setup_logging
from erpbridge.app.exceptions import BridgeError, ConfigurationError
from erpbridge.app.middleware.rate_limit import FixedWindowRateLimiter, RateLimitMiddleware
from erpbridge.app.middleware.request_id import RequestIdMiddleware, get_request_id
from erpbridge.app.odoo.client import get_odoo_client


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "Invalid request"


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    setup_logging()
    logger = get_logger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[dict, None]:
        """Open the shared HTTP connection pool for the app's lifetime."""
        async with init_http_client() as http_client:
            logger.info(
                "Application startup complete",
                extra={
                    "odoo_url": settings.odoo_url or None,
                    "rate_limit_max_requests": settings.rate_limit_max_requests,
                    "rate_limit_window_ms": settings.rate_limit_window_ms,
                },
            )
            yield {"http_client": http_client}

        logger.info("Application shutdown complete")

    app = FastAPI(
        title="ERP REST Bridge",
        description="REST API for Odoo products and sale orders with API key auth and rate limiting",
        version="1.0.0",
        lifespan=lifespan,
    )

    rate_limiter = FixedWindowRateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.state.rate_limiter = rate_limiter

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_origins != ["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
        ],
        max_age=600,
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RateLimitMiddleware, limiter=rate_limiter)
    # Outermost, so rate limited responses also carry a request ID.
    app.add_middleware(RequestIdMiddleware)

    app.include_router(products_router)
    app.include_router(orders_router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Liveness check with the state of the Odoo client."""
        try:
            client = get_odoo_client()
        except ConfigurationError as e:
            return {
                "status": "degraded",
                "components": {"odoo": {"status": "error", "error": e.message}},
            }
        return {
            "status": "ok",
            "components": {
                "odoo": {
                    "status": "ok",
                    "url": client.config.url,
                    "database": client.config.db,
                    "authenticated": client.is_authenticated,
                }
            },
        }

    @app.exception_handler(BridgeError)
    async def bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
        """Render domain errors as the standard JSON envelope."""
        if exc.status_code >= 500:
            logger.error(
                f"{type(exc).__name__}: {exc.message}",
                extra={"request_id": get_request_id(request), "path": request.url.path},
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle malformed path, query or body input as HTTP 400."""
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Invalid request",
                "message": _format_validation_errors(exc),
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        The traceback is logged server-side and never returned; the
        exception message is only included in debug mode.
        """
        request_id = get_request_id(request)
        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
            },
        )
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Internal server error",
                "message": str(exc) if settings.debug else "Internal server error",
                "request_id": request_id,
            },
        )

    return app


# Create the application instance
app = create_app()
