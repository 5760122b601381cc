"""Custom exceptions for the bridge application."""

from typing import Any


class BridgeError(Exception):
    """Base class for bridge exceptions with HTTP status code.

    All custom exceptions inherit from this class and define their
    status_code and short error label so the exception handlers in
    main.py can render a consistent JSON envelope.
    """
    status_code: int = 500
    error: str = "Internal server error"

    def __init__(self, message: str = "Bridge error", error: str | None = None):
        self.message = message
        if error is not None:
            self.error = error
        super().__init__(message)

    def to_response(self) -> dict[str, Any]:
        return {"success": False, "error": self.error, "message": self.message}


class ValidationError(BridgeError):
    """Raised when request input is malformed.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400
    error = "Invalid request"


class AuthenticationError(BridgeError):
    """Raised when neither a valid bearer token nor API key is supplied.

    Maps to HTTP 401 Unauthorized.
    """
    status_code = 401
    error = "Unauthorized"

    def __init__(self, message: str = "Valid Bearer token or X-API-Key required"):
        super().__init__(message)


class NotFoundError(BridgeError):
    """Raised when a referenced remote record does not exist.

    Maps to HTTP 404 Not Found.
    """
    status_code = 404
    error = "Not found"


class ConflictError(BridgeError):
    """Raised when a record is in a state that forbids the operation.

    Maps to HTTP 400 Bad Request, e.g. confirming a cancelled order.
    """
    status_code = 400
    error = "Conflict"


class RateLimitExceededError(BridgeError):
    """Raised when a client exceeds its request window.

    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429
    error = "Too Many Requests"

    def __init__(self, retry_after: int, limit: int, reset_time: int):
        self.retry_after = retry_after
        self.limit = limit
        self.reset_time = reset_time
        super().__init__(
            f"Rate limit exceeded. Try again in {retry_after} seconds."
        )

    def to_response(self) -> dict[str, Any]:
        response = super().to_response()
        response["retryAfter"] = self.retry_after
        return response

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Retry-After": str(self.retry_after),
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(self.reset_time),
        }


class ConfigurationError(BridgeError):
    """Raised when required backend settings are missing."""
    status_code = 500
    error = "Configuration error"


class UpstreamError(BridgeError):
    """Raised when the Odoo backend returns an error or is unreachable.

    The backend message is preserved for operator diagnosis.
    Maps to HTTP 500 Internal Server Error.
    """
    status_code = 500
    error = "Upstream error"


class UpstreamTimeoutError(UpstreamError):
    """Raised when a backend request exceeds the configured timeout.

    Maps to HTTP 504 Gateway Timeout.
    """
    status_code = 504
    error = "Upstream timeout"


class OdooAuthenticationError(UpstreamError):
    """Raised when the bridge cannot open a session on the backend."""
    error = "Upstream authentication failed"


class SessionExpiredError(UpstreamError):
    """Raised internally when the backend reports an expired session.

    The session client catches it and re-authenticates once; callers only
    see it converted into a plain UpstreamError.
    """
