import hmac
from typing import Optional

from fastapi import Request

from erpbridge.app.core.config import AuthSecrets
from erpbridge.app.core.logging import get_logger
from erpbridge.app.exceptions import AuthenticationError

logger = get_logger(__name__)

API_KEY_HEADER = "X-API-Key"


def get_auth_secrets() -> AuthSecrets:
    """Load the configured inbound secrets.

    Read on every request so rotated secrets apply without a restart.
    """
    return AuthSecrets()


def get_bearer_token(request: Request) -> str | None:
    """Extract Bearer token from Authorization header.

    Args:
        request: The incoming request

    Returns:
        The token string if present, None otherwise
    """
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return auth[len("Bearer "):]


def _matches(presented: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison; an unset secret never matches."""
    if not expected:
        return False
    # Always compare, even without a presented value, to keep timing uniform.
    matched = hmac.compare_digest(
        (presented or "").encode("utf-8"), expected.encode("utf-8")
    )
    return matched and bool(presented)


def require_client(request: Request) -> str:
    """Validate the caller's bearer token or API key.

    Args:
        request: The incoming request

    Returns:
        The kind of credential that was accepted ("bearer" or "api_key")

    Raises:
        AuthenticationError: 401 if neither credential matches
    """
    secrets = get_auth_secrets()

    if _matches(get_bearer_token(request), secrets.api_bearer_token):
        request.state.credential = "bearer"
        return "bearer"

    if _matches(request.headers.get(API_KEY_HEADER), secrets.api_key):
        request.state.credential = "api_key"
        return "api_key"

    logger.warning(
        "Rejected unauthenticated request",
        extra={"path": request.url.path, "method": request.method},
    )
    raise AuthenticationError()
