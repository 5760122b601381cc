import json
import re
from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_cors_origins(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, list):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []
    if raw == "*":
        return ["*"]

    # Prefer JSON, but accept comma/space separated values as well.
    if raw.startswith(("[", '"')):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]
        if isinstance(parsed, str):
            raw = parsed.strip()
            if raw == "*":
                return ["*"]

    origins: list[str] = []
    for part in re.split(r"[,\s]+", raw):
        if not part:
            continue
        if part == "*":
            return ["*"]
        if "://" in part:
            candidates = [part]
        else:
            # Browsers send the scheme in Origin, so accept both for bare hosts.
            candidates = [f"http://{part}", f"https://{part}"]
        for origin in candidates:
            if origin not in origins:
                origins.append(origin)
    return origins


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - exposes exception messages in 500 responses
    debug: bool = False

    # Odoo backend connection. Validated when the client is first built.
    odoo_url: str = ""
    odoo_db: str = ""
    odoo_username: str = ""
    odoo_password: str = ""
    odoo_timeout: float = 30.0  # Per-request timeout against the backend

    # HTTP client connection pool settings
    httpx_connect_timeout: float = 10.0
    httpx_read_timeout: float = 30.0
    httpx_write_timeout: float = 10.0
    httpx_pool_timeout: float = 5.0
    httpx_keepalive_expiry: float = 30.0
    httpx_max_connections: int = 50
    httpx_max_keepalive_connections: int = 10

    # Rate limiting settings (fixed window, per client IP and path)
    rate_limit_max_requests: int = 100
    rate_limit_window_ms: int = 60000

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # CORS settings
    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def decode_cors_origins(cls, v: Any) -> list[str]:
        return _parse_cors_origins(v)

    @field_validator("odoo_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @field_validator("rate_limit_max_requests")
    @classmethod
    def validate_rate_limit_positive(cls, v: int) -> int:
        """Validate rate limit values are positive."""
        if v < 1:
            raise ValueError("Rate limit values must be at least 1")
        return v

    @field_validator("rate_limit_window_ms")
    @classmethod
    def validate_rate_limit_window(cls, v: int) -> int:
        # Retry-After is whole seconds, so a window must last at least one.
        if v < 1000:
            raise ValueError("RATE_LIMIT_WINDOW_MS must be at least 1000")
        return v

    @field_validator(
        "odoo_timeout",
        "httpx_connect_timeout",
        "httpx_read_timeout",
        "httpx_write_timeout",
        "httpx_pool_timeout",
    )
    @classmethod
    def validate_timeout_positive(cls, v: float) -> float:
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError("Timeout values must be positive")
        return v

    @property
    def rate_limit_window_seconds(self) -> float:
        return self.rate_limit_window_ms / 1000.0

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class AuthSecrets(BaseSettings):
    """Inbound API credentials.

    Instantiated per request by the auth dependency so rotated values in
    the environment are picked up without a restart.
    """

    api_bearer_token: str | None = None
    api_key: str | None = None

    @field_validator("api_bearer_token", "api_key")
    @classmethod
    def normalize_secret(cls, v: str | None) -> str | None:
        # Trailing newlines from secret stores are common.
        if v is None:
            return None
        v = v.strip()
        return v or None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
