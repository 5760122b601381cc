"""Core utilities for the bridge application."""

from erpbridge.app.core.config import settings
from erpbridge.app.core.http_client import get_http_client, init_http_client
from erpbridge.app.core.logging import get_logger, setup_logging

__all__ = [
    "settings",
    "get_http_client",
    "init_http_client",
    "get_logger",
    "setup_logging",
]
