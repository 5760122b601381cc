"""Odoo backend access."""

from erpbridge.app.odoo.client import (
    OdooClient,
    OdooConfig,
    OdooSession,
    get_odoo_client,
    reset_odoo_client,
)

__all__ = [
    "OdooClient",
    "OdooConfig",
    "OdooSession",
    "get_odoo_client",
    "reset_odoo_client",
]
