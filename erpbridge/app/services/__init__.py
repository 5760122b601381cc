"""Services package for the bridge.

This package provides:
- Sale order listing, creation (with rollback) and confirmation
- Product listing with normalized catalogue fields
"""

from erpbridge.app.services.orders import OrderService
from erpbridge.app.services.products import ProductService, normalize_product

__all__ = [
    "OrderService",
    "ProductService",
    "normalize_product",
]
