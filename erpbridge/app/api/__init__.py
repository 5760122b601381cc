"""API endpoints package for the bridge."""

from erpbridge.app.api.orders import router as orders_router
from erpbridge.app.api.products import router as products_router

__all__ = [
    "orders_router",
    "products_router",
]
