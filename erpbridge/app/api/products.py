"""Product API endpoints."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from erpbridge.app.middleware.auth import require_client
from erpbridge.app.odoo.client import OdooClient, get_odoo_client
from erpbridge.app.services.products import ProductService

MAX_PAGE_SIZE = 100

router = APIRouter(tags=["products"], dependencies=[Depends(require_client)])


def get_product_service(client: OdooClient = Depends(get_odoo_client)) -> ProductService:
    return ProductService(client)


@router.get("/products")
async def list_products(
    limit: int = Query(10, ge=1, description="Maximum number of products (capped at 100)"),
    offset: int = Query(0, ge=0),
    search: Optional[str] = Query(None, description="Search term for product name"),
    category: Optional[str] = Query(None, description="Category ID or name"),
    service: ProductService = Depends(get_product_service),
) -> Dict[str, Any]:
    """List products with price, category and stock quantity."""
    limit = min(limit, MAX_PAGE_SIZE)
    products = await service.list_products(
        limit=limit, offset=offset, search=search, category=category
    )
    return {
        "success": True,
        "data": products,
        "count": len(products),
        "limit": limit,
        "offset": offset,
    }
