"""Sale order API endpoints."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Path, Query
from fastapi.responses import JSONResponse

from erpbridge.app.api.products import MAX_PAGE_SIZE
from erpbridge.app.middleware.auth import require_client
from erpbridge.app.odoo.client import OdooClient, get_odoo_client
from erpbridge.app.services.orders import OrderService

router = APIRouter(tags=["orders"], dependencies=[Depends(require_client)])


def get_order_service(client: OdooClient = Depends(get_odoo_client)) -> OrderService:
    return OrderService(client)


@router.get("/orders")
async def list_orders(
    limit: int = Query(10, ge=1),
    offset: int = Query(0, ge=0),
    state: Optional[str] = Query(None, description="Filter by order state, e.g. draft"),
    service: OrderService = Depends(get_order_service),
) -> Dict[str, Any]:
    limit = min(limit, MAX_PAGE_SIZE)
    orders = await service.list_orders(limit=limit, offset=offset, state=state)
    return {
        "success": True,
        "data": orders,
        "count": len(orders),
        "limit": limit,
        "offset": offset,
    }


@router.post("/orders", status_code=201, response_model=None)
async def create_order(
    payload: Any = Body(
        ...,
        examples=[{"partner_id": 7, "order_lines": [{"product_id": 3, "quantity": 2}]}],
    ),
    service: OrderService = Depends(get_order_service),
) -> JSONResponse:
    """Create a draft sale order with its lines.

    The order is deleted again if any of its lines is invalid.
    """
    order = await service.create_order(payload)
    return JSONResponse(
        status_code=201,
        content={
            "success": True,
            "data": order,
            "message": "Order created successfully",
        },
    )


@router.post("/orders/{order_id}/confirm")
async def confirm_order(
    order_id: int = Path(..., ge=1),
    service: OrderService = Depends(get_order_service),
) -> Dict[str, Any]:
    """Confirm a draft order (state becomes "sale")."""
    order = await service.confirm_order(order_id)
    return {
        "success": True,
        "data": order,
        "message": "Order confirmed successfully",
    }
