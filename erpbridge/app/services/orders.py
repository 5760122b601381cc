"""Sale order operations on top of the Odoo client.

Input and state checks run before any remote write. Line validation happens
while lines are being created, so a bad line rolls back the order that was
already created for it.
"""

from numbers import Real
from typing import Any, Dict, List, Optional

from erpbridge.app.core.logging import get_logger
from erpbridge.app.exceptions import (
    BridgeError,
    ConflictError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from erpbridge.app.odoo.client import OdooClient

logger = get_logger(__name__)

ORDER_MODEL = "sale.order"
ORDER_LINE_MODEL = "sale.order.line"
ORDER_FIELDS = ["id", "name", "partner_id", "date_order", "amount_total", "state"]

# Order states that cannot be confirmed: (error label, message template).
UNCONFIRMABLE_STATES = {
    "sale": ("Order already confirmed", "Order {name} is already confirmed"),
    "cancel": ("Order is cancelled", "Cannot confirm cancelled order {name}"),
    "done": ("Order is locked", "Cannot confirm locked order {name}"),
}


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _is_positive_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and value > 0


def build_line_values(order_id: int, line: Any) -> Dict[str, Any]:
    """Map an inbound order line onto sale.order.line values.

    Raises:
        ValidationError: If product_id or quantity is missing or invalid
    """
    if not isinstance(line, dict):
        raise ValidationError(
            "Each order line must be an object with product_id and quantity",
            error="Invalid order line",
        )
    if not _is_positive_int(line.get("product_id")) or not _is_positive_number(
        line.get("quantity")
    ):
        raise ValidationError(
            "Each order line must have product_id and quantity",
            error="Invalid order line",
        )

    values: Dict[str, Any] = {
        "order_id": order_id,
        "product_id": line["product_id"],
        "product_uom_qty": line["quantity"],
    }
    price_unit = line.get("price_unit")
    if price_unit is not None:
        if not isinstance(price_unit, Real) or isinstance(price_unit, bool) or price_unit < 0:
            raise ValidationError(
                "price_unit must be a non-negative number",
                error="Invalid order line",
            )
        values["price_unit"] = price_unit
    return values


class OrderService:
    """List, create and confirm sale orders."""

    def __init__(self, client: OdooClient):
        self.client = client

    async def list_orders(
        self,
        limit: int = 10,
        offset: int = 0,
        state: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        domain: List[Any] = []
        if state:
            domain.append(["state", "=", state])
        return await self.client.search_read(
            ORDER_MODEL,
            domain,
            ORDER_FIELDS,
            limit=limit,
            offset=offset,
            order="date_order desc, id desc",
        )

    async def get_order(self, order_id: int) -> Dict[str, Any]:
        orders = await self.client.read(ORDER_MODEL, [order_id], ORDER_FIELDS)
        if not orders:
            raise NotFoundError(
                f"Order with ID {order_id} does not exist", error="Order not found"
            )
        return orders[0]

    async def create_order(self, payload: Any) -> Dict[str, Any]:
        """Create a draft order and its lines.

        Args:
            payload: Decoded request body with partner_id and order_lines

        Returns:
            The created order as read back from the backend

        Raises:
            ValidationError: Malformed body or order line
            UpstreamError: The backend rejected a write
        """
        if (
            not isinstance(payload, dict)
            or not _is_positive_int(payload.get("partner_id"))
            or not isinstance(payload.get("order_lines"), list)
            or not payload["order_lines"]
        ):
            raise ValidationError("partner_id and order_lines array are required")

        order_id = await self.client.create(
            ORDER_MODEL, {"partner_id": payload["partner_id"]}
        )
        logger.info(f"Created sale order {order_id}")

        try:
            for line in payload["order_lines"]:
                await self.client.create(
                    ORDER_LINE_MODEL, build_line_values(order_id, line)
                )
        except BridgeError:
            await self._rollback(order_id)
            raise

        return await self.get_order(order_id)

    async def _rollback(self, order_id: int) -> None:
        """Delete a partially created order, best effort.

        A failed delete is logged and left for an operator; the caller
        still receives the original error.
        """
        try:
            await self.client.unlink(ORDER_MODEL, [order_id])
            logger.info(f"Rolled back sale order {order_id}")
        except UpstreamError as e:
            logger.error(
                f"Failed to roll back sale order {order_id}: {e}",
                extra={"order_id": order_id},
            )

    async def confirm_order(self, order_id: int) -> Dict[str, Any]:
        """Confirm a draft order.

        Raises:
            NotFoundError: The order does not exist
            ConflictError: The order is already confirmed, cancelled or locked
        """
        orders = await self.client.search_read(
            ORDER_MODEL, [["id", "=", order_id]], ["id", "name", "state"], limit=1
        )
        if not orders:
            raise NotFoundError(
                f"Order with ID {order_id} does not exist", error="Order not found"
            )

        order = orders[0]
        state = order.get("state")
        if state in UNCONFIRMABLE_STATES:
            label, template = UNCONFIRMABLE_STATES[state]
            raise ConflictError(template.format(name=order.get("name")), error=label)

        await self.client.call(ORDER_MODEL, "action_confirm", [[order_id]])
        logger.info(f"Confirmed sale order {order_id}")
        return await self.get_order(order_id)
