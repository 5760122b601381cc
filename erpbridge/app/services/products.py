"""Product catalogue reads and normalization."""

from typing import Any, Dict, List, Optional

from erpbridge.app.odoo.client import OdooClient

PRODUCT_MODEL = "product.template"
PRODUCT_FIELDS = [
    "id",
    "name",
    "default_code",
    "list_price",
    "standard_price",
    "type",
    "categ_id",
    "qty_available",
    "description_sale",
]


def _blank_to_none(value: Any) -> Any:
    # Odoo serializes empty char/text/many2one fields as False.
    if value is False or value == "":
        return None
    return value


def _to_float(value: Any, digits: Optional[int] = None) -> float:
    if value is None or value is False:
        return 0.0
    number = float(value)
    return round(number, digits) if digits is not None else number


def normalize_product(record: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a product.template record into the public product shape."""
    category = record.get("categ_id")
    if isinstance(category, (list, tuple)) and len(category) >= 2:
        category_id, category_name = category[0], category[1]
    else:
        category_id, category_name = None, None

    return {
        "id": record.get("id"),
        "name": record.get("name"),
        "default_code": _blank_to_none(record.get("default_code")),
        "type": _blank_to_none(record.get("type")),
        "price": _to_float(record.get("list_price"), 2),
        "cost": _to_float(record.get("standard_price"), 2),
        "category": category_name,
        "category_id": category_id,
        "stock_quantity": _to_float(record.get("qty_available")),
        "description": _blank_to_none(record.get("description_sale")),
    }


def build_product_domain(
    search: Optional[str] = None, category: Optional[str] = None
) -> List[Any]:
    domain: List[Any] = []
    if search:
        domain.append(["name", "ilike", search])
    if category:
        category = category.strip()
        # str.isdigit() also accepts characters such as "²" that int() rejects.
        if category.isascii() and category.isdigit():
            domain.append(["categ_id", "child_of", int(category)])
        elif category:
            domain.append(["categ_id.name", "ilike", category])
    return domain


class ProductService:
    """Read products from the catalogue."""

    def __init__(self, client: OdooClient):
        self.client = client

    async def list_products(
        self,
        limit: int = 10,
        offset: int = 0,
        search: Optional[str] = None,
        category: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        records = await self.client.search_read(
            PRODUCT_MODEL,
            build_product_domain(search, category),
            PRODUCT_FIELDS,
            limit=limit,
            offset=offset,
        )
        return [normalize_product(record) for record in records[:limit]]
