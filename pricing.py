"""
Cart pricing and availability.

The cart a client submits is untrusted: only product ids, quantities and
customization text are read from it. Names and prices always come from the
product documents, so the total computed here is the only total the rest
of the checkout ever uses.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from catalog import ProductLedger, is_tracked
from errors import (
    InsufficientInventory,
    InvalidPayload,
    InvalidQuantity,
    ProductInactive,
    ProductNotFound,
)
from schemas import LineItem

logger = logging.getLogger(__name__)

# largest quantity accepted on one cart line
MAX_QUANTITY = 10_000


@dataclass(frozen=True)
class CartLine:
    product_id: str
    quantity: Any
    customization: Optional[str] = None


@dataclass(frozen=True)
class PricedCart:
    items: List[LineItem]
    total: int


def parse_quantity(value: Any) -> Optional[int]:
    """Integer quantity in 1..MAX_QUANTITY, or None if `value` is not one"""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        qty = value
    elif isinstance(value, float) and value.is_integer():
        qty = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        qty = int(value.strip())
    else:
        return None
    return qty if 0 < qty <= MAX_QUANTITY else None


def price_cart(ledger: ProductLedger, lines: Sequence[CartLine]) -> PricedCart:
    if not lines:
        raise InvalidPayload("Cart is empty")

    products = ledger.get_many(line.product_id for line in lines)
    items: List[LineItem] = []
    requested: Dict[str, int] = defaultdict(int)
    total = 0

    for line in lines:
        product = products.get(line.product_id)
        if product is None:
            raise ProductNotFound(line.product_id)
        if not product.get("is_active", False):
            raise ProductInactive(line.product_id)

        quantity = parse_quantity(line.quantity)
        if quantity is None:
            raise InvalidQuantity(line.product_id, line.quantity)

        # same product on several lines draws from one stock count
        requested[line.product_id] += quantity
        if is_tracked(product) and product["inventory"] < requested[line.product_id]:
            raise InsufficientInventory(line.product_id, product.get("name"))

        item = LineItem(
            product_id=product["id"],
            name=product["name"],
            price=product["price"],
            quantity=quantity,
            customization=line.customization or None,
        )
        items.append(item)
        total += item.subtotal

    logger.debug("Priced cart: %d items, total %d", len(items), total)
    return PricedCart(items=items, total=total)
