import logging
from typing import List, Sequence, Tuple

from catalog import ProductLedger
from errors import StoreError
from schemas import LineItem

logger = logging.getLogger(__name__)


class InventoryAdjuster:
    """Takes stock for priced line items, one atomic update per product"""

    def __init__(self, ledger: ProductLedger):
        self.ledger = ledger

    def apply(self, items: Sequence[LineItem]) -> List[Tuple[str, int]]:
        """
        Decrement inventory for each item in order.

        Returns the (product_id, quantity) pairs that were taken from
        tracked products. Decrements are not atomic across products: when a
        later item fails, earlier ones stay applied and are reported in the
        error log before the failure propagates.
        """
        applied: List[Tuple[str, int]] = []
        for item in items:
            try:
                remaining = self.ledger.decrement_inventory(item.product_id, item.quantity)
            except StoreError as e:
                if applied:
                    logger.error(
                        "Inventory partially adjusted before %s failed (%s); applied: %s",
                        item.product_id, e.code, applied,
                    )
                raise
            if remaining is not None:
                applied.append((item.product_id, item.quantity))
                logger.info(
                    "Inventory for %s reduced by %d to %d",
                    item.product_id, item.quantity, remaining,
                )
        return applied
