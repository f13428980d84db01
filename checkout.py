"""
Checkout orchestration.

Online payment runs in two calls. `create_payment` prices the cart and
opens a gateway order for the trusted total; nothing is stored. After the
client pays, `verify_payment` checks the gateway signature, prices the cart
again, confirms the gateway order was opened for that total, takes inventory
and writes the order. Cash on delivery is a single call, `place_cod_order`.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence, Tuple

from pymongo.errors import DuplicateKeyError

from auth import Identity
from catalog import ProductLedger
from errors import Forbidden, InvalidPayload, PaymentSignatureInvalid, TotalMismatch, Unauthorized
from inventory import InventoryAdjuster
from orders import OrderWriter
from payments import MINOR_UNITS_PER_UNIT, PaymentGateway
from pricing import CartLine, PricedCart, price_cart
from schemas import Address, Order, OrderStatus, PaymentDetails, PaymentMethod, PaymentStatus

logger = logging.getLogger(__name__)

# allowed drift between a client-declared total and the priced total
TOTAL_TOLERANCE = 1


@dataclass(frozen=True)
class PaymentClaim:
    gateway_order_id: str
    gateway_payment_id: str
    signature: str


class CheckoutService:
    def __init__(self, ledger: ProductLedger, orders: OrderWriter, gateway: PaymentGateway,
                 currency: str = "INR"):
        self.ledger = ledger
        self.orders = orders
        self.gateway = gateway
        self.inventory = InventoryAdjuster(ledger)
        self.currency = currency

    def price(self, items: Sequence[CartLine], declared_total: Any = None) -> PricedCart:
        priced = price_cart(self.ledger, items)
        if declared_total is not None:
            if isinstance(declared_total, bool) or not isinstance(declared_total, (int, float)):
                raise InvalidPayload("Invalid total amount")
            if abs(priced.total - declared_total) > TOTAL_TOLERANCE:
                raise TotalMismatch(priced.total, declared_total)
        return priced

    def create_payment(self, identity: Optional[Identity], items: Sequence[CartLine],
                       declared_total: Any = None) -> Dict[str, Any]:
        if identity is None:
            raise Unauthorized()
        self.gateway.require_keys()

        priced = self.price(items, declared_total)
        logger.info("Creating payment for user %s: %d items, total %d", identity.uid, len(priced.items), priced.total)

        gateway_order = self.gateway.create_order(
            amount=priced.total * MINOR_UNITS_PER_UNIT,
            receipt=f"order_{int(time.time() * 1000)}_{identity.uid[:8]}",
            notes={"userId": identity.uid, "itemCount": len(priced.items)},
        )
        logger.info("Gateway order %s created for %d minor units", gateway_order.id, gateway_order.amount)
        return {
            "order_id": gateway_order.id,
            "amount": gateway_order.amount,
            "currency": gateway_order.currency,
            "key": self.gateway.key_id,
        }

    def verify_payment(self, identity: Optional[Identity], claim: PaymentClaim, items: Sequence[CartLine],
                       declared_total: Any = None,
                       shipping_address: Optional[Address] = None) -> Tuple[dict, bool]:
        """
        Complete an online checkout. Returns the order and whether this call
        created it; a replayed completion returns the buyer's existing order.
        """
        if identity is None:
            raise Unauthorized()
        if not (claim.gateway_order_id and claim.gateway_payment_id and claim.signature):
            raise InvalidPayload("Missing payment verification details")

        if not self.gateway.verify(claim.gateway_order_id, claim.gateway_payment_id, claim.signature):
            logger.warning("Signature verification failed for gateway order %s", claim.gateway_order_id)
            raise PaymentSignatureInvalid()

        existing = self.orders.find_by_payment_id(claim.gateway_payment_id)
        if existing is not None:
            logger.warning("Payment %s already recorded as order %s", claim.gateway_payment_id, existing["id"])
            return self._owned_by(existing, identity), False

        # prices may have moved since create_payment
        priced = self.price(items, declared_total)
        gateway_order = self.gateway.fetch_order(claim.gateway_order_id)
        if gateway_order.amount != priced.total * MINOR_UNITS_PER_UNIT:
            logger.warning(
                "Gateway order %s charged %d minor units, cart prices to %d",
                gateway_order.id, gateway_order.amount, priced.total,
            )
            raise TotalMismatch(priced.total, gateway_order.amount / MINOR_UNITS_PER_UNIT)

        self.inventory.apply(priced.items)

        now = datetime.now(timezone.utc)
        order = Order(
            user_id=identity.uid,
            items=priced.items,
            total=priced.total,
            currency=self.currency,
            status=OrderStatus.PENDING,
            payment_method=PaymentMethod.ONLINE,
            payment_status=PaymentStatus.PAID,
            payment=PaymentDetails(
                gateway_order_id=claim.gateway_order_id,
                gateway_payment_id=claim.gateway_payment_id,
                signature=claim.signature,
                verified=True,
                verified_at=now,
            ),
            shipping_address=shipping_address,
            created_at=now,
            updated_at=now,
        )
        try:
            return self.orders.create(order), True
        except DuplicateKeyError:
            # a concurrent completion of the same payment won the insert
            logger.error(
                "Payment %s recorded concurrently; inventory for this attempt was already taken: %s",
                claim.gateway_payment_id, [(i.product_id, i.quantity) for i in priced.items],
            )
            return self._owned_by(self.orders.find_by_payment_id(claim.gateway_payment_id), identity), False

    @staticmethod
    def _owned_by(order: dict, identity: Identity) -> dict:
        if order["user_id"] != identity.uid:
            logger.warning("User %s replayed payment of order %s", identity.uid, order["id"])
            raise Forbidden()
        return order

    def place_cod_order(self, identity: Optional[Identity], items: Sequence[CartLine],
                        shipping_address: Optional[Address]) -> dict:
        if identity is None:
            raise Unauthorized()
        if not shipping_address:
            raise InvalidPayload("Shipping address is required for cash on delivery")

        priced = self.price(items)
        self.inventory.apply(priced.items)

        now = datetime.now(timezone.utc)
        order = Order(
            user_id=identity.uid,
            items=priced.items,
            total=priced.total,
            currency=self.currency,
            status=OrderStatus.PENDING,
            payment_method=PaymentMethod.COD,
            payment_status=PaymentStatus.AWAITING_COLLECTION,
            shipping_address=shipping_address,
            created_at=now,
            updated_at=now,
        )
        return self.orders.create(order)
