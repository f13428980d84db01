import hmac
import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from config import Settings
from errors import PaymentNotConfigured, UpstreamGatewayFailure

logger = logging.getLogger(__name__)

# gateway amounts are in the currency's minor unit (paise for INR)
MINOR_UNITS_PER_UNIT = 100


def verify_payment_signature(secret: str, gateway_order_id: str, gateway_payment_id: str,
                             signature: str) -> bool:
    """
    Check that a payment completion was issued by the gateway.

    The gateway signs "{order_id}|{payment_id}" with HMAC-SHA256 under the
    shared key secret and sends the hex digest to the client.
    """
    if not (secret and signature):
        return False
    message = f"{gateway_order_id}|{gateway_payment_id}".encode()
    expected = hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


@dataclass(frozen=True)
class GatewayOrder:
    id: str
    amount: int
    currency: str


class PaymentGateway:
    """Razorpay-compatible REST client"""

    def __init__(self, settings: Settings, client: Optional[httpx.Client] = None):
        self.key_id = settings.razorpay_key_id
        self.key_secret = settings.razorpay_key_secret
        self.currency = settings.currency
        self.client = client or httpx.Client(
            base_url=settings.razorpay_api_url,
            timeout=settings.gateway_timeout,
        )

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    def require_keys(self):
        if not self.configured:
            logger.error("Payment gateway keys not configured")
            raise PaymentNotConfigured()

    def create_order(self, amount: int, receipt: str, notes: Optional[Dict[str, Any]] = None) -> GatewayOrder:
        self.require_keys()
        payload = {
            "amount": amount,
            "currency": self.currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        try:
            response = self.client.post("/orders", json=payload, auth=(self.key_id, self.key_secret))
            response.raise_for_status()
            data = response.json()
            return GatewayOrder(id=data["id"], amount=data["amount"], currency=data["currency"])
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.error("Gateway order creation failed for receipt %s: %s", receipt, e)
            raise UpstreamGatewayFailure() from e

    def fetch_order(self, gateway_order_id: str) -> GatewayOrder:
        """Read back a gateway order; its amount is what the client was charged"""
        self.require_keys()
        try:
            response = self.client.get(f"/orders/{gateway_order_id}", auth=(self.key_id, self.key_secret))
            response.raise_for_status()
            data = response.json()
            return GatewayOrder(id=data["id"], amount=data["amount"], currency=data["currency"])
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.error("Gateway order lookup failed for %s: %s", gateway_order_id, e)
            raise UpstreamGatewayFailure() from e

    def verify(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        self.require_keys()
        return verify_payment_signature(self.key_secret, gateway_order_id, gateway_payment_id, signature)
