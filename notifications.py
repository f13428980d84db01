import logging
from typing import Optional

import httpx

from config import Settings

logger = logging.getLogger(__name__)


def render_order_confirmation(order: dict) -> str:
    lines = [f"Thank you for your order #{order['id']}.", ""]
    for item in order["items"]:
        lines.append(f"  {item['name']} x {item['quantity']}  {item['price'] * item['quantity']} {order['currency']}")
    lines.append("")
    lines.append(f"Total: {order['total']} {order['currency']}")
    if order.get("payment_method") == "cod":
        lines.append("Payment will be collected on delivery.")
    return "\n".join(lines)


class OrderMailer:
    """Sends order emails through an HTTP mail API. Never raises."""

    def __init__(self, settings: Settings, client: Optional[httpx.Client] = None):
        self.api_url = settings.mail_api_url
        self.api_key = settings.mail_api_key
        self.sender = settings.mail_from
        self.client = client or httpx.Client(timeout=settings.mail_timeout)

    def order_placed(self, order: dict, recipient: Optional[str]) -> bool:
        if not (self.api_url and self.api_key):
            logger.debug("Mail API not configured, skipping confirmation for %s", order["id"])
            return False
        if not recipient:
            return False
        try:
            response = self.client.post(
                self.api_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "from": self.sender,
                    "to": [recipient],
                    "subject": f"Order confirmation #{order['id']}",
                    "text": render_order_confirmation(order),
                },
            )
            response.raise_for_status()
        except Exception:
            logger.exception("Order confirmation send failed for order %s", order["id"])
            return False
        logger.info("Order confirmation sent for order %s", order["id"])
        return True
