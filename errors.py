"""Error taxonomy for the storefront API.

Every error carries a stable machine-readable ``code`` and the HTTP status
it is rendered with. Messages are safe to show to the caller.
"""
from typing import Optional


class StoreError(Exception):
    """Base exception for all storefront errors."""

    code = "internal_error"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(StoreError):
    code = "unauthorized"
    status_code = 401
    default_message = "User not authenticated"


class Forbidden(StoreError):
    code = "forbidden"
    status_code = 403
    default_message = "Forbidden"


class InvalidPayload(StoreError):
    code = "invalid_payload"
    status_code = 400
    default_message = "Invalid payload"


class ProductNotFound(StoreError):
    """Raised when a product id does not resolve."""

    code = "product_not_found"
    status_code = 404

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found")


class ProductInactive(StoreError):
    code = "product_inactive"
    status_code = 400

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} is inactive")


class InvalidQuantity(StoreError):
    code = "invalid_quantity"
    status_code = 400

    def __init__(self, product_id: str, quantity):
        self.product_id = product_id
        self.quantity = quantity
        super().__init__(f"Invalid quantity for product {product_id}")


class InsufficientInventory(StoreError):
    """Raised when a tracked product cannot cover the requested quantity."""

    code = "insufficient_inventory"
    status_code = 409

    def __init__(self, product_id: str, name: Optional[str] = None):
        self.product_id = product_id
        super().__init__(f"Insufficient inventory for {name or product_id}")


class PaymentSignatureInvalid(StoreError):
    code = "payment_signature_invalid"
    status_code = 400
    default_message = "Payment signature verification failed"


class TotalMismatch(StoreError):
    """Raised when the client-declared total disagrees with the priced cart."""

    code = "total_mismatch"
    status_code = 400

    def __init__(self, calculated: int, provided):
        self.calculated = calculated
        self.provided = provided
        super().__init__(
            f"Calculated total ({calculated}) doesn't match provided total ({provided})"
        )


class OrderNotFound(StoreError):
    code = "order_not_found"
    status_code = 404

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class UpstreamGatewayFailure(StoreError):
    code = "upstream_gateway_failure"
    status_code = 502
    default_message = "Failed to create payment order"


class PaymentNotConfigured(StoreError):
    code = "payment_not_configured"
    status_code = 503
    default_message = "Payment gateway keys are not configured on the server"


class InternalError(StoreError):
    pass
