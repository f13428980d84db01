"""
Database Schemas for the storefront

Each Pydantic model describes a document in a MongoDB collection:
- Product -> "products"
- Order   -> "orders" (embeds LineItem, PaymentDetails, Address)
"""
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime

class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PACKED = "packed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

class PaymentMethod(str, Enum):
    ONLINE = "online"
    COD = "cod"

class PaymentStatus(str, Enum):
    PAID = "paid"
    AWAITING_COLLECTION = "awaiting_collection"

class Address(BaseModel):
    full_name: str = Field(..., min_length=1)
    line1: str = Field(..., min_length=1)
    line2: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: str
    postal_code: str = Field(..., min_length=1)
    country: str
    phone: Optional[str] = None

class Product(BaseModel):
    name: str
    description: Optional[str] = None
    price: int = Field(..., ge=0)
    category: Optional[str] = None
    image_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    is_active: bool = True
    inventory: Optional[int] = Field(None, ge=0)  # None = untracked
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class LineItem(BaseModel):
    """Priced snapshot of a cart entry, copied from the product at checkout"""
    model_config = ConfigDict(frozen=True)

    product_id: str
    name: str
    price: int
    quantity: int = Field(..., ge=1)
    customization: Optional[str] = None

    @property
    def subtotal(self) -> int:
        return self.price * self.quantity

class PaymentDetails(BaseModel):
    gateway_order_id: str
    gateway_payment_id: str
    signature: str
    verified: bool = True
    verified_at: datetime

class Order(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    user_id: str
    items: List[LineItem]
    total: int
    currency: str = "INR"
    status: OrderStatus = OrderStatus.PENDING
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    payment: Optional[PaymentDetails] = None
    shipping_address: Optional[Address] = None
    created_at: datetime
    updated_at: datetime
