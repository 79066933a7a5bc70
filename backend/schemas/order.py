from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Annotated, List, Literal, Optional, Union
from datetime import datetime

from models.order import OrderStatus, PaymentMethod, PaymentStatus, normalize_status


# --- Shipping source: exactly one of these is resolved into the order snapshot ---

class SavedAddressShipping(BaseModel):
    type: Literal["saved"] = "saved"
    address_id: int


class ProfileAddressShipping(BaseModel):
    type: Literal["profile"] = "profile"
    full_name: Optional[str] = None
    phone: Optional[str] = None
    address_line: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    postal_code: Optional[str] = None


class NoShipping(BaseModel):
    type: Literal["none"] = "none"


ShippingSource = Annotated[
    Union[SavedAddressShipping, ProfileAddressShipping, NoShipping],
    Field(discriminator="type"),
]


# Result of the client-side card confirmation
class PaymentConfirmation(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None


# Input schema for placing an order from the current cart
class CheckoutPayload(BaseModel):
    shipping: ShippingSource = Field(default_factory=NoShipping)
    payment_method: PaymentMethod = PaymentMethod.COD
    payment: Optional[PaymentConfirmation] = None


# Output schema for an individual order line (snapshot)
class OrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: Optional[int] = None
    product_variant_id: Optional[int] = None
    name: str
    color: Optional[str] = None
    size: Optional[str] = None
    img_url: Optional[str] = None
    quantity: int
    price: float
    line_total: float = 0.0


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: float
    method: PaymentMethod
    status: PaymentStatus
    transaction_id: Optional[str] = None


class ShippingOut(BaseModel):
    address_id: Optional[int] = None
    label: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    address_line: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    postal_code: Optional[str] = None


# Output schema representing the full order details
class OrderResponse(BaseModel):
    id: int
    user_id: int
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    total: float
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    shipping: ShippingOut
    items: List[OrderItemOut]
    payment: Optional[PaymentOut] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None


# Schema for paginated order lists
class OrdersPage(BaseModel):
    items: List[OrderResponse]
    total: int
    page: int
    page_size: int


class OrderChange(BaseModel):
    id: int
    status: OrderStatus
    payment_status: PaymentStatus
    updated_at: Optional[datetime] = None


class OrderChanges(BaseModel):
    items: List[OrderChange]
    server_time: datetime


# Schema for updating order status; accepts legacy spellings ("Shipped", "pending", ...)
class OrderStatusPatch(BaseModel):
    status: OrderStatus

    @field_validator("status", mode="before")
    @classmethod
    def _normalize(cls, v):
        try:
            return normalize_status(v)
        except ValueError:
            raise ValueError(f"Unknown order status: {v}")
