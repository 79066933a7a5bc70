import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, Enum, func
from sqlalchemy.orm import relationship
from database import Base


class OrderStatus(str, enum.Enum):
    PROCESSING = "processing"
    SHIPPING = "shipping"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"


class PaymentMethod(str, enum.Enum):
    COD = "cod"
    CARD = "card"


# Older clients and rows written before the enum existed use these spellings
LEGACY_STATUS_MAP = {
    "pending": OrderStatus.PROCESSING,
    "shipped": OrderStatus.SHIPPING,
    "successful": OrderStatus.DELIVERED,
    "success": OrderStatus.DELIVERED,
    "completed": OrderStatus.DELIVERED,
    "canceled": OrderStatus.CANCELLED,
}

# Once reached, an order status can no longer be changed
TERMINAL_STATUSES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}


def normalize_status(value) -> OrderStatus:
    """Map a status string (any case, legacy synonyms included) to its canonical value.

    Raises ValueError for anything that is not a known status.
    """
    if isinstance(value, OrderStatus):
        return value
    key = str(value or "").strip().lower()
    if key in LEGACY_STATUS_MAP:
        return LEGACY_STATUS_MAP[key]
    return OrderStatus(key)


def _utcnow():
    return datetime.now(timezone.utc)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    total = Column(Float, nullable=False)
    status = Column(
        Enum(OrderStatus, values_callable=_enum_values, native_enum=False, validate_strings=True, length=20),
        default=OrderStatus.PROCESSING, nullable=False, index=True,
    )
    payment_status = Column(
        Enum(PaymentStatus, values_callable=_enum_values, native_enum=False, validate_strings=True, length=20),
        default=PaymentStatus.PENDING, nullable=False,
    )
    payment_method = Column(
        Enum(PaymentMethod, values_callable=_enum_values, native_enum=False, validate_strings=True, length=20),
        default=PaymentMethod.COD, nullable=False,
    )

    # Shipping snapshot, copied at placement time
    shipping_address_id = Column(Integer, ForeignKey("user_addresses.id", ondelete="SET NULL"), nullable=True)
    shipping_label = Column(String, nullable=True)
    shipping_full_name = Column(String, nullable=True)
    shipping_phone = Column(String, nullable=True)
    shipping_address_line = Column(String, nullable=True)
    shipping_city = Column(String, nullable=True)
    shipping_province = Column(String, nullable=True)
    shipping_postal_code = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    # Set in Python so sub-second changes stay ordered for /orders/changes polling
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, index=True)

    user = relationship("User")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id")
    payment = relationship("Payment", back_populates="order", uselist=False, cascade="all, delete-orphan")


# Snapshot of a purchased variant. Product references are cleared when the
# catalog entry is deleted; the copied fields keep the history readable.
class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), index=True, nullable=True)
    product_variant_id = Column(Integer, ForeignKey("product_variants.id", ondelete="SET NULL"), nullable=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Float, nullable=False)
    name = Column(String, nullable=False)
    color = Column(String, nullable=True)
    size = Column(String, nullable=True)
    img_url = Column(String, nullable=True)

    order = relationship("Order", back_populates="items")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), unique=True, nullable=False)
    amount = Column(Float, nullable=False)
    method = Column(
        Enum(PaymentMethod, values_callable=_enum_values, native_enum=False, validate_strings=True, length=20),
        nullable=False,
    )
    status = Column(
        Enum(PaymentStatus, values_callable=_enum_values, native_enum=False, validate_strings=True, length=20),
        nullable=False, default=PaymentStatus.PENDING,
    )
    transaction_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    order = relationship("Order", back_populates="payment")
