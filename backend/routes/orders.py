# backend/routes/orders.py
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Request, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from database import get_db
import logging
from utils.tokenJWT import get_current_user
from utils.audit import write_log, client_ip
from utils.inventory import lock_variant, recompute_product_stock, restore_order_stock
from utils.storage import public_url
from utils.stripe_client import stripe_client, PaymentProviderError
from models.users import User
from models.cart import Cart
from models.address import UserAddress
from models.order import (
    Order, OrderItem, Payment, OrderStatus, PaymentStatus, PaymentMethod,
    TERMINAL_STATUSES, normalize_status,
)
from schemas.order import (
    CheckoutPayload, OrderResponse, OrdersPage, OrderItemOut, PaymentOut, ShippingOut,
    OrderChanges, OrderChange, PaymentConfirmation,
    SavedAddressShipping, ProfileAddressShipping,
)

router = APIRouter(prefix="/orders", tags=["Orders"])
logger = logging.getLogger(__name__)

SHIPPING_FIELDS = (
    "shipping_address_id", "shipping_label", "shipping_full_name", "shipping_phone",
    "shipping_address_line", "shipping_city", "shipping_province", "shipping_postal_code",
)


# Map Order model to OrderResponse schema
def order_to_out(request: Request, order: Order) -> OrderResponse:
    items: List[OrderItemOut] = []
    for it in order.items:
        items.append(OrderItemOut(
            id=it.id,
            product_id=it.product_id,
            product_variant_id=it.product_variant_id,
            name=it.name,
            color=it.color,
            size=it.size,
            img_url=public_url(request, it.img_url),
            quantity=it.quantity,
            price=it.price,
            line_total=round(it.price * it.quantity, 2),
        ))
    return OrderResponse(
        id=order.id,
        user_id=order.user_id,
        status=order.status,
        payment_status=order.payment_status,
        payment_method=order.payment_method,
        total=round(order.total, 2),
        created_at=order.created_at,
        updated_at=order.updated_at,
        shipping=ShippingOut(
            address_id=order.shipping_address_id,
            label=order.shipping_label,
            full_name=order.shipping_full_name,
            phone=order.shipping_phone,
            address_line=order.shipping_address_line,
            city=order.shipping_city,
            province=order.shipping_province,
            postal_code=order.shipping_postal_code,
        ),
        items=items,
        payment=PaymentOut.model_validate(order.payment) if order.payment else None,
        customer_name=order.user.full_name if order.user else None,
        customer_email=order.user.email if order.user else None,
    )


def _load_order(db: Session, order_id: int) -> Optional[Order]:
    return (
        db.query(Order)
        .options(selectinload(Order.items), selectinload(Order.payment))
        .filter(Order.id == order_id)
        .first()
    )


# Turn the chosen shipping source into the snapshot columns of the order
def _shipping_snapshot(db: Session, user: User, source) -> dict:
    snapshot = {field: None for field in SHIPPING_FIELDS}

    if isinstance(source, SavedAddressShipping):
        addr = db.query(UserAddress).filter(
            UserAddress.id == source.address_id, UserAddress.user_id == user.id
        ).first()
        if not addr:
            raise HTTPException(status_code=404, detail="Address not found")
        snapshot.update(
            shipping_address_id=addr.id,
            shipping_label=addr.label,
            shipping_full_name=addr.full_name,
            shipping_phone=addr.phone,
            shipping_address_line=addr.address_line,
            shipping_city=addr.city,
            shipping_province=addr.province,
            shipping_postal_code=addr.postal_code,
        )
    elif isinstance(source, ProfileAddressShipping):
        snapshot.update(
            shipping_full_name=source.full_name,
            shipping_phone=source.phone,
            shipping_address_line=source.address_line,
            shipping_city=source.city,
            shipping_province=source.province,
            shipping_postal_code=source.postal_code,
        )
    return snapshot


async def _resolve_payment(method: PaymentMethod, confirmation: Optional[PaymentConfirmation]) -> Tuple[PaymentStatus, Optional[str]]:
    """Payment status and transaction id to record for a new order.

    With Stripe configured, the intent is looked up instead of trusting the
    status reported by the browser.
    """
    if method != PaymentMethod.CARD or confirmation is None:
        return PaymentStatus.PENDING, None

    reported = confirmation.status
    if confirmation.id and stripe_client.configured:
        try:
            intent = await stripe_client.retrieve_payment_intent(confirmation.id)
        except PaymentProviderError as e:
            raise HTTPException(status_code=502, detail=f"Payment verification failed: {e.message}")
        reported = intent.get("status")

    paid = (reported or "").lower() == "succeeded"
    return (PaymentStatus.PAID if paid else PaymentStatus.PENDING), confirmation.id


def place_order(
    db: Session,
    user: User,
    cart: Cart,
    shipping: dict,
    payment_method: PaymentMethod,
    payment_status: PaymentStatus,
    transaction_id: Optional[str],
) -> Order:
    """Convert the cart into an order in a single transaction.

    Stock is re-checked under row locks before anything is written; any
    failure rolls the whole checkout back.
    """
    cart_items = list(cart.items)
    try:
        # 1. Re-check live stock for every line before mutating anything
        checked = []
        for ci in cart_items:
            variant = lock_variant(db, ci.product_variant_id)
            if variant is None:
                raise HTTPException(status_code=400, detail="Failed to validate stock for an item. Try again.")
            if (variant.stock or 0) < ci.quantity:
                name = ci.product.name if ci.product else "an item"
                raise HTTPException(
                    status_code=400,
                    detail=f"Not enough stock for {name}. Available: {variant.stock}, requested: {ci.quantity}",
                )
            checked.append((ci, variant))

        # 2. Deduct stock and refresh product aggregates
        for ci, variant in checked:
            variant.stock = max(0, (variant.stock or 0) - ci.quantity)
        recompute_product_stock(db, [variant.product_id for _, variant in checked])

        # 3. Total from the current product prices
        total = round(sum(float(ci.product.price) * ci.quantity for ci, _ in checked), 2)

        # 4. Order with item snapshots and its payment row
        order = Order(
            user_id=user.id,
            total=total,
            status=OrderStatus.PROCESSING,
            payment_status=payment_status,
            payment_method=payment_method,
            **shipping,
        )
        db.add(order)
        for ci, variant in checked:
            order.items.append(OrderItem(
                product_id=ci.product_id,
                product_variant_id=variant.id,
                quantity=ci.quantity,
                price=float(ci.product.price),
                name=ci.product.name,
                color=variant.color,
                size=variant.size,
                img_url=variant.img_url or ci.product.img_url,
            ))
        order.payment = Payment(
            amount=total,
            method=payment_method,
            status=payment_status,
            transaction_id=transaction_id,
        )

        # 5. Empty the cart
        for ci in cart_items:
            db.delete(ci)

        db.commit()
    except HTTPException:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Checkout failed for user %s: %s", user.id, e)
        raise HTTPException(status_code=500, detail="Failed to place order")

    db.refresh(order)
    return order


def transition_order(db: Session, order: Order, target: OrderStatus) -> dict:
    """Move an order to a new status without committing.

    Delivered and cancelled orders are locked. Stock goes back on the shelf
    only when an order is cancelled while still processing; an order that has
    already left the warehouse keeps its stock deducted.
    """
    previous = normalize_status(order.status)
    if previous in TERMINAL_STATUSES:
        raise HTTPException(status_code=400, detail=f"Cannot change status from {previous.value}")

    restored = {}
    if target == OrderStatus.CANCELLED and previous == OrderStatus.PROCESSING:
        restored = restore_order_stock(db, order)
    order.status = target
    return restored


def remove_order(db: Session, order: Order) -> dict:
    """Delete an order; orders still processing return their stock first. Does not commit."""
    restored = {}
    if normalize_status(order.status) == OrderStatus.PROCESSING:
        restored = restore_order_stock(db, order)
    db.delete(order)
    return restored


# Place an order from the current cart
@router.post("/checkout", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def checkout(
    payload: CheckoutPayload,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    cart = db.query(Cart).filter(Cart.user_id == current_user.id).first()
    if not cart or not cart.items:
        raise HTTPException(status_code=400, detail="Cart is empty")

    shipping = _shipping_snapshot(db, current_user, payload.shipping)
    payment_status, transaction_id = await _resolve_payment(payload.payment_method, payload.payment)

    order = place_order(db, current_user, cart, shipping, payload.payment_method, payment_status, transaction_id)

    write_log(
        db, user_id=current_user.id, action="ORDER_PLACE", resource="orders", status="SUCCESS",
        ip=client_ip(request),
        meta={"order_id": order.id, "total": order.total, "method": payload.payment_method.value,
              "payment_status": payment_status.value},
    )
    logger.info("Order %s placed by user %s (total=%.2f, payment=%s)", order.id, current_user.id, order.total, payment_status.value)
    return order_to_out(request, _load_order(db, order.id))


# List the caller's orders, newest first
@router.get("", response_model=OrdersPage)
def list_my_orders(
    request: Request,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    q = db.query(Order).options(
        selectinload(Order.items), selectinload(Order.payment)
    ).filter(Order.user_id == current_user.id).order_by(Order.created_at.desc(), Order.id.desc())
    total = q.count()
    rows = q.offset((page - 1) * page_size).limit(page_size).all()
    items = [order_to_out(request, o) for o in rows]
    return {"items": items, "total": total, "page": page, "page_size": page_size}


# Orders of the caller changed since `since`; clients poll this to refresh cached views.
# The cursor is taken before the query, so a change racing the poll shows up next time.
@router.get("/changes", response_model=OrderChanges)
def order_changes(
    since: datetime = Query(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    server_time = datetime.now(timezone.utc)
    if since.tzinfo is not None:
        since = since.astimezone(timezone.utc).replace(tzinfo=None)
    rows = (
        db.query(Order)
        .filter(Order.user_id == current_user.id, Order.updated_at >= since)
        .order_by(Order.updated_at.asc(), Order.id.asc())
        .all()
    )
    return OrderChanges(
        items=[OrderChange(id=o.id, status=o.status, payment_status=o.payment_status, updated_at=o.updated_at) for o in rows],
        server_time=server_time,
    )


# Get details of a specific order
@router.get("/{order_id}", response_model=OrderResponse)
def get_order_detail(
    order_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    o = _load_order(db, order_id)
    if not o or (o.user_id != current_user.id and not current_user.is_admin):
        raise HTTPException(status_code=404, detail="Order not found")
    return order_to_out(request, o)


# Customer-side cancellation, only while the order is still being processed
@router.post("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(
    order_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    order = _load_order(db, order_id)
    if not order or order.user_id != current_user.id:
        raise HTTPException(status_code=404, detail="Order not found")

    if normalize_status(order.status) != OrderStatus.PROCESSING:
        raise HTTPException(status_code=400, detail="This order cannot be cancelled")

    try:
        restored = transition_order(db, order, OrderStatus.CANCELLED)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Cancelling order %s failed: %s", order_id, e)
        raise HTTPException(status_code=500, detail="Failed to cancel order")

    write_log(
        db, user_id=current_user.id, action="ORDER_CANCEL", resource="orders", status="SUCCESS",
        ip=client_ip(request), meta={"order_id": order_id, "restored": {str(k): v for k, v in restored.items()}},
    )
    return order_to_out(request, _load_order(db, order_id))
