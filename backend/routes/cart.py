# backend/routes/cart.py
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session
from database import get_db
from utils.tokenJWT import get_current_user
from utils.audit import write_log, client_ip
from utils.storage import public_url
from models.users import User
from models.product import ProductVariant
from models.cart import Cart, CartItem
from schemas.cart import CartAddItem, CartUpdateItem, CartOut, CartItemOut

router = APIRouter(prefix="/cart", tags=["Cart"])


def get_or_create_cart(db: Session, user_id: int) -> Cart:
    # Retrieve the user's cart or create it on first use
    cart = db.query(Cart).filter(Cart.user_id == user_id).first()
    if not cart:
        cart = Cart(user_id=user_id)
        db.add(cart)
        db.commit()
        db.refresh(cart)
    return cart


def cart_to_out(request: Request, cart: Cart) -> CartOut:
    items_out = []
    total = 0.0

    for it in cart.items:
        product = it.product
        variant = it.variant
        # Prices are always read from the live product
        price = float(product.price) if product else 0.0
        line_total = price * it.quantity
        total += line_total

        img = (variant.img_url if variant else None) or (product.img_url if product else None)
        items_out.append(CartItemOut(
            id=it.id,
            product_id=it.product_id,
            product_variant_id=it.product_variant_id,
            name=product.name if product else "",
            color=variant.color if variant else None,
            size=variant.size if variant else None,
            img_url=public_url(request, img),
            quantity=it.quantity,
            price=round(price, 2),
            line_total=round(line_total, 2),
            available=variant.stock if variant else 0,
        ))

    return CartOut(id=cart.id, items=items_out, total=round(total, 2))


def _stock_error(variant: ProductVariant) -> HTTPException:
    name = variant.product.name if variant.product else "this item"
    return HTTPException(status_code=400, detail=f"Not enough stock for {name}. Available: {variant.stock}")


@router.get("", response_model=CartOut)
def get_cart(
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    cart = get_or_create_cart(db, current_user.id)
    return cart_to_out(request, cart)


@router.post("/items", response_model=CartOut, status_code=status.HTTP_200_OK)
def add_to_cart(
    payload: CartAddItem,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    cart = get_or_create_cart(db, current_user.id)

    variant = db.query(ProductVariant).filter(ProductVariant.id == payload.product_variant_id).first()
    if not variant:
        raise HTTPException(status_code=404, detail="Product variant not found")

    item = db.query(CartItem).filter(
        CartItem.cart_id == cart.id, CartItem.product_variant_id == variant.id
    ).first()

    # Quantity already in the cart counts against live stock
    existing_qty = item.quantity if item else 0
    if existing_qty + payload.quantity > (variant.stock or 0):
        raise _stock_error(variant)

    if item:
        item.quantity = existing_qty + payload.quantity
    else:
        item = CartItem(
            cart_id=cart.id,
            product_id=variant.product_id,
            product_variant_id=variant.id,
            quantity=payload.quantity,
        )
        db.add(item)

    db.commit()
    db.refresh(cart)

    out = cart_to_out(request, cart)
    write_log(
        db,
        user_id=current_user.id,
        action="CART_ADD",
        resource="cart",
        status="SUCCESS",
        ip=client_ip(request),
        meta={"variant_id": variant.id, "qty": payload.quantity, "cart_items": len(out.items), "total": out.total},
    )
    return out


@router.put("/items/{item_id}", response_model=CartOut)
def update_cart_item(
    item_id: int,
    payload: CartUpdateItem,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    cart = get_or_create_cart(db, current_user.id)

    item = db.query(CartItem).filter(CartItem.id == item_id, CartItem.cart_id == cart.id).first()
    if not item:
        raise HTTPException(status_code=404, detail="Cart item not found")

    if payload.quantity <= 0:
        db.delete(item)
    else:
        variant = item.variant
        if variant is None:
            raise HTTPException(status_code=404, detail="Product variant not found")
        if payload.quantity > (variant.stock or 0):
            raise _stock_error(variant)
        item.quantity = payload.quantity

    db.commit()
    db.refresh(cart)

    out = cart_to_out(request, cart)
    write_log(
        db,
        user_id=current_user.id,
        action="CART_UPDATE",
        resource="cart",
        status="SUCCESS",
        ip=client_ip(request),
        meta={"item_id": item_id, "qty": payload.quantity, "total": out.total},
    )
    return out


@router.delete("/items/{item_id}", response_model=CartOut)
def delete_cart_item(
    item_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    cart = get_or_create_cart(db, current_user.id)

    item = db.query(CartItem).filter(CartItem.id == item_id, CartItem.cart_id == cart.id).first()
    if not item:
        raise HTTPException(status_code=404, detail="Cart item not found")

    db.delete(item)
    db.commit()
    db.refresh(cart)

    out = cart_to_out(request, cart)
    write_log(
        db,
        user_id=current_user.id,
        action="CART_DELETE",
        resource="cart",
        status="SUCCESS",
        ip=client_ip(request),
        meta={"item_id": item_id, "cart_items": len(out.items), "total": out.total},
    )
    return out
