# backend/routes/admin.py
import logging
from typing import List, Optional, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request, UploadFile, File, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from database import get_db
from models.users import User
from models.product import Product, ProductVariant
from models.order import Order, normalize_status
from utils.tokenJWT import role_required
from utils.audit import write_log, client_ip
from utils.inventory import recompute_product_stock
from utils.storage import save_image
from schemas.user import RoleUpdate, UserResponse
from schemas.order import OrderResponse, OrdersPage, OrderStatusPatch
import schemas.product as product_schemas
from routes.orders import order_to_out, transition_order, remove_order
from routes.products import product_to_out, sold_counts

router = APIRouter(prefix="/admin", tags=["Admin"])
logger = logging.getLogger(__name__)

admin_only = role_required("admin")


# Schema for paginated user list response
class PaginatedUsersResponse(BaseModel):
    items: List[UserResponse]
    total: int
    page: int
    page_size: int


def _get_product(db: Session, product_id: int) -> Product:
    product = (
        db.query(Product).options(selectinload(Product.variants))
        .filter(Product.id == product_id).first()
    )
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


def _main_image(variants) -> Optional[str]:
    # The first variant's picture doubles as the product image
    for v in variants:
        if v.img_url:
            return v.img_url
    return None


# ==========================================
#  PRODUCTS
# ==========================================
@router.post("/products", response_model=product_schemas.ProductOut, status_code=status.HTTP_201_CREATED)
def add_product(
    payload: product_schemas.ProductIn,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    for v in payload.variants:
        if v.stock <= 0:
            raise HTTPException(status_code=400, detail="Stock must be a number greater than 0.")

    product = Product(
        name=payload.name,
        description=payload.description,
        category=payload.category,
        price=payload.price,
        img_url=_main_image(payload.variants),
        stock=sum(v.stock for v in payload.variants),
    )
    for v in payload.variants:
        product.variants.append(ProductVariant(color=v.color, size=v.size, stock=v.stock, img_url=v.img_url))

    db.add(product)
    db.commit()
    db.refresh(product)

    write_log(
        db, user_id=current_user.id, action="PRODUCT_CREATE", resource="products",
        status="SUCCESS", ip=client_ip(request), meta={"id": product.id, "variants": len(payload.variants)},
    )
    return product_to_out(request, _get_product(db, product.id))


# Replace product details and its variant set
@router.put("/products/{product_id}", response_model=product_schemas.ProductOut)
def update_product(
    product_id: int,
    payload: product_schemas.ProductIn,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    product = _get_product(db, product_id)
    existing = {v.id: v for v in product.variants}

    try:
        product.name = payload.name
        product.description = payload.description
        product.category = payload.category
        product.price = payload.price

        kept_ids = {v.id for v in payload.variants if v.id is not None}
        for vid in kept_ids:
            if vid not in existing:
                raise HTTPException(status_code=400, detail=f"Variant {vid} does not belong to this product")

        # Variants left out of the payload are removed first, freeing their color/size
        for vid, variant in existing.items():
            if vid not in kept_ids:
                product.variants.remove(variant)
        db.flush()

        for v in payload.variants:
            if v.id is not None:
                variant = existing[v.id]
                variant.color, variant.size, variant.stock = v.color, v.size, v.stock
                if v.img_url is not None:
                    variant.img_url = v.img_url
        db.flush()

        for v in payload.variants:
            if v.id is None:
                product.variants.append(ProductVariant(color=v.color, size=v.size, stock=v.stock, img_url=v.img_url))

        product.img_url = _main_image(product.variants) or product.img_url
        recompute_product_stock(db, [product.id])
        db.commit()
    except HTTPException:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Updating product %s failed: %s", product_id, e)
        raise HTTPException(status_code=400, detail="Failed to update product")

    write_log(
        db, user_id=current_user.id, action="PRODUCT_UPDATE", resource="products",
        status="SUCCESS", ip=client_ip(request), meta={"id": product_id},
    )
    db.expire_all()
    product = _get_product(db, product_id)
    return product_to_out(request, product, sold_counts(db, [product_id]).get(product_id, 0))


@router.post("/products/{product_id}/variants/{variant_id}/image", response_model=product_schemas.ProductOut)
def upload_variant_image(
    product_id: int,
    variant_id: int,
    request: Request,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    product = _get_product(db, product_id)
    variant = next((v for v in product.variants if v.id == variant_id), None)
    if variant is None:
        raise HTTPException(status_code=404, detail="Product variant not found")

    variant.img_url = save_image("products", file)
    if not product.img_url or (product.variants and product.variants[0].id == variant.id):
        product.img_url = variant.img_url
    db.commit()

    write_log(
        db, user_id=current_user.id, action="PRODUCT_IMAGE", resource="products",
        status="SUCCESS", ip=client_ip(request), meta={"id": product_id, "variant_id": variant_id},
    )
    return product_to_out(request, _get_product(db, product_id))


@router.delete("/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_product(
    product_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    product = _get_product(db, product_id)
    # Variants, reviews and cart lines go with the product; order snapshots stay
    db.delete(product)
    db.commit()
    write_log(db, user_id=current_user.id, action="PRODUCT_DELETE", resource="products",
              status="SUCCESS", ip=client_ip(request), meta={"id": product_id})


# ==========================================
#  ORDERS
# ==========================================
@router.get("/orders", response_model=OrdersPage)
def list_orders(
    request: Request,
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    q = db.query(Order).options(
        selectinload(Order.items), selectinload(Order.payment), selectinload(Order.user)
    )
    if status_filter:
        try:
            q = q.filter(Order.status == normalize_status(status_filter))
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown order status: {status_filter}")

    q = q.order_by(Order.created_at.desc(), Order.id.desc())
    total = q.count()
    rows = q.offset((page - 1) * page_size).limit(page_size).all()
    return {"items": [order_to_out(request, o) for o in rows], "total": total, "page": page, "page_size": page_size}


@router.patch("/orders/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: int,
    payload: OrderStatusPatch,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    old_status = normalize_status(order.status)
    try:
        restored = transition_order(db, order, payload.status)
        db.commit()
    except HTTPException:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Status change of order %s failed: %s", order_id, e)
        raise HTTPException(status_code=500, detail="Failed to update status")

    write_log(
        db, user_id=current_user.id, action="ORDER_STATUS_CHANGE", resource="orders", status="SUCCESS",
        ip=client_ip(request),
        meta={"order_id": order_id, "old": old_status.value, "new": payload.status.value,
              "restored": {str(k): v for k, v in restored.items()}},
    )

    order = db.query(Order).options(
        selectinload(Order.items), selectinload(Order.payment)
    ).filter(Order.id == order_id).first()
    return order_to_out(request, order)


@router.delete("/orders/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_order(
    order_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    old_status = normalize_status(order.status)
    try:
        restored = remove_order(db, order)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Deleting order %s failed: %s", order_id, e)
        raise HTTPException(status_code=500, detail="Failed to delete order")

    write_log(
        db, user_id=current_user.id, action="ORDER_DELETE", resource="orders", status="SUCCESS",
        ip=client_ip(request),
        meta={"order_id": order_id, "status": old_status.value, "restored": {str(k): v for k, v in restored.items()}},
    )


# ==========================================
#  USERS
# ==========================================
@router.get("/users", response_model=PaginatedUsersResponse)
def get_all_users(
    q: Optional[str] = Query(None, description="Search by e-mail or name"),
    role: Optional[str] = Query(None, description="Filter by role"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    sort_by: Literal["id", "email", "role", "full_name"] = "id",
    order: Literal["asc", "desc"] = "asc",
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    query = db.query(User)

    if q:
        like = f"%{q.lower()}%"
        query = query.filter(User.email.ilike(like) | User.full_name.ilike(like))

    if role:
        query = query.filter(User.role.ilike(role))

    sort_map = {
        "id": User.id,
        "email": User.email,
        "role": User.role,
        "full_name": User.full_name,
    }
    col = sort_map.get(sort_by, User.id)
    query = query.order_by(col.asc() if order == "asc" else col.desc())

    total = query.count()
    users = query.offset((page - 1) * page_size).limit(page_size).all()

    return {
        "items": users,
        "total": total,
        "page": page,
        "page_size": page_size,
    }


@router.put("/users/{user_id}/role", response_model=UserResponse)
def update_user_role(
    user_id: int,
    new_role: RoleUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    # An admin cannot lock themselves out of the back office
    if user.id == current_user.id and new_role.role != "admin":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot change your own role")

    user.role = new_role.role
    db.commit()
    db.refresh(user)

    write_log(db, user_id=current_user.id, action="USER_ROLE_CHANGE", resource="users", status="SUCCESS",
              ip=client_ip(request), meta={"user_id": user.id, "role": user.role})
    return user
