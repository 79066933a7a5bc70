# backend/routes/products.py
from typing import Optional, List, Dict, Iterable

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import or_, func, select
from sqlalchemy.orm import Session, selectinload

from database import get_db
from utils.tokenJWT import get_current_user
from utils.audit import write_log, client_ip
from utils.storage import public_url
from models.users import User
from models.product import Product, ProductVariant, ProductReview
from models.order import OrderItem
import schemas.product as product_schemas

router = APIRouter(prefix="/products", tags=["Products"])


# ---- HELPERS ----
def sold_counts(db: Session, product_ids: Iterable[int]) -> Dict[int, int]:
    """Units sold per product, summed over all order snapshots."""
    ids = [pid for pid in product_ids if pid is not None]
    if not ids:
        return {}
    rows = (
        db.query(OrderItem.product_id, func.coalesce(func.sum(OrderItem.quantity), 0))
        .filter(OrderItem.product_id.in_(ids))
        .group_by(OrderItem.product_id)
        .all()
    )
    return {pid: int(total) for pid, total in rows}


def product_to_out(request: Request, product: Product, sold: int = 0) -> product_schemas.ProductOut:
    main_img = public_url(request, product.img_url) or ""
    variants = [
        product_schemas.VariantOut(
            id=v.id, product_id=v.product_id, color=v.color, size=v.size, stock=v.stock,
            # Variants without their own picture show the product's main image
            img_url=public_url(request, v.img_url) or main_img,
        )
        for v in product.variants
    ]
    return product_schemas.ProductOut(
        id=product.id,
        name=product.name,
        description=product.description,
        category=product.category,
        price=product.price,
        stock=product.stock,
        img_url=main_img,
        created_at=product.created_at,
        variants=variants,
        sold_count=sold,
    )


def _distinct_trimmed(values) -> List[str]:
    seen = []
    for (v,) in values:
        s = (v or "").strip()
        if s and s not in seen:
            seen.append(s)
    return seen


# =========================
# LIST / SEARCH
# =========================
@router.get("", response_model=product_schemas.ProductListPage)
def list_products(
    request: Request,
    q: Optional[str] = Query(None, description="Search in name and description"),
    category: Optional[str] = Query(None),
    sizes: List[str] = Query(default=[]),
    colors: List[str] = Query(default=[]),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    query = db.query(Product).options(selectinload(Product.variants))

    # Size/color filters narrow the products to those owning a matching variant
    if sizes or colors:
        variant_q = select(ProductVariant.product_id)
        if sizes:
            variant_q = variant_q.where(ProductVariant.size.in_(sizes))
        if colors:
            variant_q = variant_q.where(ProductVariant.color.in_(colors))
        query = query.filter(Product.id.in_(variant_q.distinct()))

    if category:
        query = query.filter(Product.category == category)

    if q and q.strip():
        like = f"%{q.strip()}%"
        query = query.filter(or_(Product.name.ilike(like), Product.description.ilike(like)))

    total = query.count()
    rows = (
        query.order_by(Product.created_at.desc(), Product.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    sold = sold_counts(db, [p.id for p in rows])
    items = [product_to_out(request, p, sold.get(p.id, 0)) for p in rows]
    return {"items": items, "total": total, "page": page, "page_size": page_size}


# =========================
# FILTER HELPERS
# =========================
@router.get("/filters", response_model=product_schemas.FilterOptions)
def get_filter_options(db: Session = Depends(get_db)):
    sizes = _distinct_trimmed(db.query(ProductVariant.size).order_by(ProductVariant.size).all())
    colors = _distinct_trimmed(db.query(ProductVariant.color).order_by(ProductVariant.color).all())
    return {"sizes": sizes, "colors": colors}


@router.get("/categories", response_model=List[str])
def get_categories(db: Session = Depends(get_db)):
    return _distinct_trimmed(
        db.query(Product.category).filter(Product.category != None).distinct().order_by(Product.category).all()  # noqa: E711
    )


# =========================
# SINGLE PRODUCT
# =========================
@router.get("/{product_id}", response_model=product_schemas.ProductOut)
def get_product(product_id: int, request: Request, db: Session = Depends(get_db)):
    product = (
        db.query(Product).options(selectinload(Product.variants))
        .filter(Product.id == product_id).first()
    )
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    sold = sold_counts(db, [product.id])
    return product_to_out(request, product, sold.get(product.id, 0))


# =========================
# REVIEWS
# =========================
def _review_out(request: Request, review: ProductReview) -> product_schemas.ReviewOut:
    out = product_schemas.ReviewOut.model_validate(review)
    if review.user:
        out.author_name = review.user.full_name
        out.author_avatar_url = public_url(request, review.user.avatar_url)
    return out


@router.get("/{product_id}/reviews", response_model=List[product_schemas.ReviewOut])
def list_reviews(product_id: int, request: Request, db: Session = Depends(get_db)):
    if not db.query(Product.id).filter(Product.id == product_id).first():
        raise HTTPException(status_code=404, detail="Product not found")
    reviews = (
        db.query(ProductReview)
        .filter(ProductReview.product_id == product_id)
        .order_by(ProductReview.created_at.desc(), ProductReview.id.desc())
        .all()
    )
    return [_review_out(request, r) for r in reviews]


@router.post("/{product_id}/reviews", response_model=product_schemas.ReviewOut, status_code=status.HTTP_201_CREATED)
def create_review(
    product_id: int,
    payload: product_schemas.ReviewIn,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not db.query(Product.id).filter(Product.id == product_id).first():
        raise HTTPException(status_code=404, detail="Product not found")

    review = ProductReview(product_id=product_id, user_id=current_user.id, rating=payload.rating, comment=payload.comment)
    db.add(review)
    db.commit()
    db.refresh(review)

    write_log(db, user_id=current_user.id, action="REVIEW_CREATE", resource="products", status="SUCCESS",
              ip=client_ip(request), meta={"product_id": product_id, "rating": payload.rating})
    return _review_out(request, review)
