# backend/utils/inventory.py
"""Variant stock bookkeeping shared by checkout, cancellation and the back office.

None of these helpers commit: callers run them inside their own transaction and
commit (or roll back) once the whole workflow is done.
"""
import logging
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models.product import Product, ProductVariant
from models.order import Order

logger = logging.getLogger(__name__)


def lock_variant(db: Session, variant_id: int) -> Optional[ProductVariant]:
    # FOR UPDATE keeps concurrent checkouts from reading the same stock (no-op on SQLite)
    return (
        db.query(ProductVariant)
        .filter(ProductVariant.id == variant_id)
        .with_for_update()
        .first()
    )


def recompute_product_stock(db: Session, product_ids: Iterable[int]) -> None:
    """Reset each product's aggregate stock to the sum of its variants' stock."""
    db.flush()
    for pid in sorted(set(p for p in product_ids if p is not None)):
        total = (
            db.query(func.coalesce(func.sum(ProductVariant.stock), 0))
            .filter(ProductVariant.product_id == pid)
            .scalar()
        )
        product = db.query(Product).filter(Product.id == pid).first()
        if product:
            product.stock = int(total or 0)
    db.flush()


def restore_order_stock(db: Session, order: Order) -> dict:
    """Put every item of the order back on its variant's shelf.

    Items whose variant was deleted in the meantime are skipped. Returns a map
    of variant id -> restored quantity.
    """
    restored = {}
    product_ids = set()
    for item in order.items:
        if not item.product_variant_id:
            continue
        variant = lock_variant(db, item.product_variant_id)
        if not variant:
            logger.warning("Variant %s of order %s no longer exists, skipping restock", item.product_variant_id, order.id)
            continue
        variant.stock = (variant.stock or 0) + (item.quantity or 0)
        restored[variant.id] = restored.get(variant.id, 0) + (item.quantity or 0)
        product_ids.add(variant.product_id)

    recompute_product_stock(db, product_ids)
    return restored
