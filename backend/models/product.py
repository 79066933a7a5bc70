# backend/models/product.py
from sqlalchemy import (
    Column, Integer, String, Float, ForeignKey, CheckConstraint, DateTime, UniqueConstraint, func
)
from sqlalchemy.orm import relationship
from database import Base


# A sellable catalog entry. `stock` is a cached sum of the variants' stock and is
# recomputed by utils.inventory whenever a variant changes.
class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    description = Column(String)
    category = Column(String, index=True)
    price = Column(Float, CheckConstraint("price >= 0"), nullable=False)
    stock = Column(Integer, CheckConstraint("stock >= 0"), nullable=False, default=0)
    img_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    variants = relationship(
        "ProductVariant", back_populates="product",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="ProductVariant.id",
    )
    reviews = relationship("ProductReview", back_populates="product", cascade="all, delete-orphan", passive_deletes=True)


# A color/size combination of a product; the unit at which stock is tracked
class ProductVariant(Base):
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), index=True, nullable=False)
    color = Column(String, nullable=False)
    size = Column(String, nullable=False)
    stock = Column(Integer, CheckConstraint("stock >= 0"), nullable=False, default=0)
    img_url = Column(String, nullable=True)

    product = relationship("Product", back_populates="variants")

    __table_args__ = (
        UniqueConstraint("product_id", "color", "size", name="uq_variant_product_color_size"),
    )


class ProductReview(Base):
    __tablename__ = "product_reviews"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    rating = Column(Integer, CheckConstraint("rating >= 1 AND rating <= 5"), nullable=False)
    comment = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    product = relationship("Product", back_populates="reviews")
    user = relationship("User", lazy="joined")
