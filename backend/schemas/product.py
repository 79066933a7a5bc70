# backend/schemas/product.py
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, List


# Base configuration for ORM compatibility
class ORMBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class VariantIn(BaseModel):
    # Present when editing an existing variant, absent for new ones
    id: Optional[int] = None
    color: str = Field(min_length=1)
    size: str = Field(min_length=1)
    stock: int = Field(ge=0)
    img_url: Optional[str] = None


class VariantOut(ORMBase):
    id: int
    product_id: int
    color: str
    size: str
    stock: int
    img_url: Optional[str] = None


# Shared attributes for product create/replace requests
class ProductIn(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    price: float = Field(ge=0)
    variants: List[VariantIn]

    @model_validator(mode="after")
    def _check_variants(self):
        if not self.variants:
            raise ValueError("Please add at least one product variant (Color/Size/Stock).")
        seen = set()
        for v in self.variants:
            key = (v.color.strip().lower(), v.size.strip().lower())
            if key in seen:
                raise ValueError(f"Variant {v.color}/{v.size} already added.")
            seen.add(key)
        return self


class ProductOut(ORMBase):
    id: int
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    price: float
    stock: int
    img_url: Optional[str] = None
    created_at: Optional[datetime] = None
    variants: List[VariantOut] = []
    sold_count: int = 0


# Paginated response for product listings
class ProductListPage(BaseModel):
    items: List[ProductOut]
    total: int
    page: int
    page_size: int


class FilterOptions(BaseModel):
    sizes: List[str]
    colors: List[str]


class ReviewIn(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None


class ReviewOut(ORMBase):
    id: int
    product_id: int
    user_id: int
    rating: int
    comment: Optional[str] = None
    created_at: Optional[datetime] = None
    author_name: Optional[str] = None
    author_avatar_url: Optional[str] = None
