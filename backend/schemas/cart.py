from pydantic import BaseModel, Field
from typing import List, Optional

# Request schema for adding a variant to the cart
class CartAddItem(BaseModel):
    product_variant_id: int
    quantity: int = Field(default=1, ge=1)

# Request schema for updating cart item quantity; zero or less removes the line
class CartUpdateItem(BaseModel):
    quantity: int

# Response schema for a single cart line item
class CartItemOut(BaseModel):
    id: int
    product_id: int
    product_variant_id: int
    name: str
    color: Optional[str] = None
    size: Optional[str] = None
    img_url: Optional[str] = None
    quantity: int
    price: float
    line_total: float
    available: int

# Response schema for the entire cart summary
class CartOut(BaseModel):
    id: int
    items: List[CartItemOut]
    total: float
