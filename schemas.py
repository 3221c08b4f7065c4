"""
Request schemas

Pydantic models for the documents clients send. Field names follow the
stored documents; the product filter keeps the camelCase names clients
already use (`_id`, `minPrice`, `maxPrice`).
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional, List


class AddressIn(BaseModel):
    name: str
    address_line_1: str
    address_line_2: Optional[str] = None
    city: str
    pincode: str
    state: str
    country: str
    email: EmailStr
    phone_number: str


class SortOption(BaseModel):
    field: str
    order: str = Field("desc", description="asc | anything else is descending")


class ProductFilter(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(None, alias="_id")
    categories: Optional[List[str]] = None
    size: Optional[str] = None
    color: Optional[str] = None
    min_price: Optional[float] = Field(None, alias="minPrice")
    max_price: Optional[float] = Field(None, alias="maxPrice")
    name: Optional[str] = None
    limit: Optional[int] = None
    start: Optional[int] = None
    sort: Optional[SortOption] = None
    code: Optional[str] = None
    keywords: Optional[List[str]] = None


class CartLineIn(BaseModel):
    product_id: str
    quantity: Optional[int] = Field(None, description="Defaults to 1 for a new line")


class WishlistItemIn(BaseModel):
    product_id: str


class ProductReviewIn(BaseModel):
    review: str
    score: float
    product_id: str
