"""
Product catalog queries.

compile_product_filter turns a (partially filled) ProductFilter into a
ProductQuery without touching storage; CatalogService runs it and expands
each product's categories, images and reviews.
"""

import copy
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from database import BANNER, CATEGORY, LOOKUP, PRODUCT, PRODUCT_IMAGE, REVIEW, USER
from errors import (
    ERROR_INVALID_PAGINATION,
    ERROR_INVALID_PATTERN,
    ERROR_INVALID_SORT,
    ERROR_PRODUCT_NOT_FOUND,
    InvalidArgument,
    NotFound,
)
from gateway import MAX_INT64, DocumentGateway, Expand, to_object_id
from schemas import ProductFilter

DEFAULT_LIMIT = 10
DEFAULT_START = 0

# Credentials never leave the user collection through a review
USER_PRIVATE_FIELDS = ("password", "password_hash", "otp")

# Products shown inside a cart or wishlist
PRODUCT_SUMMARY_EXPANSION = (
    Expand("categories", CATEGORY),
    Expand("product_images", PRODUCT_IMAGE),
)

PRODUCT_EXPANSION = PRODUCT_SUMMARY_EXPANSION + (
    Expand(
        "reviews",
        REVIEW,
        nested=(Expand("user_id", USER, exclude=USER_PRIVATE_FIELDS),),
    ),
)


@dataclass(frozen=True)
class ProductQuery:
    clauses: Tuple[Tuple[str, Any], ...] = ()
    limit: int = DEFAULT_LIMIT
    offset: int = DEFAULT_START
    sort: Tuple[Tuple[str, int], ...] = ()

    @property
    def predicate(self) -> Dict[str, Any]:
        # Fresh copy on every access; callers may hand it to the driver
        return copy.deepcopy(dict(self.clauses))


def _name_clause(name: str) -> Dict[str, str]:
    try:
        re.compile(name)
    except re.error:
        raise InvalidArgument(f"{ERROR_INVALID_PATTERN}: {name!r}")
    return {"$regex": name, "$options": "i"}


def _price_clause(min_price: Optional[float], max_price: Optional[float]) -> Dict[str, float]:
    bounds = {}
    if min_price is not None:
        bounds["$gte"] = min_price
    if max_price is not None:
        bounds["$lte"] = max_price
    return bounds


def _sort_spec(filter: ProductFilter) -> Tuple[Tuple[str, int], ...]:
    if filter.sort is None:
        return ()
    field = filter.sort.field
    if not field or field.startswith("$"):
        raise InvalidArgument(f"{ERROR_INVALID_SORT}: {field!r}")
    return ((field, 1 if filter.sort.order == "asc" else -1),)


def compile_product_filter(filter: Optional[ProductFilter]) -> ProductQuery:
    if filter is None:
        return ProductQuery()

    limit = DEFAULT_LIMIT if filter.limit is None else filter.limit
    start = DEFAULT_START if filter.start is None else filter.start
    if not (0 <= limit <= MAX_INT64 and 0 <= start <= MAX_INT64):
        raise InvalidArgument(ERROR_INVALID_PAGINATION)

    # Empty strings and empty lists filter nothing
    candidates: List[Tuple[str, Any]] = [
        ("_id", to_object_id(filter.id) if filter.id else None),
        ("name", _name_clause(filter.name) if filter.name else None),
        ("size", filter.size or None),
        ("color", filter.color or None),
        ("code", filter.code or None),
        (
            "categories",
            {"$in": [to_object_id(c) for c in filter.categories]} if filter.categories else None,
        ),
        ("keywords", {"$in": list(filter.keywords)} if filter.keywords else None),
        ("price", _price_clause(filter.min_price, filter.max_price) or None),
    ]
    return ProductQuery(
        clauses=tuple((field, value) for field, value in candidates if value is not None),
        limit=limit,
        offset=start,
        sort=_sort_spec(filter),
    )


class CatalogService:
    """Public catalog reads; none of these need an identity."""

    def __init__(self, gateway: DocumentGateway):
        self.gateway = gateway

    async def list_products(self, filter: Optional[ProductFilter] = None) -> List[dict]:
        query = compile_product_filter(filter)
        return await self.gateway.find_many(
            PRODUCT,
            query.predicate,
            limit=query.limit,
            offset=query.offset,
            sort=query.sort,
            expand=PRODUCT_EXPANSION,
        )

    async def get_product(self, product_id: str) -> dict:
        product = await self.gateway.find_one(
            PRODUCT, {"_id": to_object_id(product_id)}, expand=PRODUCT_EXPANSION
        )
        if product is None:
            raise NotFound(ERROR_PRODUCT_NOT_FOUND)
        return product

    async def list_categories(self) -> List[dict]:
        return await self.gateway.find_many(CATEGORY, {})

    async def list_banners(self) -> List[dict]:
        return await self.gateway.find_many(BANNER, {})

    async def list_lookups(self) -> List[dict]:
        return await self.gateway.find_many(LOOKUP, {})
