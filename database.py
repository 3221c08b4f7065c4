"""
Database connection

Reads DATABASE_URL / DATABASE_NAME from the environment and exposes `db`,
an async pymongo database handle (None when no URL is configured).
Collection names are the lowercased model names.
"""

import os

from pymongo import ASCENDING, AsyncMongoClient

from log import get_logger

logger = get_logger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "storefront")

ADDRESS = "address"
PRODUCT = "product"
CART = "cart"
WISHLIST = "wishlist"
REVIEW = "product_review"
CATEGORY = "category"
PRODUCT_IMAGE = "product_image"
USER = "user"
BANNER = "banner"
LOOKUP = "lookup"

client = AsyncMongoClient(DATABASE_URL) if DATABASE_URL else None
db = client[DATABASE_NAME] if client is not None else None


async def ensure_indexes(database) -> None:
    # One cart / wishlist per user, one review per (user, product)
    await database[CART].create_index([("user_id", ASCENDING)], unique=True)
    await database[WISHLIST].create_index([("user_id", ASCENDING)], unique=True)
    await database[REVIEW].create_index(
        [("user_id", ASCENDING), ("product_id", ASCENDING)], unique=True
    )
    await database[ADDRESS].create_index([("user_id", ASCENDING)])
    logger.info("Indexes ensured on database %s", database.name)
