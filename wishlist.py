"""Wishlist engine: one wishlist per user holding a set of product ids."""

from datetime import datetime, timezone
from typing import Optional

from auth import Identity, requires_identity
from catalog import PRODUCT_SUMMARY_EXPANSION
from database import PRODUCT, WISHLIST
from gateway import DocumentGateway, Expand, to_object_id
from log import get_logger, sanitize_id_for_logging

logger = get_logger(__name__)

WISHLIST_EXPANSION = (Expand("products", PRODUCT, nested=PRODUCT_SUMMARY_EXPANSION),)


class WishlistService:
    def __init__(self, gateway: DocumentGateway):
        self.gateway = gateway

    @requires_identity
    async def get_wishlist(self, identity: Identity) -> Optional[dict]:
        return await self.gateway.find_one(
            WISHLIST, {"user_id": identity.id}, expand=WISHLIST_EXPANSION
        )

    @requires_identity
    async def add_product(self, identity: Identity, product_id: str) -> dict:
        """Add a product, creating the wishlist on first use. Re-adding is a no-op."""
        product_oid = to_object_id(product_id)
        now = datetime.now(timezone.utc)
        wishlist = await self.gateway.atomic_update(
            WISHLIST,
            {"user_id": identity.id},
            {
                "$addToSet": {"products": product_oid},
                "$set": {"updated_at": now},
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
        )
        logger.info(
            "Wishlist add user=%s product=%s",
            sanitize_id_for_logging(identity.id),
            sanitize_id_for_logging(product_oid),
        )
        return wishlist

    @requires_identity
    async def remove_product(self, identity: Identity, product_id: str) -> dict:
        product_oid = to_object_id(product_id)
        wishlist = await self.gateway.atomic_update(
            WISHLIST,
            {"user_id": identity.id, "products": product_oid},
            {"$pull": {"products": product_oid}, "$set": {"updated_at": datetime.now(timezone.utc)}},
        )
        if wishlist is not None:
            logger.info(
                "Wishlist remove user=%s product=%s",
                sanitize_id_for_logging(identity.id),
                sanitize_id_for_logging(product_oid),
            )
            return wishlist

        wishlist = await self.gateway.find_one(WISHLIST, {"user_id": identity.id})
        return wishlist if wishlist is not None else {"user_id": identity.id, "products": []}
