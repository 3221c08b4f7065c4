"""
Cart merge engine.

A user owns a single cart document with at most one line per product:

    {"user_id": ObjectId, "products": [{"productId": ObjectId, "quantity": int}]}

Every change is a single-document atomic update (upsert, positional $inc,
guarded $push, $pull), so concurrent requests for the same user never lose
an increment.
"""

from datetime import datetime, timezone
from typing import Optional

from auth import Identity, requires_identity
from catalog import PRODUCT_SUMMARY_EXPANSION
from database import CART, PRODUCT
from errors import (
    ERROR_CART_CONTENDED,
    ERROR_INVALID_QUANTITY,
    ERROR_QUANTITY_REQUIRED,
    InvalidArgument,
    StorageFailure,
    WriteConflict,
)
from gateway import MAX_INT64, DocumentGateway, Expand, to_object_id
from log import get_logger, sanitize_id_for_logging

logger = get_logger(__name__)

MAX_MERGE_ATTEMPTS = 5

CART_EXPANSION = (Expand("products.productId", PRODUCT, nested=PRODUCT_SUMMARY_EXPANSION),)


def _validate_quantity(quantity: Optional[int]) -> None:
    if quantity is None:
        return
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidArgument(ERROR_INVALID_QUANTITY)
    if not 1 <= quantity <= MAX_INT64:
        raise InvalidArgument(ERROR_INVALID_QUANTITY)


class CartService:
    def __init__(self, gateway: DocumentGateway):
        self.gateway = gateway

    @requires_identity
    async def get_cart(self, identity: Identity) -> Optional[dict]:
        return await self.gateway.find_one(CART, {"user_id": identity.id}, expand=CART_EXPANSION)

    @requires_identity
    async def add_product(self, identity: Identity, product_id: str, quantity: Optional[int] = None) -> dict:
        """
        Add `quantity` of a product to the user's cart.

        An existing line is incremented in place; a new line starts at
        `quantity` (1 when omitted). Incrementing an existing line requires an
        explicit quantity.
        """
        _validate_quantity(quantity)
        product_oid = to_object_id(product_id)
        user_id = identity.id

        await self._ensure_cart(user_id)
        for _ in range(MAX_MERGE_ATTEMPTS):
            if quantity is not None:
                cart = await self._increment_line(user_id, product_oid, quantity)
                if cart is not None:
                    logger.info(
                        "Cart line incremented user=%s product=%s by=%s",
                        sanitize_id_for_logging(user_id),
                        sanitize_id_for_logging(product_oid),
                        quantity,
                    )
                    return cart

            cart = await self._push_line(user_id, product_oid, quantity or 1)
            if cart is not None:
                logger.info(
                    "Cart line added user=%s product=%s",
                    sanitize_id_for_logging(user_id),
                    sanitize_id_for_logging(product_oid),
                )
                return cart

            # The line exists (possibly added by a concurrent request)
            if quantity is None:
                raise InvalidArgument(ERROR_QUANTITY_REQUIRED)

        logger.warning("Cart merge gave up user=%s", sanitize_id_for_logging(user_id))
        raise StorageFailure(ERROR_CART_CONTENDED)

    @requires_identity
    async def remove_product(self, identity: Identity, product_id: str) -> dict:
        product_oid = to_object_id(product_id)
        cart = await self.gateway.atomic_update(
            CART,
            {"user_id": identity.id, "products.productId": product_oid},
            {
                "$pull": {"products": {"productId": product_oid}},
                "$set": {"updated_at": datetime.now(timezone.utc)},
            },
        )
        if cart is not None:
            logger.info(
                "Cart line removed user=%s product=%s",
                sanitize_id_for_logging(identity.id),
                sanitize_id_for_logging(product_oid),
            )
            return cart

        # Nothing to remove: hand back the cart as it is
        cart = await self.gateway.find_one(CART, {"user_id": identity.id})
        return cart if cart is not None else {"user_id": identity.id, "products": []}

    async def _ensure_cart(self, user_id) -> None:
        try:
            await self.gateway.atomic_update(
                CART,
                {"user_id": user_id},
                {"$setOnInsert": {"products": [], "created_at": datetime.now(timezone.utc)}},
                upsert=True,
            )
        except WriteConflict:
            # Another request created it first
            pass

    async def _increment_line(self, user_id, product_oid, quantity: int) -> Optional[dict]:
        return await self.gateway.atomic_update(
            CART,
            {"user_id": user_id, "products.productId": product_oid},
            {
                "$inc": {"products.$.quantity": quantity},
                "$set": {"updated_at": datetime.now(timezone.utc)},
            },
        )

    async def _push_line(self, user_id, product_oid, quantity: int) -> Optional[dict]:
        return await self.gateway.atomic_update(
            CART,
            {"user_id": user_id, "products.productId": {"$ne": product_oid}},
            {
                "$push": {"products": {"productId": product_oid, "quantity": quantity}},
                "$set": {"updated_at": datetime.now(timezone.utc)},
            },
        )
