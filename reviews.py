"""
Review upsert engine.

A user has at most one review per product: writing again overwrites the
text and score of the existing review.
"""

from datetime import datetime, timezone

from auth import Identity, requires_identity
from database import PRODUCT, REVIEW
from gateway import DocumentGateway, to_object_id
from log import get_logger, sanitize_id_for_logging
from schemas import ProductReviewIn

logger = get_logger(__name__)


class ReviewService:
    def __init__(self, gateway: DocumentGateway):
        self.gateway = gateway

    @requires_identity
    async def add_review(self, identity: Identity, data: ProductReviewIn) -> dict:
        product_oid = to_object_id(data.product_id)
        now = datetime.now(timezone.utc)
        review = await self.gateway.atomic_update(
            REVIEW,
            {"user_id": identity.id, "product_id": product_oid},
            {
                "$set": {"review": data.review, "score": data.score, "updated_at": now},
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
        )
        # Link it from the product so catalog reads can expand it
        await self.gateway.atomic_update(
            PRODUCT,
            {"_id": product_oid},
            {"$addToSet": {"reviews": review["_id"]}},
        )
        logger.info(
            "Review saved user=%s product=%s score=%s",
            sanitize_id_for_logging(identity.id),
            sanitize_id_for_logging(product_oid),
            data.score,
        )
        return review
