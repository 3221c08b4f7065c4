"""Address book of the authenticated user."""

from datetime import datetime, timezone
from typing import List

from auth import Identity, requires_identity
from database import ADDRESS
from gateway import DocumentGateway
from log import get_logger, sanitize_id_for_logging
from schemas import AddressIn

logger = get_logger(__name__)


class AddressService:
    def __init__(self, gateway: DocumentGateway):
        self.gateway = gateway

    @requires_identity
    async def list_addresses(self, identity: Identity) -> List[dict]:
        return await self.gateway.find_many(ADDRESS, {"user_id": identity.id})

    @requires_identity
    async def add_address(self, identity: Identity, address: AddressIn) -> dict:
        document = address.model_dump()
        document["user_id"] = identity.id
        document["created_at"] = datetime.now(timezone.utc)
        created = await self.gateway.insert(ADDRESS, document)
        logger.info("Address added user=%s", sanitize_id_for_logging(identity.id))
        return created
