"""MongoDB token store (motor).

Lookups always filter on the composite (token_id, merchant_id). Indexes,
including the TTL index on expires_at, are created by core.database.init_indexes.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import DuplicateKeyError, PyMongoError

from core.exceptions import PersistenceError
from schemas.tokens import PIIToken
from tokens.store import TokenStore

logger = logging.getLogger(__name__)


class MongoTokenStore(TokenStore):

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def put(self, token: PIIToken) -> None:
        try:
            await self.collection.insert_one(token.to_doc())
        except DuplicateKeyError as e:
            raise PersistenceError(f"Token {token.token_id} already exists") from e
        except PyMongoError as e:
            raise PersistenceError(f"Token store write failed: {e}") from e
        logger.debug("[TokenStore] Stored token=%s merchant=%s", token.token_id, token.merchant_id)

    async def get(self, token_id: str, merchant_id: str) -> Optional[PIIToken]:
        try:
            doc = await self.collection.find_one(
                {"token_id": token_id, "merchant_id": merchant_id},
                {"_id": 0},
            )
        except PyMongoError as e:
            raise PersistenceError(f"Token store read failed: {e}") from e
        if doc:
            return PIIToken.from_doc(doc)
        return None

    async def delete(self, token_id: str, merchant_id: str) -> bool:
        try:
            r = await self.collection.delete_one({"token_id": token_id, "merchant_id": merchant_id})
        except PyMongoError as e:
            raise PersistenceError(f"Token store delete failed: {e}") from e
        return r.deleted_count > 0

    async def exists(self, token_id: str) -> bool:
        try:
            doc = await self.collection.find_one({"token_id": token_id}, {"_id": 1})
        except PyMongoError as e:
            raise PersistenceError(f"Token store read failed: {e}") from e
        return doc is not None

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        try:
            r = await self.collection.delete_many({"expires_at": {"$ne": None, "$lte": now}})
        except PyMongoError as e:
            raise PersistenceError(f"Token store purge failed: {e}") from e
        logger.info("[TokenStore] Purged expired tokens: count=%d", r.deleted_count)
        return r.deleted_count
