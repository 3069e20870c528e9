"""MongoDB async connection handles.

The client is created once by core.services.build_services and closed by
close_services; nothing here is cached at module level.
"""
import logging
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

logger = logging.getLogger(__name__)


def create_client(settings) -> AsyncIOMotorClient:
    # tz_aware so expires_at comparisons stay in UTC
    return AsyncIOMotorClient(settings.MONGO_URL, tz_aware=True)


def get_database(client: AsyncIOMotorClient, settings) -> AsyncIOMotorDatabase:
    return client[settings.DB_NAME]


async def init_indexes(db: AsyncIOMotorDatabase, settings) -> None:
    """Create required indexes. Idempotent."""
    tokens = db[settings.TOKEN_COLLECTION]
    await tokens.create_index([("token_id", 1), ("merchant_id", 1)], unique=True)
    await tokens.create_index("token_id")
    # Native per-item expiry; lazy delete-on-read still applies in between sweeps
    await tokens.create_index("expires_at", expireAfterSeconds=0)

    audit = db[settings.AUDIT_COLLECTION]
    await audit.create_index([("merchant_id", 1), ("timestamp", -1)])
    await audit.create_index("event_type")

    logger.info("MongoDB indexes initialized")


async def close_client(client: AsyncIOMotorClient | None) -> None:
    if client:
        client.close()
        logger.info("MongoDB connection closed")
