"""MongoDB database connection and initialization."""

from typing import Optional

from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from streamvault.core.config import settings
from streamvault.core.logger import get_logger
from streamvault.models import AuditLog, Subscription, User, Video

logger = get_logger(__name__)

mongodb_client: Optional[AsyncIOMotorClient] = None


async def connect_to_mongodb() -> None:
    """
    Connect to MongoDB and initialize Beanie.

    Called on API and worker startup.
    """
    global mongodb_client

    mongodb_client = AsyncIOMotorClient(settings.MONGODB_URL)

    await init_beanie(
        database=mongodb_client[settings.MONGODB_DB_NAME],
        document_models=[Video, User, AuditLog, Subscription],
    )

    logger.info(f"Connected to MongoDB: {settings.MONGODB_DB_NAME}")


async def close_mongodb_connection() -> None:
    """Close MongoDB connection on shutdown."""
    global mongodb_client

    if mongodb_client:
        mongodb_client.close()
        mongodb_client = None
        logger.info("MongoDB connection closed")
