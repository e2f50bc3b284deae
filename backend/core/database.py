"""MongoDB async connection manager.

Provides singleton client and database references. The relay never writes:
the database is read for channel (project) resolution only.
"""
import logging
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from config.settings import get_settings

logger = logging.getLogger(__name__)

_client: AsyncIOMotorClient | None = None
_db: AsyncIOMotorDatabase | None = None


def get_client() -> AsyncIOMotorClient:
    global _client
    if _client is None:
        settings = get_settings()
        _client = AsyncIOMotorClient(settings.MONGO_URL)
    return _client


def get_db() -> AsyncIOMotorDatabase:
    global _db
    if _db is None:
        settings = get_settings()
        _db = get_client()[settings.DB_NAME]
    return _db


async def ping_db() -> bool:
    """Round-trip check used by the health endpoint."""
    try:
        await get_client().admin.command("ping")
        return True
    except Exception as e:
        logger.warning("MongoDB ping failed: %s", str(e))
        return False


async def close_db() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
        logger.info("MongoDB connection closed")
    _client = None
    _db = None
