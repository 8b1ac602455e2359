import logging

from motor.motor_asyncio import AsyncIOMotorClient

from tgstats.core.config import settings

logger = logging.getLogger(__name__)


class Database:
    client: AsyncIOMotorClient = None
    stats_db = None


db = Database()


async def connect_to_mongo():
    db.client = AsyncIOMotorClient(settings.mongo_url)
    db.stats_db = db.client[settings.db_name]
    logger.info("Connected to MongoDB")


async def close_mongo_connection():
    if db.client is not None:
        db.client.close()
        logger.info("Closed MongoDB connection")
