# linkkeeper/database.py
import logging
import os

from beanie import init_beanie
from models import Link
from motor.motor_asyncio import AsyncIOMotorClient

logger = logging.getLogger(__name__)

DOCUMENT_MODELS = [Link]


async def init_models(database):
    """Register document models on a database and build their indexes."""
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
    logger.info("Beanie ODM initialized.")


async def connect_to_mongo():
    MONGO_HOST = os.environ.get("MONGO_HOST", "localhost")
    MONGO_PORT = int(os.environ.get("MONGO_PORT", 27017))
    MONGO_URI = os.environ.get("MONGO_URI") or f"mongodb://{MONGO_HOST}:{MONGO_PORT}"
    MONGO_DB = os.environ.get("MONGO_DB", "linkkeeper")

    client = AsyncIOMotorClient(MONGO_URI, serverSelectionTimeoutMS=5000, tz_aware=True)
    database = client[MONGO_DB]

    try:
        await database.command("ping")
        logger.info(f"Connected to MongoDB: {MONGO_DB}")
        await init_models(database)
        return client, database
    except Exception as e:
        logger.error(f"MongoDB connection failed: {e}")
        client.close()
        raise


async def close_mongo_connection(client: AsyncIOMotorClient):
    client.close()
    logger.info("Disconnected from MongoDB.")
