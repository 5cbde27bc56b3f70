from functools import lru_cache

from dotenv import load_dotenv
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from pathlib import Path

from parking_logs.core.config import get_settings

# .env lives in the project root (same level as "parking_logs/")
load_dotenv(Path(__file__).resolve().parents[2] / ".env")

# access paths over the logs collection
LOG_INDEXES = [
    ([("level", ASCENDING)], "level_1"),
    ([("action", ASCENDING)], "action_1"),
    ([("userId", ASCENDING)], "userId_1"),
    ([("resource", ASCENDING), ("resourceId", ASCENDING)], "resource_1_resourceId_1"),
    ([("createdAt", DESCENDING)], "createdAt_-1"),
    ([("level", ASCENDING), ("createdAt", DESCENDING)], "level_1_createdAt_-1"),
]


@lru_cache
def get_client() -> AsyncIOMotorClient:
    settings = get_settings()
    timeout = settings.store_timeout_ms
    return AsyncIOMotorClient(
        settings.mongo_uri,
        serverSelectionTimeoutMS=timeout,
        connectTimeoutMS=timeout,
        socketTimeoutMS=timeout,
    )


def get_db():
    return get_client()[get_settings().mongo_db]


def get_logs_collection():
    """The logs collection; the app lifespan wraps it in the ingestion service."""
    return get_db()[get_settings().logs_collection]
