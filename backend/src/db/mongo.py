"""MongoDB connection setup using Motor async driver."""

import os

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ReturnDocument

# Configuration from environment variables with defaults
MONGODB_URL = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "insight_atlas")

COUNTERS_COLLECTION = "counters"

# Global client instance
_client: AsyncIOMotorClient | None = None


async def get_database() -> AsyncIOMotorDatabase:
    """Get the database instance, creating client if needed."""
    global _client
    if _client is None:
        # Fail fast if MongoDB is unavailable
        _client = AsyncIOMotorClient(
            MONGODB_URL,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
        )
    return _client[DATABASE_NAME]


async def next_sequence(name: str) -> int:
    """Allocate the next integer id for a collection."""
    db = await get_database()
    doc = await db[COUNTERS_COLLECTION].find_one_and_update(
        {"_id": name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return int(doc["seq"])


async def close_database() -> None:
    """Close the database connection."""
    global _client
    if _client is not None:
        _client.close()
        _client = None


def get_client() -> AsyncIOMotorClient | None:
    """Get the current client instance (for testing)."""
    return _client


def set_client(client: AsyncIOMotorClient | None) -> None:
    """Set the client instance (for testing)."""
    global _client
    _client = client
