"""
app/db/mongo.py

Purpose: MongoDB connection for the key-value backend

- Motor client with connection pooling and startup retries
- Single collection: kv_store (one document per logical table)
- Creates missing table documents without touching existing ones
- Health check used by /health
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from app.core.config import Settings, settings
from app.core.logging import get_logger
from app.db.kv_store import Table

logger = get_logger(__name__)

KV_COLLECTION = "kv_store"
CONNECT_ATTEMPTS = 3

_client: Optional[AsyncIOMotorClient] = None
_database: Optional[AsyncIOMotorDatabase] = None


async def connect_to_mongo(config: Optional[Settings] = None):
    """
    Opens the shared client and pings the server.

    Raises:
        ConnectionError: If the server cannot be reached after all attempts
    """
    global _client, _database
    config = config or settings

    if _client is not None:
        logger.warning("MongoDB client already initialized")
        return

    delay = 2
    for attempt in range(1, CONNECT_ATTEMPTS + 1):
        client = AsyncIOMotorClient(
            config.MONGODB_URL,
            maxPoolSize=20,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=10000,
            retryWrites=True,
            retryReads=True,
        )
        try:
            await client.admin.command("ping")
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            client.close()
            logger.error(f"MongoDB ping failed (attempt {attempt}/{CONNECT_ATTEMPTS}): {e}")
            if attempt == CONNECT_ATTEMPTS:
                raise ConnectionError("Could not establish MongoDB connection") from e
            await asyncio.sleep(delay)
            delay *= 2
            continue

        _client = client
        _database = client[config.MONGODB_DB_NAME]
        logger.info(f"✅ Connected to MongoDB: {config.MONGODB_DB_NAME}")
        return


async def close_mongo_connection():
    global _client, _database

    if _client:
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


def get_kv_collection() -> AsyncIOMotorCollection:
    """
    Returns the kv_store collection.

    Document shape:
    - _id: str (table name: users, accounts, config, pending_payments)
    - json: str (whole table serialized as JSON)
    - version: int (bumped on every write, used for compare-and-swap)
    - updated_at: datetime
    """
    if _database is None:
        raise RuntimeError("Database not initialized. Call connect_to_mongo() during startup.")
    return _database[KV_COLLECTION]


async def ensure_kv_documents(seed: Optional[Callable[[Table], Dict]] = None) -> List[str]:
    """
    Inserts a document for every table that does not have one yet.

    Args:
        seed: Initial content per table (empty tables when omitted)

    Returns:
        Names of the tables that were created
    """
    collection = get_kv_collection()
    created = []

    for table in Table:
        initial = seed(table) if seed else {}
        result = await collection.update_one(
            {"_id": table.value},
            {"$setOnInsert": {
                "json": json.dumps(initial),
                "version": 1,
                "updated_at": datetime.now(timezone.utc),
            }},
            upsert=True
        )
        if result.upserted_id is not None:
            created.append(table.value)

    if created:
        logger.info(f"Created kv_store documents: {', '.join(created)}")
    return created


async def check_database_health() -> bool:
    if _client is None:
        logger.error("MongoDB client not initialized")
        return False

    try:
        await _client.admin.command("ping")
        return True
    except PyMongoError as e:
        logger.error(f"Database health check failed: {e}")
        return False
