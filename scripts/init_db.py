"""
Database initialization script - key-value layout for the shop

Run once to create the kv_store documents:
    python scripts/init_db.py

Every logical table (users, accounts, config, pending_payments) is one
document in the kv_store collection. Existing documents are left as is;
a new config document is seeded from BONUS_PERCENTAGE and LOG_CHANNEL_ID.
"""

import asyncio
import json
import sys
from datetime import datetime, timezone
from pathlib import Path

from dotenv import load_dotenv

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment variables before the settings are built
load_dotenv()

import logging

from app.core.config import Settings
from app.db.kv_store import Table
from app.db import mongo

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


def seed_for(config: Settings):
    def initial_document(table: Table) -> dict:
        if table != Table.CONFIG:
            return {}
        return {
            "bonusPercentage": config.BONUS_PERCENTAGE,
            "totalTransactions": 0,
            "deploymentTimestamp": datetime.now(timezone.utc).isoformat(),
            "logChannelId": config.LOG_CHANNEL_ID,
        }

    return initial_document


async def create_tables(config: Settings):
    """Create one kv_store document per table and print their sizes"""

    logger.info(f"🔌 Connecting to MongoDB: {config.MONGODB_DB_NAME}")
    await mongo.connect_to_mongo(config)

    try:
        created = await mongo.ensure_kv_documents(seed_for(config))
        for table in Table:
            state = "created" if table.value in created else "already exists"
            logger.info(f"  {table.value}: {state}")

        # ==================== STATS ====================
        logger.info("\n📊 Current tables:")
        async for record in mongo.get_kv_collection().find({}):
            doc = json.loads(record.get("json") or "{}")
            size = "singleton" if record["_id"] == Table.CONFIG.value else f"{len(doc)} entries"
            logger.info(f"  {record['_id']}: {size} (version {record.get('version', 0)})")

        logger.info("\n✅ Database initialization complete!")

    finally:
        await mongo.close_mongo_connection()


async def main():
    """Main initialization"""
    logger.info("=" * 60)
    logger.info("  Nexus Shop Database Setup")
    logger.info("=" * 60 + "\n")

    await create_tables(Settings())

    logger.info("\n" + "=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
