"""
app/services/config_service.py

Purpose: Shop configuration document

- Seeds bonus percentage and deployment timestamp on first access
- Transaction counter
- Admin-tunable values (bonus, log channel)
"""

from datetime import datetime
from typing import Callable, Optional

from app.core.config import Settings
from app.core.exceptions import PersistenceError
from app.core.logging import get_logger
from app.db.kv_store import KVStore, Table
from app.models.shop_config import ShopConfig
from utils.time_utils import utc_now

logger = get_logger(__name__)


class ShopConfigService:

    def __init__(self, store: KVStore, config: Settings, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.config = config
        self.clock = clock

    def _initialize(self, doc: dict) -> ShopConfig:
        doc.setdefault("bonusPercentage", self.config.BONUS_PERCENTAGE)
        doc.setdefault("totalTransactions", 0)
        doc.setdefault("logChannelId", None)
        if not doc.get("deploymentTimestamp"):
            doc["deploymentTimestamp"] = self.clock().isoformat()
        return ShopConfig.model_validate(doc)

    async def load(self) -> ShopConfig:
        """
        Returns the config, initializing it on the very first access.
        Falls back to in-memory defaults if the store is unavailable.
        """
        doc = await self.store.get(Table.CONFIG)
        if doc.get("deploymentTimestamp") and "bonusPercentage" in doc:
            return ShopConfig.model_validate(doc)

        try:
            shop_config = await self.store.update(Table.CONFIG, self._initialize)
            logger.info("Shop config initialized")
            return shop_config
        except PersistenceError as e:
            logger.error(f"Could not initialize shop config: {e.message}")
            return ShopConfig(bonusPercentage=self.config.BONUS_PERCENTAGE)

    async def increment_transactions(self) -> int:
        def increment(doc: dict) -> int:
            shop_config = self._initialize(doc)
            doc["totalTransactions"] = shop_config.total_transactions + 1
            return doc["totalTransactions"]

        return await self.store.update(Table.CONFIG, increment)

    async def set_bonus_percentage(self, percentage: float) -> ShopConfig:
        def apply(doc: dict) -> ShopConfig:
            self._initialize(doc)
            doc["bonusPercentage"] = percentage
            return ShopConfig.model_validate(doc)

        return await self.store.update(Table.CONFIG, apply)

    async def set_log_channel(self, chat_id: Optional[str]) -> ShopConfig:
        def apply(doc: dict) -> ShopConfig:
            self._initialize(doc)
            doc["logChannelId"] = chat_id
            return ShopConfig.model_validate(doc)

        return await self.store.update(Table.CONFIG, apply)
