"""
app/services/audit_service.py

Purpose: Audit trail

- Quote-formatted entries posted to the log channel
- Direct notifications to the admin
- *_later variants run in the background and never block a reply
"""

from typing import List

from app.core.config import Settings
from app.core.logging import get_logger
from app.services.background import BackgroundRunner
from app.services.config_service import ShopConfigService
from app.services.telegram_service import TelegramService
from utils.format_utils import quote_block
from utils.time_utils import nice_time

logger = get_logger(__name__)


class AuditService:

    def __init__(
        self,
        telegram: TelegramService,
        shop_config: ShopConfigService,
        config: Settings,
        background: BackgroundRunner
    ):
        self.telegram = telegram
        self.shop_config = shop_config
        self.config = config
        self.background = background

    async def log(self, title: str, items: List[str]) -> bool:
        """
        Writes an audit entry to the application log and, when a log
        channel is configured, to Telegram.

        Returns:
            True if the entry reached the log channel
        """
        entries = list(items) + [f"Time: {nice_time()}"]
        logger.info(f"AUDIT {title}: {' | '.join(entries)}")

        channel = (await self.shop_config.load()).log_channel_id or self.config.LOG_CHANNEL_ID
        if not channel:
            return False

        result = await self.telegram.send_message(channel, quote_block(title, entries))
        return result["success"]

    async def notify_admin(self, title: str, items: List[str]) -> bool:
        if not self.config.ADMIN_ID:
            return False
        result = await self.telegram.send_message(self.config.ADMIN_ID, quote_block(title, items))
        return result["success"]

    def log_later(self, title: str, items: List[str]):
        self.background.spawn(self.log(title, items), name=f"audit:{title}")

    def notify_admin_later(self, title: str, items: List[str]):
        self.background.spawn(self.notify_admin(title, items), name=f"notify:{title}")
