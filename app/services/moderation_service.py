"""
app/services/moderation_service.py

Purpose: Ban gate and anti-spam escalation

- Ban lookup applied to every inbound update
- Sliding-window spam check on user messages
- Auto-ban: persist flag, notify user and admin, audit, reset window
"""

from typing import Optional

from app.core.config import Settings
from app.core.exceptions import PersistenceError
from app.core.logging import get_logger, LogContext
from app.services.audit_service import AuditService
from app.services.auth_service import AuthService
from app.services.rate_limiter import RateDecision, RateLimiter
from app.services.telegram_service import TelegramService
from app.services.user_service import UserService
from utils.constants import AUTO_BAN_MESSAGE, LOG_AUTO_BAN
from utils.format_utils import h

logger = get_logger(__name__)

AUTO_BAN_REASON = "auto-spam"


class ModerationService:

    def __init__(
        self,
        users: UserService,
        rate_limiter: RateLimiter,
        telegram: TelegramService,
        audit: AuditService,
        auth: AuthService,
        config: Settings
    ):
        self.users = users
        self.rate_limiter = rate_limiter
        self.telegram = telegram
        self.audit = audit
        self.auth = auth
        self.config = config

    async def is_banned(self, user_id: str) -> bool:
        """
        A failed read counts as not banned; the admin is never banned.
        """
        if self.auth.is_admin(user_id):
            return False
        user = await self.users.get_user(user_id)
        return bool(user and user.is_banned)

    async def check_spam(self, user_id: str, now_ms: int, username: Optional[str] = None) -> RateDecision:
        """
        Records one message and auto-bans the sender when the window
        overflows. The admin is never counted.
        """
        if self.auth.is_admin(user_id):
            return RateDecision(allowed=True, count=0)

        decision = self.rate_limiter.check_and_record(user_id, now_ms)
        if not decision.allowed:
            await self.auto_ban(user_id, username, decision.count)
        return decision

    async def auto_ban(self, user_id: str, username: Optional[str], count: int):
        with LogContext(user_id=user_id, action="auto_ban"):
            logger.warning(
                f"Spam limit exceeded ({count} messages in {self.rate_limiter.window_ms}ms), banning",
                extra={"user_id": user_id}
            )

            try:
                await self.users.set_banned(user_id, True, AUTO_BAN_REASON)
            except PersistenceError as e:
                logger.error(f"Could not persist auto-ban: {e.message}", extra={"user_id": user_id})

            self.rate_limiter.clear(user_id)

            await self.telegram.send_message(user_id, AUTO_BAN_MESSAGE.format(admin=self.config.admin_contact))

            items = [
                f"User: @{h(username or 'N/A')} (ID: {user_id})",
                f"Reason: {count} messages within {self.rate_limiter.window_ms} ms",
            ]
            self.audit.notify_admin_later(LOG_AUTO_BAN, items)
            self.audit.log_later(LOG_AUTO_BAN, items)
