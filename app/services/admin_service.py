"""
app/services/admin_service.py

Purpose: Admin control surface

- Restock, balance adjustment, ban / unban
- Broadcast in the background with per-recipient failure counting
- Manual confirm / cancel of a user's pending deposit
- Log channel and bonus settings
- Console panels (overview, stock, pending, anti-spam)

Every public method authorizes the actor itself.
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from app.core.exceptions import ValidationError
from app.core.logging import get_logger, LogContext
from app.models.account import Account, CatalogGroup
from app.models.payment import DepositReceipt, PendingPayment
from app.models.shop_config import ShopConfig
from app.models.user import User
from app.services.audit_service import AuditService
from app.services.auth_service import AuthService
from app.services.background import BackgroundRunner
from app.services.catalog_service import CatalogService
from app.services.config_service import ShopConfigService
from app.services.payment_service import PaymentService
from app.services.rate_limiter import RateLimiter
from app.services.telegram_service import TelegramService
from app.services.user_service import UserService
from utils.constants import (
    ADMIN_BANNED_USER_MESSAGE,
    BROADCAST_RESULT,
    LOG_BALANCE_ADJUSTED,
    LOG_BAN,
    LOG_BROADCAST,
    LOG_RESTOCK,
    LOG_UNBAN,
    UNBANNED_MESSAGE,
)
from utils.format_utils import format_rupiah, h

logger = get_logger(__name__)

DEFAULT_BAN_REASON = "banned by admin"


@dataclass
class Overview:
    users: int
    stock: int
    transactions: int


@dataclass
class BroadcastResult:
    sent: int
    failed: int


class AdminService:

    def __init__(
        self,
        auth: AuthService,
        users: UserService,
        catalog: CatalogService,
        payments: PaymentService,
        shop_config: ShopConfigService,
        rate_limiter: RateLimiter,
        telegram: TelegramService,
        audit: AuditService,
        background: BackgroundRunner
    ):
        self.auth = auth
        self.users = users
        self.catalog = catalog
        self.payments = payments
        self.shop_config = shop_config
        self.rate_limiter = rate_limiter
        self.telegram = telegram
        self.audit = audit
        self.background = background

    async def restock(self, actor_id: str, accounts: List[Account]) -> Tuple[List[str], List[str]]:
        """
        Returns:
            (added_keys, skipped_keys); skipped keys already exist in stock
        """
        self.auth.require_admin(actor_id)

        with LogContext(user_id=actor_id, action="restock"):
            added, skipped = await self.catalog.add_accounts(accounts)
            logger.info(f"Restock: {len(added)} added, {len(skipped)} skipped")

            if added:
                self.audit.log_later(LOG_RESTOCK, [
                    f"Added: {len(added)}",
                    f"Products: {h(', '.join(sorted({a.name for a in accounts if a.email in added})))}",
                ])
            return added, skipped

    async def adjust_balance(self, actor_id: str, user_id: str, delta: int) -> User:
        """
        Raises:
            ValidationError: delta is zero
            UserNotFoundError / InsufficientBalanceError: from UserService
        """
        self.auth.require_admin(actor_id)
        if not delta:
            raise ValidationError("Amount must not be zero", details={"delta": delta})

        with LogContext(user_id=user_id, action="adjust_balance"):
            user = await self.users.adjust_balance(user_id, delta)
            sign = "+" if delta > 0 else "-"
            self.audit.log_later(LOG_BALANCE_ADJUSTED, [
                f"User: {h(user.display_name)} (ID: {user_id})",
                f"Change: {sign}{format_rupiah(abs(delta))}",
                f"New balance: {format_rupiah(user.balance)}",
            ])
            return user

    async def ban(self, actor_id: str, user_id: str, reason: Optional[str] = None) -> User:
        self.auth.require_admin(actor_id)
        if self.auth.is_admin(user_id):
            raise ValidationError("The admin cannot be banned", details={"user_id": user_id})

        reason = reason or DEFAULT_BAN_REASON
        user = await self.users.set_banned(user_id, True, reason)
        await self.telegram.send_message(user_id, ADMIN_BANNED_USER_MESSAGE.format(reason=h(reason)))

        self.audit.log_later(LOG_BAN, [
            f"User: {h(user.display_name)} (ID: {user_id})",
            f"Reason: {h(reason)}",
        ])
        return user

    async def unban(self, actor_id: str, user_id: str) -> User:
        self.auth.require_admin(actor_id)

        user = await self.users.set_banned(user_id, False)
        self.rate_limiter.clear(user_id)
        await self.telegram.send_message(user_id, UNBANNED_MESSAGE)

        self.audit.log_later(LOG_UNBAN, [f"User: {h(user.display_name)} (ID: {user_id})"])
        return user

    def start_broadcast(self, actor_id: str, chat_id: str, text: str):
        """
        Validates the broadcast, then runs it as a background task that
        reports the sent / failed counts to chat_id when it finishes.

        Raises:
            AdminOnlyError: actor_id is not the admin
            ValidationError: Empty text
        """
        self._check_broadcast(actor_id, text)
        self.background.spawn(self._broadcast_and_report(actor_id, chat_id, text), name="broadcast")
        logger.info("Broadcast started", extra={"user_id": actor_id})

    async def _broadcast_and_report(self, actor_id: str, chat_id: str, text: str):
        result = await self.broadcast(actor_id, text)
        await self.telegram.send_message(chat_id, BROADCAST_RESULT.format(sent=result.sent, failed=result.failed))

    def _check_broadcast(self, actor_id: str, text: str):
        self.auth.require_admin(actor_id)
        if not text or not text.strip():
            raise ValidationError("Broadcast text is empty")

    async def broadcast(self, actor_id: str, text: str) -> BroadcastResult:
        """
        Sends text to every registered user. A failed delivery is counted
        and the broadcast moves on.
        """
        self._check_broadcast(actor_id, text)

        result = BroadcastResult(sent=0, failed=0)
        for user_id in await self.users.list_user_ids():
            delivery = await self.telegram.send_message(user_id, text)
            if delivery["success"]:
                result.sent += 1
            else:
                result.failed += 1

        logger.info(f"Broadcast finished: {result.sent} sent, {result.failed} failed")
        self.audit.log_later(LOG_BROADCAST, [f"Sent: {result.sent}", f"Failed: {result.failed}"])
        return result

    async def confirm_deposit(self, actor_id: str, user_id: str) -> DepositReceipt:
        self.auth.require_admin(actor_id)
        return await self.payments.confirm_payment(user_id)

    async def cancel_deposit(self, actor_id: str, user_id: str) -> PendingPayment:
        self.auth.require_admin(actor_id)
        return await self.payments.cancel_payment(user_id)

    async def set_log_channel(self, actor_id: str, chat_id: str) -> ShopConfig:
        self.auth.require_admin(actor_id)
        shop_config = await self.shop_config.set_log_channel(chat_id)
        logger.info(f"Log channel set to {chat_id}")
        return shop_config

    async def set_bonus(self, actor_id: str, percentage: float) -> ShopConfig:
        self.auth.require_admin(actor_id)
        if not math.isfinite(percentage) or percentage < 0 or percentage > 100:
            raise ValidationError("Bonus must be between 0 and 100", details={"percentage": percentage})
        shop_config = await self.shop_config.set_bonus_percentage(percentage)
        logger.info(f"Bonus percentage set to {percentage}")
        return shop_config

    async def overview(self, actor_id: str) -> Overview:
        self.auth.require_admin(actor_id)
        shop_config = await self.shop_config.load()
        return Overview(
            users=await self.users.count_users(),
            stock=await self.catalog.stock_count(),
            transactions=shop_config.total_transactions,
        )

    async def stock_report(self, actor_id: str) -> List[CatalogGroup]:
        self.auth.require_admin(actor_id)
        return await self.catalog.list_grouped()

    async def pending_report(self, actor_id: str) -> List[PendingPayment]:
        self.auth.require_admin(actor_id)
        return sorted(await self.payments.list_pending(), key=lambda payment: payment.created_at)

    async def spam_report(self, actor_id: str) -> Tuple[List[User], dict]:
        """
        Returns:
            (banned_users, active rate windows as {user_id: count})
        """
        self.auth.require_admin(actor_id)
        return await self.users.list_banned(), self.rate_limiter.active_windows()
