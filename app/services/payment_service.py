"""
app/services/payment_service.py

Purpose: Deposit / payment state machine

NONE -> PENDING -> CONFIRMED | CANCELLED | EXPIRED, then back to NONE.

- One live pending record per user; a new request replaces the old one
- Confirm claims and deletes the record before crediting, so a record
  is credited at most once even when confirm, cancel and the expiry
  sweep race each other
- Cancel and expiry never touch the balance
- The payment instruction message is edited on every terminal state
  and when its request is replaced
- Buttons name their transaction; a press for a replaced one is refused
"""

import secrets
from datetime import datetime
from decimal import Decimal, ROUND_FLOOR
from typing import Callable, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from app.core.config import Settings
from app.core.exceptions import (
    InvalidNominalError,
    NoPendingPaymentError,
    PersistenceError,
    UserNotFoundError,
)
from app.core.logging import get_logger, LogContext
from app.db.kv_store import KVStore, Table
from app.flow.states import PaymentState, is_valid_transition
from app.models.payment import DepositReceipt, PendingPayment
from app.services.audit_service import AuditService
from app.services.config_service import ShopConfigService
from app.services.telegram_service import TelegramService
from app.services.user_service import UserService
from utils.constants import (
    DEPOSIT_CANCELLED,
    DEPOSIT_CONFIRMED,
    DEPOSIT_EXPIRED,
    DEPOSIT_INSTRUCTIONS,
    DEPOSIT_REPLACED_NOTE,
    DEPOSIT_SUPERSEDED,
    LOG_DEPOSIT_CANCELLED,
    LOG_DEPOSIT_CONFIRMED,
    LOG_DEPOSIT_EXPIRED,
    LOG_DEPOSIT_PENDING,
)
from utils.format_utils import format_rupiah, h
from utils.keyboards import deposit_keyboard
from utils.time_utils import is_payment_expired, utc_now

logger = get_logger(__name__)


def compute_bonus(nominal: int, percentage: float) -> int:
    """
    floor(nominal * percentage / 100), computed in decimal so that
    fractional percentages do not pick up float rounding.
    """
    bonus = Decimal(nominal) * Decimal(str(percentage)) / Decimal(100)
    return int(bonus.to_integral_value(rounding=ROUND_FLOOR))


def generate_transaction_id(now: datetime) -> str:
    return f"DEP{now.strftime('%y%m%d%H%M%S')}{secrets.token_hex(2).upper()}"


class PaymentService:

    def __init__(
        self,
        store: KVStore,
        users: UserService,
        shop_config: ShopConfigService,
        telegram: TelegramService,
        audit: AuditService,
        config: Settings,
        clock: Callable[[], datetime] = utc_now
    ):
        self.store = store
        self.users = users
        self.shop_config = shop_config
        self.telegram = telegram
        self.audit = audit
        self.config = config
        self.clock = clock

    def validate_nominal(self, nominal: Optional[int]) -> int:
        if nominal is None or nominal < self.config.DEPOSIT_MIN or nominal > self.config.DEPOSIT_MAX:
            raise InvalidNominalError(
                details={"nominal": nominal, "min": self.config.DEPOSIT_MIN, "max": self.config.DEPOSIT_MAX}
            )
        return nominal

    def _transition(self, payment: PendingPayment, from_state: PaymentState, to_state: PaymentState):
        if not is_valid_transition(from_state, to_state):
            logger.error(
                f"Invalid payment transition {from_state.value} -> {to_state.value}",
                extra={"user_id": payment.user_id, "transaction_id": payment.transaction_id}
            )
            return
        logger.info(
            f"Payment {payment.transaction_id}: {from_state.value} -> {to_state.value}",
            extra={"user_id": payment.user_id, "transaction_id": payment.transaction_id}
        )

    async def get_pending(self, user_id: str) -> Optional[PendingPayment]:
        raw = (await self.store.get(Table.PENDING_PAYMENTS)).get(user_id)
        return PendingPayment.model_validate(raw) if raw else None

    async def list_pending(self) -> List[PendingPayment]:
        pending = await self.store.get(Table.PENDING_PAYMENTS)
        payments = []
        for user_id, raw in pending.items():
            try:
                payments.append(PendingPayment.model_validate(raw))
            except PydanticValidationError as e:
                logger.warning(f"Skipping malformed pending payment of {user_id}: {e}", extra={"user_id": user_id})
        return payments

    async def request_deposit(
        self,
        user_id: str,
        nominal: Optional[int],
        username: Optional[str] = None
    ) -> Tuple[PendingPayment, Optional[PendingPayment]]:
        """
        Creates a pending deposit, replacing any existing one.

        Returns:
            (payment, replaced) where replaced is the discarded record or None

        Raises:
            InvalidNominalError: Amount missing or outside the allowed range
            UserNotFoundError: User never sent /start
        """
        with LogContext(user_id=user_id, action="deposit_request"):
            nominal = self.validate_nominal(nominal)

            if await self.users.get_user(user_id, strict=True) is None:
                raise UserNotFoundError(details={"user_id": user_id})

            shop_config = await self.shop_config.load()
            now = self.clock()
            bonus = compute_bonus(nominal, shop_config.bonus_percentage)
            payment = PendingPayment(
                userId=user_id,
                nominal=nominal,
                bonusAmount=bonus,
                totalAdded=nominal + bonus,
                transactionId=generate_transaction_id(now),
                createdAt=now,
                username=username,
            )

            def apply(doc: dict) -> Optional[PendingPayment]:
                previous = doc.get(user_id)
                doc[user_id] = payment.to_doc()
                return PendingPayment.model_validate(previous) if previous else None

            replaced = await self.store.update(Table.PENDING_PAYMENTS, apply)

            if replaced:
                self._transition(replaced, PaymentState.PENDING, PaymentState.PENDING)
                # The old instruction message loses its buttons; nothing new is sent
                await self._close_instructions(
                    replaced,
                    DEPOSIT_SUPERSEDED.format(transaction_id=replaced.transaction_id),
                    send_if_missing=False,
                )
            else:
                self._transition(payment, PaymentState.NONE, PaymentState.PENDING)

            items = [
                f"User: @{h(username or 'N/A')} (ID: {user_id})",
                f"Transaction: {payment.transaction_id}",
                f"Nominal: {format_rupiah(payment.nominal)}",
                f"Bonus: {format_rupiah(payment.bonus_amount)}",
                f"Total: {format_rupiah(payment.total_added)}",
            ]
            self.audit.notify_admin_later(LOG_DEPOSIT_PENDING, items)
            self.audit.log_later(LOG_DEPOSIT_PENDING, items)

            return payment, replaced

    async def send_instructions(self, chat_id: str, payment: PendingPayment, replaced: bool = False) -> Optional[int]:
        """
        Sends the payment instructions (QR photo when configured) and
        stores the message id on the pending record.
        """
        text = DEPOSIT_INSTRUCTIONS.format(
            transaction_id=payment.transaction_id,
            nominal=format_rupiah(payment.nominal),
            bonus=format_rupiah(payment.bonus_amount),
            total=format_rupiah(payment.total_added),
            ttl=self.config.PAYMENT_TTL_MINUTES,
        )
        if replaced:
            text = f"{DEPOSIT_REPLACED_NOTE}\n\n{text}"

        keyboard = deposit_keyboard(payment.transaction_id)
        if self.config.QRIS_IMAGE_URL:
            result = await self.telegram.send_photo(chat_id, self.config.QRIS_IMAGE_URL, text, keyboard)
        else:
            result = await self.telegram.send_message(chat_id, text, keyboard)

        if not result["success"]:
            return None

        message_id = (result.get("result") or {}).get("message_id")
        if message_id is not None:
            await self.attach_message(payment.user_id, payment.transaction_id, message_id)
        return message_id

    async def attach_message(self, user_id: str, transaction_id: str, message_id: int) -> bool:
        def apply(doc: dict) -> bool:
            raw = doc.get(user_id)
            if not raw or raw.get("transactionId") != transaction_id:
                return False
            raw["messageId"] = message_id
            return True

        try:
            return await self.store.update(Table.PENDING_PAYMENTS, apply)
        except PersistenceError as e:
            logger.warning(f"Instruction message id not stored: {e.message}", extra={"user_id": user_id})
            return False

    async def _claim(self, user_id: str, transaction_id: Optional[str] = None) -> PendingPayment:
        """
        Pops the user's pending record. With a transaction_id, only that
        exact request is claimed; a newer record is left in place.
        """
        def apply(doc: dict) -> PendingPayment:
            raw = doc.get(user_id)
            if not raw:
                raise NoPendingPaymentError(details={"user_id": user_id})
            if transaction_id is not None and raw.get("transactionId") != transaction_id:
                raise NoPendingPaymentError(
                    "Pending payment was replaced",
                    details={"user_id": user_id, "transaction_id": transaction_id, "stale": True}
                )
            del doc[user_id]
            return PendingPayment.model_validate(raw)

        return await self.store.update(Table.PENDING_PAYMENTS, apply)

    async def _restore(self, payment: PendingPayment):
        def apply(doc: dict):
            doc.setdefault(payment.user_id, payment.to_doc())

        try:
            await self.store.update(Table.PENDING_PAYMENTS, apply)
        except PersistenceError as e:
            logger.critical(
                f"Pending payment lost after failed credit, restore manually: {payment.to_doc()}",
                exc_info=e
            )

    async def confirm_payment(self, user_id: str, transaction_id: Optional[str] = None) -> DepositReceipt:
        """
        Confirms the user's pending deposit and credits the balance.

        Args:
            user_id: Depositing user
            transaction_id: When given, only this request may be confirmed

        Raises:
            NoPendingPaymentError: No live record (details["expired"] is
                True when the record had already outlived its TTL,
                details["stale"] when transaction_id was replaced)
            PersistenceError: Store unavailable
        """
        with LogContext(user_id=user_id, action="deposit_confirm", transaction_id=transaction_id):
            payment = await self._claim(user_id, transaction_id)

            if is_payment_expired(payment.created_at, self.clock(), self.config.PAYMENT_TTL_MINUTES):
                await self._expired(payment)
                raise NoPendingPaymentError(
                    "Pending payment expired",
                    details={"user_id": user_id, "expired": True, "transaction_id": payment.transaction_id}
                )

            try:
                user = await self.users.credit(user_id, payment.total_added)
            except PersistenceError:
                await self._restore(payment)
                raise

            self._transition(payment, PaymentState.PENDING, PaymentState.CONFIRMED)

            try:
                await self.shop_config.increment_transactions()
            except PersistenceError as e:
                logger.error(f"Transaction counter not incremented: {e.message}")

            await self._close_instructions(payment, DEPOSIT_CONFIRMED.format(
                transaction_id=payment.transaction_id,
                nominal=format_rupiah(payment.nominal),
                bonus=format_rupiah(payment.bonus_amount),
                total=format_rupiah(payment.total_added),
                balance=format_rupiah(user.balance),
            ))

            self.audit.log_later(LOG_DEPOSIT_CONFIRMED, [
                f"User: {h(user.display_name)} (ID: {user_id})",
                f"Transaction: {payment.transaction_id}",
                f"Nominal: {format_rupiah(payment.nominal)}",
                f"Bonus: {format_rupiah(payment.bonus_amount)}",
                f"Total: {format_rupiah(payment.total_added)}",
                f"New balance: {format_rupiah(user.balance)}",
            ])

            return DepositReceipt(payment=payment, balance_after=user.balance)

    async def cancel_payment(self, user_id: str, transaction_id: Optional[str] = None) -> PendingPayment:
        """
        Discards the user's pending deposit. The balance is unchanged.

        Raises:
            NoPendingPaymentError: No live record, or transaction_id no
                longer matches it
        """
        with LogContext(user_id=user_id, action="deposit_cancel", transaction_id=transaction_id):
            payment = await self._claim(user_id, transaction_id)
            self._transition(payment, PaymentState.PENDING, PaymentState.CANCELLED)

            await self._close_instructions(payment, DEPOSIT_CANCELLED.format(transaction_id=payment.transaction_id))

            self.audit.log_later(LOG_DEPOSIT_CANCELLED, [
                f"User: {user_id}",
                f"Transaction: {payment.transaction_id}",
            ])
            return payment

    async def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """
        Removes every pending record older than the TTL.

        A record is only removed while it still holds the same
        transaction, so a request made during the sweep survives.

        Returns:
            Number of records expired
        """
        now = now or self.clock()
        expired = 0

        pending = await self.store.get(Table.PENDING_PAYMENTS)
        for user_id, raw in pending.items():
            try:
                payment = PendingPayment.model_validate(raw)
                if not is_payment_expired(payment.created_at, now, self.config.PAYMENT_TTL_MINUTES):
                    continue
                if await self._remove_if_current(payment):
                    await self._expired(payment)
                    expired += 1
            except Exception as e:
                logger.error(
                    f"Failed to expire pending payment of {user_id}: {e}",
                    extra={"user_id": user_id}
                )

        if expired:
            logger.info(f"Expired {expired} pending payment(s)")
        return expired

    async def _remove_if_current(self, payment: PendingPayment) -> bool:
        def apply(doc: dict) -> bool:
            raw = doc.get(payment.user_id)
            if not raw or raw.get("transactionId") != payment.transaction_id:
                return False
            del doc[payment.user_id]
            return True

        return await self.store.update(Table.PENDING_PAYMENTS, apply)

    async def _expired(self, payment: PendingPayment):
        self._transition(payment, PaymentState.PENDING, PaymentState.EXPIRED)

        await self._close_instructions(payment, DEPOSIT_EXPIRED.format(transaction_id=payment.transaction_id))

        items = [
            f"User: {payment.user_id}",
            f"Transaction: {payment.transaction_id}",
        ]
        self.audit.notify_admin_later(LOG_DEPOSIT_EXPIRED, items)
        self.audit.log_later(LOG_DEPOSIT_EXPIRED, items)

    async def _close_instructions(self, payment: PendingPayment, text: str, send_if_missing: bool = True):
        """
        Replaces the instruction message (dropping its buttons); falls
        back to a new message when there is nothing to edit.
        """
        if payment.message_id is not None:
            if self.config.QRIS_IMAGE_URL:
                result = await self.telegram.edit_message_caption(payment.user_id, payment.message_id, text)
            else:
                result = await self.telegram.edit_message_text(payment.user_id, payment.message_id, text)
            if result["success"]:
                return

        if send_if_missing:
            await self.telegram.send_message(payment.user_id, text)
