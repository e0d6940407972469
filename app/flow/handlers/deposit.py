"""
app/flow/handlers/deposit.py

Handles: balance top-up

- /deposit [amount] and the deposit button
- AWAITING_DEPOSIT_NOMINAL step (amount typed after the prompt)
- "I have paid" and "Cancel" buttons on the instruction message
"""

from typing import Any, Dict, Optional

from app.core.exceptions import InvalidNominalError
from app.core.logging import get_logger, LogContext
from app.flow.context import Incoming, ShopContext
from app.flow.states import Session, SessionAction
from utils.constants import (
    ASK_DEPOSIT_NOMINAL,
    ERROR_INVALID_NOMINAL,
    ERROR_NOT_REGISTERED,
    TOAST_DEPOSIT_CANCELLED,
    TOAST_DEPOSIT_CONFIRMED,
)
from utils.format_utils import format_rupiah
from utils.keyboards import back_keyboard
from utils.validation_utils import parse_amount

logger = get_logger(__name__)


async def _create_deposit(ctx: ShopContext, req: Incoming, nominal: Optional[int]) -> Optional[Dict[str, Any]]:
    payment, replaced = await ctx.payments.request_deposit(req.user_id, nominal, req.username)
    await ctx.payments.send_instructions(req.chat_id, payment, replaced is not None)
    return None


async def handle_deposit(ctx: ShopContext, req: Incoming) -> Optional[Dict[str, Any]]:
    """
    With an amount ("/deposit 50000") the request is created right away;
    otherwise the bot asks for the amount.
    """
    with LogContext(user_id=req.user_id, action="deposit"):
        if req.argument:
            return await _create_deposit(ctx, req, parse_amount(req.argument))

        if await ctx.users.get_user(req.user_id) is None:
            return {"message": ERROR_NOT_REGISTERED}

        shop_config = await ctx.shop_config.load()
        ctx.sessions.set(req.user_id, Session(SessionAction.AWAITING_DEPOSIT_NOMINAL))
        return {
            "message": ASK_DEPOSIT_NOMINAL.format(
                min=format_rupiah(ctx.config.DEPOSIT_MIN),
                max=format_rupiah(ctx.config.DEPOSIT_MAX),
                bonus=f"{shop_config.bonus_percentage:g}",
            ),
            "keyboard": back_keyboard(),
            "edit": False,
        }


async def handle_deposit_nominal(ctx: ShopContext, req: Incoming) -> Optional[Dict[str, Any]]:
    """
    Session step: the amount typed after the prompt. An invalid amount
    keeps the session open so the user can try again.
    """
    with LogContext(user_id=req.user_id, action="deposit_nominal"):
        try:
            response = await _create_deposit(ctx, req, parse_amount(req.text))
        except InvalidNominalError:
            return {
                "message": ERROR_INVALID_NOMINAL.format(
                    min=format_rupiah(ctx.config.DEPOSIT_MIN),
                    max=format_rupiah(ctx.config.DEPOSIT_MAX),
                )
            }

        ctx.sessions.clear(req.user_id)
        return response


async def handle_deposit_confirm(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    # The payment service edits the instruction message itself
    await ctx.payments.confirm_payment(req.user_id, req.argument)
    return {"toast": TOAST_DEPOSIT_CONFIRMED}


async def handle_deposit_cancel(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    await ctx.payments.cancel_payment(req.user_id, req.argument)
    return {"toast": TOAST_DEPOSIT_CANCELLED}
