"""
app/flow/handlers/start.py

Handles: entry, main menu, help, balance, cancel

- /start registers the user and shows the main menu
- "home" button re-renders the main menu
- /balance, /help, /cancel
"""

from typing import Any, Dict, Optional

from app.core.logging import get_logger, LogContext
from app.flow.context import Incoming, ShopContext
from app.models.user import User
from utils.constants import (
    ADMIN_HELP,
    BALANCE_MESSAGE,
    ERROR_NOT_REGISTERED,
    HELP_MESSAGE,
    SESSION_CANCELLED,
    WELCOME_MESSAGE,
)
from utils.format_utils import format_rupiah, h
from utils.keyboards import back_keyboard, main_menu_keyboard
from utils.validation_utils import RESTOCK_FORMAT

logger = get_logger(__name__)


async def _welcome(ctx: ShopContext, req: Incoming, user: Optional[User]) -> Dict[str, Any]:
    return {
        "message": WELCOME_MESSAGE.format(
            bot_name=h(ctx.config.BOT_NAME),
            name=h(req.name),
            balance=format_rupiah(user.balance if user else 0),
            stock=await ctx.catalog.stock_count(),
        ),
        "keyboard": main_menu_keyboard(ctx.config.ADMIN_USERNAME),
    }


async def handle_start(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    """
    Registers the user on first contact and shows the main menu.
    """
    with LogContext(user_id=req.user_id, action="start"):
        user, created = await ctx.users.register(req.user_id, req.username)
        if created:
            logger.info("Welcome sent to new user")
        return await _welcome(ctx, req, user)


async def handle_home(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    return await _welcome(ctx, req, await ctx.users.get_user(req.user_id))


async def handle_help(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    text = HELP_MESSAGE.format(admin=h(ctx.config.admin_contact))
    if req.is_admin:
        text = f"{text}\n\n{ADMIN_HELP.format(restock_format=RESTOCK_FORMAT)}"
    return {"message": text, "keyboard": back_keyboard()}


async def handle_balance(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    user = await ctx.users.get_user(req.user_id)
    if user is None:
        return {"message": ERROR_NOT_REGISTERED}
    return {
        "message": BALANCE_MESSAGE.format(balance=format_rupiah(user.balance)),
        "keyboard": back_keyboard(),
    }


async def handle_cancel(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    # The dispatcher already cleared the session before routing the command
    return {"message": SESSION_CANCELLED, "keyboard": main_menu_keyboard(ctx.config.ADMIN_USERNAME)}
