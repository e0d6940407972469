"""
app/flow/dispatcher.py

Purpose: Central update dispatcher

- Receives validated Telegram updates from the webhook
- Applies the ban gate, then the spam gate (messages only)
- Routes to a session step, a command or a button handler
- Turns domain errors into user-facing replies
- Sends handler responses via the Telegram service
"""

from typing import Any, Awaitable, Callable, Dict, Optional

from app.core.exceptions import (
    AdminOnlyError,
    InsufficientBalanceError,
    InvalidNominalError,
    NoPendingPaymentError,
    PersistenceError,
    ShopError,
    StockGoneError,
    UserNotFoundError,
    ValidationError,
)
from app.core.logging import get_logger, LogContext
from app.flow.context import Incoming, ShopContext
from app.flow.handlers import admin, catalog, deposit, start
from app.flow.states import CallbackAction, SessionAction, parse_callback
from app.schemas.webhook import TelegramCallbackQuery, TelegramMessage, TelegramUpdate, split_command
from utils.constants import (
    ADMIN_HELP,
    BANNED_MESSAGE,
    BANNED_TOAST,
    DEPOSIT_EXPIRED,
    ERROR_ADMIN_ONLY,
    ERROR_GENERIC,
    ERROR_INSUFFICIENT_BALANCE,
    ERROR_INVALID_INPUT,
    ERROR_INVALID_NOMINAL,
    ERROR_NO_PENDING_PAYMENT,
    ERROR_DEPOSIT_REPLACED,
    ERROR_NOT_ENOUGH_STOCK,
    ERROR_NOT_REGISTERED,
    ERROR_STOCK_GONE,
    ERROR_STORAGE,
)
from utils.format_utils import format_rupiah, h
from utils.keyboards import main_menu_keyboard
from utils.time_utils import to_millis
from utils.validation_utils import RESTOCK_FORMAT, sanitize_input

logger = get_logger(__name__)

Handler = Callable[[ShopContext, Incoming], Awaitable[Optional[Dict[str, Any]]]]


COMMAND_HANDLERS: Dict[str, Handler] = {
    "start": start.handle_start,
    "help": start.handle_help,
    "balance": start.handle_balance,
    "cancel": start.handle_cancel,
    "catalog": catalog.handle_catalog,
    "buy": catalog.handle_catalog,
    "deposit": deposit.handle_deposit,
    # Admin
    "admin": admin.handle_admin,
    "restock": admin.handle_restock,
    "addbalance": admin.handle_add_balance,
    "ban": admin.handle_ban,
    "unban": admin.handle_unban,
    "broadcast": admin.handle_broadcast,
    "confirmdeposit": admin.handle_confirm_deposit,
    "canceldeposit": admin.handle_cancel_deposit,
    "setnotif": admin.handle_set_notif,
    "setbonus": admin.handle_set_bonus,
}

SESSION_HANDLERS: Dict[SessionAction, Handler] = {
    SessionAction.AWAITING_DEPOSIT_NOMINAL: deposit.handle_deposit_nominal,
    SessionAction.AWAITING_RESTOCK: admin.handle_restock_lines,
    SessionAction.AWAITING_BROADCAST: admin.handle_broadcast_text,
}


async def handle_noop(ctx: ShopContext, req: Incoming) -> Optional[Dict[str, Any]]:
    return None


CALLBACK_HANDLERS: Dict[CallbackAction, Handler] = {
    CallbackAction.HOME: start.handle_home,
    CallbackAction.CATALOG: catalog.handle_catalog,
    CallbackAction.VIEW: catalog.handle_view,
    CallbackAction.BUY: catalog.handle_buy,
    CallbackAction.BALANCE: start.handle_balance,
    CallbackAction.DEPOSIT: deposit.handle_deposit,
    CallbackAction.DEPOSIT_CONFIRM: deposit.handle_deposit_confirm,
    CallbackAction.DEPOSIT_CANCEL: deposit.handle_deposit_cancel,
    CallbackAction.ADMIN: admin.handle_admin_panel,
    CallbackAction.NOOP: handle_noop,
}

# Every session action and button must have a handler
_unrouted = (set(SessionAction) - set(SESSION_HANDLERS)) | (set(CallbackAction) - set(CALLBACK_HANDLERS))
if _unrouted:
    raise RuntimeError(f"No handler registered for: {sorted(a.value for a in _unrouted)}")


async def dispatch_update(update: TelegramUpdate, ctx: ShopContext) -> Dict[str, Any]:
    """
    Main dispatcher for incoming Telegram updates

    Args:
        update: Validated update
        ctx: Service context

    Returns:
        {"status": "..."} describing what happened
    """
    ctx.background.spawn(ctx.payments.sweep_expired(), name="sweep_expired")

    with LogContext(update_id=update.update_id):
        if update.callback_query is not None:
            return await dispatch_callback(update.callback_query, ctx)
        if update.message is not None:
            return await dispatch_message(update.message, ctx)

    logger.debug(f"Ignoring update {update.update_id} without message or callback")
    return {"status": "ignored"}


async def dispatch_message(message: TelegramMessage, ctx: ShopContext) -> Dict[str, Any]:
    sender = message.from_user
    if sender is None or sender.is_bot:
        return {"status": "ignored"}

    req = Incoming(
        user_id=sender.key,
        chat_id=str(message.chat.id),
        username=sender.username,
        first_name=sender.first_name,
        text=sanitize_input(message.text or ""),
        message_id=message.message_id,
        is_admin=ctx.auth.is_admin(sender.key),
    )

    with LogContext(user_id=req.user_id):
        if await ctx.moderation.is_banned(req.user_id):
            logger.info("Banned user denied", extra={"user_id": req.user_id})
            await ctx.telegram.send_message(req.chat_id, BANNED_MESSAGE.format(admin=h(ctx.config.admin_contact)))
            return {"status": "banned"}

        decision = await ctx.moderation.check_spam(req.user_id, to_millis(ctx.clock()), req.username)
        if not decision.allowed:
            return {"status": "auto_banned"}

        command, rest = split_command(req.text)
        session = ctx.sessions.get(req.user_id)

        if command is None and session is not None:
            handler = SESSION_HANDLERS[session.action]
            logger.info(f"🚦 Session step: {session.action.value}")
        elif command is not None:
            ctx.sessions.clear(req.user_id)
            handler = COMMAND_HANDLERS.get(command)
            if handler is None:
                logger.info(f"Unknown command /{command}")
                return {"status": "ignored"}
            req.argument = rest or None
            logger.info(f"🚦 Command: /{command}")
        elif req.is_admin:
            await send_response(ctx, req, {"message": ADMIN_HELP.format(restock_format=RESTOCK_FORMAT)})
            return {"status": "success"}
        else:
            # Plain text outside a session is not answered
            return {"status": "ignored"}

        response = await run_handler(handler, ctx, req)
        await send_response(ctx, req, response)
        return {"status": "success"}


async def dispatch_callback(query: TelegramCallbackQuery, ctx: ShopContext) -> Dict[str, Any]:
    sender = query.from_user
    chat_id = str(query.message.chat.id) if query.message else sender.key

    route = parse_callback(query.data)
    req = Incoming(
        user_id=sender.key,
        chat_id=chat_id,
        username=sender.username,
        first_name=sender.first_name,
        argument=route.argument,
        message_id=query.message.message_id if query.message else None,
        is_admin=ctx.auth.is_admin(sender.key),
    )

    with LogContext(user_id=req.user_id, action=route.action.value):
        if await ctx.moderation.is_banned(req.user_id):
            await ctx.telegram.answer_callback_query(query.id, BANNED_TOAST, show_alert=True)
            return {"status": "banned"}

        response = await run_handler(CALLBACK_HANDLERS[route.action], ctx, req)
        response = response or {}

        await ctx.telegram.answer_callback_query(query.id, response.get("toast"), response.get("alert", False))
        await send_response(ctx, req, response, edit=True)
        return {"status": "success"}


async def run_handler(handler: Handler, ctx: ShopContext, req: Incoming) -> Optional[Dict[str, Any]]:
    """
    Calls a handler, converting raised errors into a reply.
    """
    try:
        return await handler(ctx, req)
    except ShopError as e:
        logger.info(f"{handler.__name__} ended with {e.code}", extra={"user_id": req.user_id})
        return error_response(ctx, e)
    except Exception as e:
        logger.error(f"❌ Handler error in {handler.__name__}: {e}", exc_info=True)
        return {"message": ERROR_GENERIC, "edit": False}


def error_response(ctx: ShopContext, error: ShopError) -> Dict[str, Any]:
    """
    Maps a domain error to the message shown to the user.
    """
    details = error.details if isinstance(error.details, dict) else {}

    if isinstance(error, StockGoneError) and "available" in details:
        text = ERROR_NOT_ENOUGH_STOCK.format(available=details["available"], requested=details.get("requested", "-"))
    elif isinstance(error, StockGoneError):
        text = ERROR_STOCK_GONE
    elif isinstance(error, UserNotFoundError):
        text = ERROR_NOT_REGISTERED
    elif isinstance(error, InsufficientBalanceError):
        text = ERROR_INSUFFICIENT_BALANCE.format(
            price=format_rupiah(details.get("required", abs(details.get("delta", 0)))),
            balance=format_rupiah(details.get("balance", 0)),
        )
    elif isinstance(error, NoPendingPaymentError):
        if details.get("expired"):
            text = DEPOSIT_EXPIRED.format(transaction_id=details.get("transaction_id", "-"))
        elif details.get("stale"):
            text = ERROR_DEPOSIT_REPLACED
        else:
            text = ERROR_NO_PENDING_PAYMENT
    elif isinstance(error, InvalidNominalError):
        text = ERROR_INVALID_NOMINAL.format(
            min=format_rupiah(ctx.config.DEPOSIT_MIN),
            max=format_rupiah(ctx.config.DEPOSIT_MAX),
        )
    elif isinstance(error, AdminOnlyError):
        text = ERROR_ADMIN_ONLY
    elif isinstance(error, ValidationError):
        text = ERROR_INVALID_INPUT.format(reason=h(error.message))
    elif isinstance(error, PersistenceError):
        text = ERROR_STORAGE
    else:
        text = ERROR_GENERIC

    return {"message": text, "keyboard": main_menu_keyboard(ctx.config.ADMIN_USERNAME), "edit": False}


async def send_response(ctx: ShopContext, req: Incoming, response: Optional[Dict[str, Any]], edit: bool = False):
    """
    Delivers a handler response.

    Button presses edit the message that carried the button unless the
    response asks for a new message; an edit that fails falls back to
    sending.
    """
    if not response or not response.get("message"):
        return

    text = response["message"]
    keyboard = response.get("keyboard")

    if edit and response.get("edit", True) and req.message_id is not None:
        result = await ctx.telegram.edit_message_text(req.chat_id, req.message_id, text, keyboard)
        if result["success"]:
            return

    result = await ctx.telegram.send_message(req.chat_id, text, keyboard)
    if not result["success"]:
        logger.error(f"❌ Failed to deliver reply: {result.get('error')}", extra={"user_id": req.user_id})
