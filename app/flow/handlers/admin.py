"""
app/flow/handlers/admin.py

Handles: admin commands and console panels

- /admin console and admin:<panel> buttons
- /restock and /broadcast (inline text or a follow-up message)
- /addbalance, /ban, /unban
- /confirmdeposit, /canceldeposit
- /setnotif, /setbonus

Authorization happens in AdminService; the handlers only parse input
and render results.
"""

from typing import Any, Dict, Optional, Tuple

from app.core.logging import get_logger, LogContext
from app.flow.context import Incoming, ShopContext
from app.flow.states import Session, SessionAction
from utils.constants import (
    ADMIN_CONSOLE,
    ADMIN_DEPOSIT_CANCELLED,
    ADMIN_DEPOSIT_CONFIRMED,
    ADMIN_EMPTY_PANEL,
    ADMIN_PENDING_HEADER,
    ADMIN_PENDING_LINE,
    ADMIN_SPAM_HEADER,
    ADMIN_STOCK_HEADER,
    ADMIN_USAGE,
    ASK_BROADCAST,
    ASK_RESTOCK,
    BALANCE_ADJUSTED,
    BONUS_SET,
    BROADCAST_STARTED,
    LOG_CHANNEL_SET,
    RESTOCK_ERRORS,
    RESTOCK_RESULT,
    RESTOCK_SKIPPED,
    USER_BANNED_RESULT,
    USER_UNBANNED_RESULT,
)
from utils.format_utils import format_rupiah, h
from utils.keyboards import admin_keyboard
from utils.validation_utils import (
    RESTOCK_FORMAT,
    parse_restock_lines,
    parse_signed_amount,
    parse_user_id,
)

logger = get_logger(__name__)


def _usage(usage: str) -> Dict[str, Any]:
    return {"message": ADMIN_USAGE.format(usage=h(usage))}


def _split_target(argument: Optional[str]) -> Tuple[Optional[str], str]:
    """Splits "<user_id> rest" into (user_id, rest)."""
    parts = (argument or "").split(None, 1)
    if not parts:
        return None, ""
    return parse_user_id(parts[0]), parts[1].strip() if len(parts) > 1 else ""


# ============================================================
# CONSOLE
# ============================================================

async def handle_admin(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    overview = await ctx.admin.overview(req.user_id)
    return {
        "message": ADMIN_CONSOLE.format(
            users=overview.users,
            stock=overview.stock,
            transactions=overview.transactions,
        ),
        "keyboard": admin_keyboard(),
    }


async def handle_admin_panel(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    """admin:stock / admin:pending / admin:spam buttons."""
    panel = req.argument
    if panel == "stock":
        groups = await ctx.admin.stock_report(req.user_id)
        lines = [f"{h(g.name)} - {format_rupiah(g.price)}: <b>{g.count}</b>" for g in groups]
        header = ADMIN_STOCK_HEADER
    elif panel == "pending":
        now = ctx.clock()
        lines = [
            ADMIN_PENDING_LINE.format(
                user_id=p.user_id,
                transaction_id=p.transaction_id,
                total=format_rupiah(p.total_added),
                age=int((now - p.created_at).total_seconds() // 60),
            )
            for p in await ctx.admin.pending_report(req.user_id)
        ]
        header = ADMIN_PENDING_HEADER
    elif panel == "spam":
        banned, windows = await ctx.admin.spam_report(req.user_id)
        lines = [f"🚫 {h(u.display_name)} (<code>{u.id}</code>): {h(u.ban_reason or '-')}" for u in banned]
        lines += [f"⏱️ <code>{user_id}</code>: {count} msg" for user_id, count in sorted(windows.items())]
        header = ADMIN_SPAM_HEADER.format(limit=ctx.rate_limiter.limit, window=ctx.rate_limiter.window_ms)
    else:
        return await handle_admin(ctx, req)

    return {
        "message": "\n".join([header, ""] + (lines or [ADMIN_EMPTY_PANEL])),
        "keyboard": admin_keyboard(),
    }


# ============================================================
# RESTOCK
# ============================================================

async def _restock(ctx: ShopContext, req: Incoming, text: str) -> Dict[str, Any]:
    accounts, errors = parse_restock_lines(text)
    added, skipped = await ctx.admin.restock(req.user_id, accounts) if accounts else ([], [])

    parts = [RESTOCK_RESULT.format(added=len(added))]
    if skipped:
        parts.append(RESTOCK_SKIPPED.format(keys=h(", ".join(skipped))))
    if errors:
        parts.append(RESTOCK_ERRORS.format(errors=h("\n".join(errors))))
    return {"message": "\n\n".join(parts)}


async def handle_restock(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    ctx.auth.require_admin(req.user_id)
    if req.argument:
        return await _restock(ctx, req, req.argument)

    ctx.sessions.set(req.user_id, Session(SessionAction.AWAITING_RESTOCK))
    return {"message": ASK_RESTOCK.format(restock_format=RESTOCK_FORMAT)}


async def handle_restock_lines(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    ctx.sessions.clear(req.user_id)
    return await _restock(ctx, req, req.text)


# ============================================================
# BROADCAST
# ============================================================

async def _broadcast(ctx: ShopContext, req: Incoming, text: str) -> Dict[str, Any]:
    # The report follows as its own message once every user was tried
    ctx.admin.start_broadcast(req.user_id, req.chat_id, text)
    return {"message": BROADCAST_STARTED}


async def handle_broadcast(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    ctx.auth.require_admin(req.user_id)
    if req.argument:
        return await _broadcast(ctx, req, req.argument)

    ctx.sessions.set(req.user_id, Session(SessionAction.AWAITING_BROADCAST))
    return {"message": ASK_BROADCAST}


async def handle_broadcast_text(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    ctx.sessions.clear(req.user_id)
    return await _broadcast(ctx, req, req.text)


# ============================================================
# USERS
# ============================================================

async def handle_add_balance(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    ctx.auth.require_admin(req.user_id)
    user_id, rest = _split_target(req.argument)
    delta = parse_signed_amount(rest)
    if user_id is None or delta is None:
        return _usage("/addbalance <user_id> <±amount>")

    with LogContext(user_id=req.user_id, action="addbalance"):
        user = await ctx.admin.adjust_balance(req.user_id, user_id, delta)
        return {"message": BALANCE_ADJUSTED.format(user_id=user_id, balance=format_rupiah(user.balance))}


async def handle_ban(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    ctx.auth.require_admin(req.user_id)
    user_id, reason = _split_target(req.argument)
    if user_id is None:
        return _usage("/ban <user_id> [reason]")

    await ctx.admin.ban(req.user_id, user_id, reason or None)
    return {"message": USER_BANNED_RESULT.format(user_id=user_id)}


async def handle_unban(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    ctx.auth.require_admin(req.user_id)
    user_id, _ = _split_target(req.argument)
    if user_id is None:
        return _usage("/unban <user_id>")

    await ctx.admin.unban(req.user_id, user_id)
    return {"message": USER_UNBANNED_RESULT.format(user_id=user_id)}


# ============================================================
# DEPOSITS
# ============================================================

async def handle_confirm_deposit(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    ctx.auth.require_admin(req.user_id)
    user_id, _ = _split_target(req.argument)
    if user_id is None:
        return _usage("/confirmdeposit <user_id>")

    receipt = await ctx.admin.confirm_deposit(req.user_id, user_id)
    return {
        "message": ADMIN_DEPOSIT_CONFIRMED.format(
            transaction_id=receipt.payment.transaction_id,
            user_id=user_id,
            balance=format_rupiah(receipt.balance_after),
        )
    }


async def handle_cancel_deposit(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    ctx.auth.require_admin(req.user_id)
    user_id, _ = _split_target(req.argument)
    if user_id is None:
        return _usage("/canceldeposit <user_id>")

    payment = await ctx.admin.cancel_deposit(req.user_id, user_id)
    return {"message": ADMIN_DEPOSIT_CANCELLED.format(transaction_id=payment.transaction_id, user_id=user_id)}


# ============================================================
# SETTINGS
# ============================================================

async def handle_set_notif(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    ctx.auth.require_admin(req.user_id)
    chat_id, _ = _split_target(req.argument)
    if chat_id is None:
        return _usage("/setnotif <chat_id>")

    await ctx.admin.set_log_channel(req.user_id, chat_id)
    return {"message": LOG_CHANNEL_SET.format(chat_id=chat_id)}


async def handle_set_bonus(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    ctx.auth.require_admin(req.user_id)
    try:
        percentage = float((req.argument or "").strip().rstrip("%").replace(",", "."))
    except ValueError:
        return _usage("/setbonus <percent>")

    shop_config = await ctx.admin.set_bonus(req.user_id, percentage)
    return {"message": BONUS_SET.format(percentage=f"{shop_config.bonus_percentage:g}")}
