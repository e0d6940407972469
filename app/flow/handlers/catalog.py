"""
app/flow/handlers/catalog.py

Handles: catalog browsing and purchase

- /catalog, /buy and the catalog button list products grouped by name and price
- view:<key>[:<quantity>] shows one product group with a quantity stepper
- buy:<key>[:<quantity>] buys that many items and delivers their credentials
"""

from typing import Any, Dict

from app.core.logging import get_logger, LogContext
from app.flow.context import Incoming, ShopContext
from utils.constants import (
    CATALOG_EMPTY,
    CATALOG_HEADER,
    CATALOG_LINE,
    ERROR_STOCK_GONE,
    PRODUCT_DETAIL,
    PURCHASE_ACCOUNT,
    PURCHASE_SUCCESS,
)
from utils.format_utils import format_rupiah, h
from utils.keyboards import back_keyboard, catalog_keyboard, product_keyboard
from utils.time_utils import nice_time
from utils.validation_utils import MAX_PURCHASE_QUANTITY, parse_product_argument

logger = get_logger(__name__)


async def handle_catalog(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    groups = await ctx.catalog.list_grouped()
    if not groups:
        return {
            "message": CATALOG_EMPTY.format(admin=h(ctx.config.admin_contact)),
            "keyboard": back_keyboard(),
        }

    lines = [
        CATALOG_LINE.format(index=index, name=h(group.name), price=format_rupiah(group.price), count=group.count)
        for index, group in enumerate(groups, 1)
    ]
    return {
        "message": "\n\n".join([CATALOG_HEADER] + lines),
        "keyboard": catalog_keyboard(groups),
    }


async def handle_view(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    """
    view:<key>[:<quantity>] shows a product group with the quantity
    stepper. The quantity is clamped to 1..stock.
    """
    account_key, quantity = parse_product_argument(req.argument)
    found = await ctx.catalog.get_group(account_key)
    if found is None:
        return {"message": ERROR_STOCK_GONE, "keyboard": back_keyboard("catalog")}

    account, group = found
    limit = min(group.count, MAX_PURCHASE_QUANTITY)
    quantity = min(quantity, limit)
    user = await ctx.users.get_user(req.user_id)
    return {
        "message": PRODUCT_DETAIL.format(
            name=h(account.name),
            description=h(account.description or "-"),
            price=format_rupiah(account.price),
            count=group.count,
            quantity=quantity,
            total=format_rupiah(account.price * quantity),
            balance=format_rupiah(user.balance if user else 0),
        ),
        "keyboard": product_keyboard(account_key, quantity, limit),
    }


async def handle_buy(ctx: ShopContext, req: Incoming) -> Dict[str, Any]:
    """
    Buys the quantity shown on the button. Stock, registration and
    balance errors propagate to the dispatcher, which turns them into
    replies.
    """
    account_key, quantity = parse_product_argument(req.argument)
    with LogContext(user_id=req.user_id, action="buy"):
        receipt = await ctx.catalog.purchase_many(req.user_id, account_key, min(quantity, MAX_PURCHASE_QUANTITY))

        delivered = "\n\n".join(
            PURCHASE_ACCOUNT.format(
                index=index,
                email=h(account.email),
                password=h(account.password),
                note=h(account.note or "-"),
            )
            for index, account in enumerate(receipt.accounts, 1)
        )

        # Credentials go out as a new message so they stay in the chat history
        return {
            "message": PURCHASE_SUCCESS.format(
                name=h(receipt.account.name),
                quantity=receipt.quantity,
                accounts=delivered,
                total=format_rupiah(receipt.total),
                balance=format_rupiah(receipt.balance_after),
                time=nice_time(ctx.clock()),
            ),
            "keyboard": back_keyboard(),
            "edit": False,
        }
