"""
utils/keyboards.py

Purpose: Telegram inline keyboard builders

- Constructs reply_markup payloads for the Bot API
- Keeps callback_data strings in one place
"""

from typing import Any, Dict, List, Optional

from app.models.account import CatalogGroup
from utils.constants import (
    BUTTON_CATALOG,
    BUTTON_DEPOSIT,
    BUTTON_BALANCE,
    BUTTON_CHAT_ADMIN,
    BUTTON_BACK,
    BUTTON_BUY,
    BUTTON_DECREASE,
    BUTTON_INCREASE,
    BUTTON_TAKE_ALL,
    BUTTON_CONFIRM_PAID,
    BUTTON_CANCEL,
    BUTTON_ADMIN_STOCK,
    BUTTON_ADMIN_PENDING,
    BUTTON_ADMIN_SPAM,
)
from utils.format_utils import format_rupiah


def button(text: str, callback_data: Optional[str] = None, url: Optional[str] = None) -> Dict[str, str]:
    """
    Creates one inline button. Exactly one of callback_data / url is used.
    """
    if url:
        return {"text": text, "url": url}
    return {"text": text, "callback_data": callback_data or "noop"}


def inline_keyboard(rows: List[List[Dict[str, str]]]) -> Dict[str, Any]:
    return {"inline_keyboard": rows}


def main_menu_keyboard(admin_username: str = "") -> Dict[str, Any]:
    """
    Start menu: catalog, deposit, balance and a chat link to the admin.
    """
    rows = [
        [button(BUTTON_CATALOG, "catalog")],
        [button(BUTTON_DEPOSIT, "deposit"), button(BUTTON_BALANCE, "balance")],
    ]
    if admin_username:
        rows.append([button(BUTTON_CHAT_ADMIN, url=f"https://t.me/{admin_username.lstrip('@')}")])
    return inline_keyboard(rows)


def back_keyboard(callback_data: str = "home") -> Dict[str, Any]:
    return inline_keyboard([[button(BUTTON_BACK, callback_data)]])


def catalog_keyboard(groups: List[CatalogGroup]) -> Dict[str, Any]:
    """
    One row per product group; the button opens the group's detail view.
    """
    rows = [
        [button(f"{index}. {group.name} - {format_rupiah(group.price)} ({group.count})", f"view:{group.sample_key}")]
        for index, group in enumerate(groups, 1)
    ]
    rows.append([button(BUTTON_BACK, "home")])
    return inline_keyboard(rows)


def product_keyboard(account_key: str, quantity: int = 1, stock: int = 1) -> Dict[str, Any]:
    """
    Quantity stepper (➖ n ➕, TAKE ALL) plus the buy button. Each view
    button carries the quantity it leads to; at a bound it is a noop.
    """
    def step(text: str, target: int) -> Dict[str, str]:
        return button(text, f"view:{account_key}:{target}" if target != quantity else "noop")

    return inline_keyboard([
        [
            step(BUTTON_DECREASE, max(1, quantity - 1)),
            button(str(quantity), "noop"),
            step(BUTTON_INCREASE, min(stock, quantity + 1)),
        ],
        [step(BUTTON_TAKE_ALL, stock)],
        [button(BUTTON_BUY, f"buy:{account_key}:{quantity}")],
        [button(BUTTON_BACK, "catalog")],
    ])


def deposit_keyboard(transaction_id: str) -> Dict[str, Any]:
    """
    Pay / cancel buttons bound to one deposit request by its transaction id.
    """
    return inline_keyboard([
        [
            button(BUTTON_CONFIRM_PAID, f"deposit_confirm:{transaction_id}"),
            button(BUTTON_CANCEL, f"deposit_cancel:{transaction_id}"),
        ],
    ])


def admin_keyboard() -> Dict[str, Any]:
    return inline_keyboard([
        [button(BUTTON_ADMIN_STOCK, "admin:stock"), button(BUTTON_ADMIN_PENDING, "admin:pending")],
        [button(BUTTON_ADMIN_SPAM, "admin:spam")],
    ])
