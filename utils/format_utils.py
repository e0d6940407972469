"""
utils/format_utils.py

Purpose: Text formatting for Telegram HTML messages
"""

import html


def format_rupiah(amount: int) -> str:
    """
    Formats an integer amount as "Rp 1.250.000".
    """
    sign = "-" if amount < 0 else ""
    return f"{sign}Rp {abs(int(amount)):,}".replace(",", ".")


def h(value: object) -> str:
    """HTML-escape dynamic values for ParseMode.HTML messages."""
    return html.escape(str(value), quote=False)


def quote_block(title: str, items: list) -> str:
    """
    Audit log layout: a bold title followed by "> item" lines.
    """
    lines = [f"<b>{title}</b>"]
    lines.extend(f"> {item}" for item in items)
    return "\n".join(lines)
