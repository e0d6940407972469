"""
utils/validation_utils.py

Purpose: Input validation

- Amount parsing ("50.000", "Rp 50,000", "-5000")
- Telegram user id parsing
- Restock line parsing and email validation
- Product callback arguments (account key and quantity)
- Input sanitization
"""

import re
from typing import List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from app.models.account import Account

EMAIL_PATTERN = re.compile(r"^[^@\s|:]+@[^@\s|:]+\.[^@\s|:]+$")
USER_ID_PATTERN = re.compile(r"^-?\d{1,20}$")

MAX_PURCHASE_QUANTITY = 999

# Telegram callback_data is capped at 64 bytes: "view:<key>:<quantity>"
MAX_ACCOUNT_KEY_BYTES = 64 - len("view:") - len(f":{MAX_PURCHASE_QUANTITY}")

RESTOCK_FORMAT = "name|price|email|password|description|note"


def sanitize_input(text: str, max_length: int = 4000) -> str:
    """
    Trims whitespace, drops control characters (except newlines) and caps length.
    """
    if not text:
        return ""
    cleaned = "".join(ch for ch in text if ch == "\n" or ch >= " ")
    return cleaned.strip()[:max_length]


def parse_amount(text: str) -> Optional[int]:
    """
    Parses a positive whole amount. An "Rp" prefix is accepted and both
    dots and commas are read as thousand separators.

    Returns:
        The amount, or None if the text is not a positive integer
    """
    if not text:
        return None

    cleaned = text.strip().lower()
    if cleaned.startswith("rp"):
        cleaned = cleaned[2:].strip()
    cleaned = cleaned.replace(".", "").replace(",", "").replace("_", "").replace(" ", "")

    if not cleaned.isdigit():
        return None

    amount = int(cleaned)
    return amount if amount > 0 else None


def parse_signed_amount(text: str) -> Optional[int]:
    """
    Parses "+5000" / "-5000" / "5000" for balance adjustments.
    """
    if not text:
        return None

    cleaned = text.strip()
    sign = 1
    if cleaned[:1] in ("+", "-"):
        sign = -1 if cleaned[0] == "-" else 1
        cleaned = cleaned[1:]

    amount = parse_amount(cleaned)
    return sign * amount if amount is not None else None


def parse_user_id(text: str) -> Optional[str]:
    """
    Validates a Telegram user/chat id and returns it as a string.
    """
    if not text:
        return None
    candidate = text.strip()
    return candidate if USER_ID_PATTERN.match(candidate) else None


def parse_product_argument(argument: str) -> Tuple[str, int]:
    """
    Splits "<account key>[:<quantity>]" from view/buy callback data.
    Emails never contain ":", so a trailing number is the quantity.

    Returns:
        (account_key, quantity); quantity is 1 when absent and never below 1
    """
    key, separator, quantity = (argument or "").rpartition(":")
    if separator and quantity.isdigit():
        return key, max(1, int(quantity))
    return argument or "", 1


def is_valid_email(email: str) -> bool:
    return bool(email) and bool(EMAIL_PATTERN.match(email))


def parse_restock_line(line: str) -> Account:
    """
    Parses one restock line in the form name|price|email|password|description|note.
    Description and note are optional.

    Raises:
        ValueError: With a human readable reason
    """
    parts = [part.strip() for part in line.split("|")]
    if len(parts) < 4:
        raise ValueError(f"expected at least 4 fields ({RESTOCK_FORMAT})")

    name, price_text, email, password = parts[:4]
    description = parts[4] if len(parts) > 4 else ""
    note = "|".join(parts[5:]) if len(parts) > 5 else ""

    if not name:
        raise ValueError("name is empty")

    price = parse_amount(price_text)
    if price is None:
        raise ValueError(f"invalid price '{price_text}'")

    email = email.lower()
    if not is_valid_email(email):
        raise ValueError(f"invalid email '{email}'")
    if len(email.encode("utf-8")) > MAX_ACCOUNT_KEY_BYTES:
        raise ValueError(f"email '{email}' is too long")

    try:
        return Account(
            email=email,
            name=name,
            price=price,
            password=password,
            description=description,
            note=note,
        )
    except PydanticValidationError as e:
        raise ValueError(str(e)) from e


def parse_restock_lines(text: str) -> Tuple[List[Account], List[str]]:
    """
    Parses a block of restock lines.

    Returns:
        (accounts, errors) where errors are "line N: reason" strings
    """
    accounts: List[Account] = []
    errors: List[str] = []

    for number, raw in enumerate(sanitize_input(text).splitlines(), 1):
        line = raw.strip()
        if not line:
            continue
        try:
            accounts.append(parse_restock_line(line))
        except ValueError as e:
            errors.append(f"line {number}: {e}")

    return accounts, errors
