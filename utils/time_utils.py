"""
utils/time_utils.py

Purpose: Time and expiry helpers

- UTC "now" helpers shared by the services
- Pending payment TTL checks
- Uptime and receipt timestamp formatting
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

# Receipts are shown in Jakarta time
DISPLAY_TZ = timezone(timedelta(hours=7), "WIB")

MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_millis(dt: datetime) -> int:
    """
    Epoch milliseconds for a datetime (naive values are treated as UTC).
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def is_payment_expired(created_at: datetime, now: datetime, ttl_minutes: int) -> bool:
    """
    Checks if a pending payment is older than its TTL.
    """
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return now - created_at > timedelta(minutes=ttl_minutes)


def nice_time(dt: Optional[datetime] = None) -> str:
    """
    Formats a timestamp like "19 Oct 2026, 21:05 WIB".
    """
    dt = (dt or utc_now()).astimezone(DISPLAY_TZ)
    return f"{dt.day} {MONTHS[dt.month - 1]} {dt.year}, {dt.hour:02d}:{dt.minute:02d} WIB"


def format_uptime(seconds: int) -> str:
    """
    Formats a duration as "1d 2h 3m 4s".
    """
    seconds = max(int(seconds), 0)
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    return f"{days}d {hours}h {minutes}m {seconds}s"
