"""
DateTime utility functions for the credit ledger worker
"""

from datetime import datetime, timezone
from typing import Optional


def now_utc() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite hands them back without tzinfo)"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso_timestamp(timestamp_str: str) -> Optional[datetime]:
    """
    Parse ISO timestamp string to timezone-aware datetime object.
    Handles both 'Z' suffix and '+00:00' formats for UTC timestamps.
    """
    try:
        if timestamp_str.endswith("Z"):
            timestamp_str = timestamp_str.replace("Z", "+00:00")
        return ensure_utc(datetime.fromisoformat(timestamp_str))
    except (ValueError, TypeError, AttributeError):
        return None


def format_billing_date(value: datetime) -> str:
    """Long billing date, e.g. 'Monday, 05 January 2026'"""
    return value.strftime("%A, %d %B %Y")
