"""
Helper utilities
"""

from .datetime_utils import now_utc, ensure_utc, parse_iso_timestamp, format_billing_date
from .validation_utils import validate_email
from .decimal_utils import to_decimal, money_str

__all__ = [
    "now_utc",
    "ensure_utc",
    "parse_iso_timestamp",
    "format_billing_date",
    "validate_email",
    "to_decimal",
    "money_str",
]
