"""
Decimal helpers for money and credit amounts
"""

from decimal import Decimal, InvalidOperation
from typing import Any

_CENTS = Decimal("0.01")


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Coerce ints, floats, strings and Decimals; floats go through str to avoid binary noise"""
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    try:
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return default


def money_str(value: Any) -> str:
    """Two-decimal string for JSON snapshots"""
    return str(to_decimal(value).quantize(_CENTS))
