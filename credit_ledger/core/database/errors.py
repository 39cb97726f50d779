"""
Classification of driver errors raised inside ledger transactions
"""

import re
from typing import Optional

from sqlalchemy.exc import DBAPIError, IntegrityError

# SQLSTATE codes that mean "abort and run the transaction again"
RETRYABLE_SQLSTATES = {"40001", "40P01"}

_RETRYABLE_MESSAGES = (
    "could not serialize access",
    "deadlock detected",
    "database is locked",
    "database table is locked",
)

_SQLITE_UNIQUE = re.compile(r"UNIQUE constraint failed: ([\w\.]+(?:, [\w\.]+)*)")
_POSTGRES_KEY = re.compile(r"Key \(([^)]+)\)=")


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_serialization_failure(exc: BaseException) -> bool:
    """True for serialization conflicts, deadlocks and SQLite lock timeouts"""
    if not isinstance(exc, DBAPIError) or isinstance(exc, IntegrityError):
        return False
    if _sqlstate(exc) in RETRYABLE_SQLSTATES:
        return True
    message = str(exc).lower()
    return any(fragment in message for fragment in _RETRYABLE_MESSAGES)


def is_unique_violation(exc: IntegrityError) -> bool:
    if _sqlstate(exc) == "23505":
        return True
    message = str(exc).lower()
    return "unique constraint" in message or "duplicate key" in message


def conflict_field(exc: IntegrityError) -> str:
    """Name the column(s) behind a unique violation, as precisely as the driver allows"""
    message = str(exc)
    match = _SQLITE_UNIQUE.search(message)
    if match:
        return ", ".join(part.split(".")[-1] for part in match.group(1).split(", "))
    match = _POSTGRES_KEY.search(message)
    if match:
        return match.group(1)
    constraint = getattr(getattr(exc, "orig", None), "constraint_name", None)
    return constraint or "unknown"
