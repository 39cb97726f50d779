"""
Database-related exceptions
"""

from .base import CreditLedgerException
from typing import Optional, Dict, Any


class DatabaseError(CreditLedgerException):
    """Base exception for database errors"""

    def __init__(
        self,
        message: str,
        error_code: str = "DATABASE_ERROR",
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            message=message, error_code=error_code, details=details, cause=cause
        )


class DatabaseConnectionError(DatabaseError):
    """Raised when database connection fails"""

    def __init__(
        self,
        message: str,
        connection_details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            error_code="DATABASE_CONNECTION_ERROR",
            details={"connection_details": connection_details},
            cause=cause,
        )


class DatabaseTransactionError(DatabaseError):
    """Raised when a transaction cannot start or finish in time"""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            error_code="DATABASE_TRANSACTION_ERROR",
            details={"operation": operation},
            cause=cause,
        )
