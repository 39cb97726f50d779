"""
Base exception class for the credit ledger worker
"""

from typing import Optional, Dict, Any


class CreditLedgerException(Exception):
    """
    Base exception for all credit ledger errors.

    str() is the plain message ("Shop not found", ...) so callers can show it
    as-is; the discriminator travels separately in error_code.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(error_code={self.error_code!r}, message={self.message!r})"

    def to_dict(self) -> Dict[str, Any]:
        """Error payload for logs and API responses"""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "cause": str(self.cause) if self.cause else None,
            "exception_type": type(self).__name__,
        }
