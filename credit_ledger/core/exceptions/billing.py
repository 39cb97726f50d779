"""
Credit ledger domain errors

Every ledger failure carries an ErrorCode so callers branch on the code
instead of comparing message text.
"""

from enum import Enum
from typing import Any, Dict, Optional

from .base import CreditLedgerException


class ErrorCode(str, Enum):
    """Discriminator for ledger errors"""

    SHOP_NOT_FOUND = "SHOP_NOT_FOUND"
    PACKAGE_NOT_FOUND = "PACKAGE_NOT_FOUND"
    PURCHASE_NOT_FOUND = "PURCHASE_NOT_FOUND"
    PAYMENT_NOT_FOUND = "PAYMENT_NOT_FOUND"
    ASSOCIATED_USER_NOT_FOUND = "ASSOCIATED_USER_NOT_FOUND"
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    CONFLICT = "CONFLICT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    SERIALIZATION_FAILURE = "SERIALIZATION_FAILURE"
    EMAIL_ERROR = "EMAIL_ERROR"


class LedgerError(CreditLedgerException):
    """Base class for credit ledger errors"""

    code: ErrorCode = ErrorCode.VALIDATION_ERROR

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message, self.code.value, details, cause)


class ShopNotFoundError(LedgerError):
    code = ErrorCode.SHOP_NOT_FOUND

    def __init__(self, shop_name: Optional[str] = None):
        super().__init__("Shop not found", {"shop_name": shop_name})
        self.shop_name = shop_name


class PackageNotFoundError(LedgerError):
    code = ErrorCode.PACKAGE_NOT_FOUND

    def __init__(self, package_ref: Optional[str] = None):
        super().__init__("Package not found", {"package": package_ref})
        self.package_ref = package_ref


class PurchaseNotFoundError(LedgerError):
    code = ErrorCode.PURCHASE_NOT_FOUND

    def __init__(self, purchase_id: Optional[str] = None):
        super().__init__("Purchase not found", {"purchase_id": purchase_id})
        self.purchase_id = purchase_id


class PaymentNotFoundError(LedgerError):
    code = ErrorCode.PAYMENT_NOT_FOUND

    def __init__(self, transaction_id: Optional[str] = None):
        super().__init__("Payment not found", {"transaction_id": transaction_id})
        self.transaction_id = transaction_id


class AssociatedUserNotFoundError(LedgerError):
    code = ErrorCode.ASSOCIATED_USER_NOT_FOUND

    def __init__(self, email: str):
        super().__init__(
            f"Associated user not found for email: {email}", {"email": email}
        )
        self.email = email


class InsufficientCreditsError(LedgerError):
    code = ErrorCode.INSUFFICIENT_CREDITS

    def __init__(self, requested: Any = None, available: Any = None):
        super().__init__(
            "Insufficient credits",
            {"requested": str(requested), "available": str(available)},
        )
        self.requested = requested
        self.available = available


class RateLimitExceededError(LedgerError):
    code = ErrorCode.RATE_LIMIT_EXCEEDED

    def __init__(self, window: str, limit: int, reset_at: Any = None):
        super().__init__(
            f"Rate limit exceeded for {window} window",
            {"window": window, "limit": limit, "reset_at": str(reset_at)},
        )
        self.window = window
        self.limit = limit
        self.reset_at = reset_at


class ConflictError(LedgerError):
    """Unique constraint violation, with the violated field named"""

    code = ErrorCode.CONFLICT

    def __init__(self, field: str, cause: Optional[Exception] = None):
        super().__init__(
            f"Unique constraint failed: {field}", {"field": field}, cause
        )
        self.field = field


class LedgerValidationError(LedgerError):
    code = ErrorCode.VALIDATION_ERROR


class SerializationFailureError(LedgerError):
    """Serializable transaction kept conflicting after all retries"""

    code = ErrorCode.SERIALIZATION_FAILURE

    def __init__(self, operation: str, attempts: int, cause: Optional[Exception] = None):
        super().__init__(
            f"Transaction {operation} aborted after {attempts} attempts",
            {"operation": operation, "attempts": attempts},
            cause,
        )
        self.operation = operation
        self.attempts = attempts
