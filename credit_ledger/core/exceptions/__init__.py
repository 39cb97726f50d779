"""
Custom exceptions for the credit ledger worker
"""

from .base import CreditLedgerException
from .config import ConfigurationError
from .database import DatabaseError, DatabaseConnectionError, DatabaseTransactionError
from .billing import (
    ErrorCode,
    LedgerError,
    ShopNotFoundError,
    PackageNotFoundError,
    PurchaseNotFoundError,
    PaymentNotFoundError,
    AssociatedUserNotFoundError,
    InsufficientCreditsError,
    RateLimitExceededError,
    ConflictError,
    LedgerValidationError,
    SerializationFailureError,
)
from .email import EmailServiceError, EMAIL_ERROR_CODES

__all__ = [
    "CreditLedgerException",
    "ConfigurationError",
    "DatabaseError",
    "DatabaseConnectionError",
    "DatabaseTransactionError",
    "ErrorCode",
    "LedgerError",
    "ShopNotFoundError",
    "PackageNotFoundError",
    "PurchaseNotFoundError",
    "PaymentNotFoundError",
    "AssociatedUserNotFoundError",
    "InsufficientCreditsError",
    "RateLimitExceededError",
    "ConflictError",
    "LedgerValidationError",
    "SerializationFailureError",
    "EmailServiceError",
    "EMAIL_ERROR_CODES",
]
