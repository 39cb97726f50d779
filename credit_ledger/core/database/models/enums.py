"""
Enum models for SQLAlchemy

Statuses are stored as plain strings; these enums are the allowed values.
"""

from enum import Enum


class Service(str, Enum):
    """Metered services"""

    AI_API = "AI_API"
    CRAWL_API = "CRAWL_API"


class PackageStatus(str, Enum):
    """Credit purchase lifecycle states"""

    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"
    FROZEN = "FROZEN"
    PAST_DUE = "PAST_DUE"


class PaymentStatus(str, Enum):
    """Payment statuses reported by the payment gateway"""

    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class BillingType(str, Enum):
    ONE_TIME = "ONE_TIME"
    RECURRING = "RECURRING"


class BillingEventType(str, Enum):
    PROMOTION = "PROMOTION"
    DISCOUNT = "DISCOUNT"


class AdjustmentType(str, Enum):
    """How a promotion or discount value is applied to a price"""

    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class SubscriptionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"
    FROZEN = "FROZEN"
    PAST_DUE = "PAST_DUE"


class NotificationType(str, Enum):
    BILLING = "BILLING"
    USAGE = "USAGE"
    SYSTEM = "SYSTEM"


class OutboxStatus(str, Enum):
    """Email outbox delivery states"""

    PENDING = "PENDING"
    SENDING = "SENDING"
    SENT = "SENT"
    FAILED = "FAILED"
