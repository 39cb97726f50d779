"""
SQLAlchemy models for the credit ledger
"""

from .base import Base, BaseModel, TimestampMixin, IDMixin, ShopMixin
from .enums import (
    Service,
    PackageStatus,
    PaymentStatus,
    BillingType,
    BillingEventType,
    AdjustmentType,
    SubscriptionStatus,
    NotificationType,
    OutboxStatus,
)
from .shop import Shop, AssociatedUser, AIModel
from .credit_package import (
    CreditPackage,
    Feature,
    AIFeature,
    CrawlFeature,
    Promotion,
    Discount,
    PackagePromotion,
    PackageDiscount,
)
from .usage import (
    Usage,
    ServiceUsage,
    AIUsageDetails,
    CrawlUsageDetails,
    usage_associated_users,
)
from .billing import (
    CreditPurchase,
    Payment,
    BillingEvent,
    Subscription,
    credit_purchase_associated_users,
)
from .notification import Notification, EmailOutbox

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "IDMixin",
    "ShopMixin",
    "Service",
    "PackageStatus",
    "PaymentStatus",
    "BillingType",
    "BillingEventType",
    "AdjustmentType",
    "SubscriptionStatus",
    "NotificationType",
    "OutboxStatus",
    "Shop",
    "AssociatedUser",
    "AIModel",
    "CreditPackage",
    "Feature",
    "AIFeature",
    "CrawlFeature",
    "Promotion",
    "Discount",
    "PackagePromotion",
    "PackageDiscount",
    "Usage",
    "ServiceUsage",
    "AIUsageDetails",
    "CrawlUsageDetails",
    "usage_associated_users",
    "CreditPurchase",
    "Payment",
    "BillingEvent",
    "Subscription",
    "credit_purchase_associated_users",
    "Notification",
    "EmailOutbox",
]
