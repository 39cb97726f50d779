"""
Billing domain services
"""

from .package_catalog_service import PackageCatalogService, derive_feature_limits
from .billing_operations_service import BillingOperationsService
from .email_service import EmailService
from .notification_service import CreditNotificationService, NotificationDispatcher
from .credit_manager import CreditManager, package_status_for_payment
from .usage_service import UsageService
from .reporting_service import CreditReportingService

__all__ = [
    "PackageCatalogService",
    "derive_feature_limits",
    "BillingOperationsService",
    "EmailService",
    "CreditNotificationService",
    "NotificationDispatcher",
    "CreditManager",
    "package_status_for_payment",
    "UsageService",
    "CreditReportingService",
]
