from .credit_models import (
    Money,
    CreditPaymentInfo,
    PriceCalculation,
    PurchaseResult,
    ExpiredPackageFilters,
    ExpiredPackageSortField,
    SortOrder,
    AIRequestDetails,
    ServiceUsageResult,
)

__all__ = [
    "Money",
    "CreditPaymentInfo",
    "PriceCalculation",
    "PurchaseResult",
    "ExpiredPackageFilters",
    "ExpiredPackageSortField",
    "SortOrder",
    "AIRequestDetails",
    "ServiceUsageResult",
]
