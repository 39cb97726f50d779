"""
Credit Models for the Billing Domain
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

from credit_ledger.core.database.models import CreditPurchase, Payment


class Money(BaseModel):
    amount: Optional[Decimal] = None
    currency_code: Optional[str] = Field(default=None, alias="currencyCode")

    model_config = ConfigDict(populate_by_name=True)


class CreditPaymentInfo(BaseModel):
    """Payload for a custom credit package: a price and a credit count"""

    price: Optional[Money] = None
    credits: Optional[int] = None


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class ExpiredPackageSortField(str, Enum):
    CREATED_AT = "created_at"
    EXPIRED_AT = "expired_at"
    UPDATED_AT = "updated_at"


class ExpiredPackageFilters(BaseModel):
    """Filters for expired package queries; the date range applies to expired_at"""

    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    min_credits_used: Optional[Decimal] = None
    max_credits_used: Optional[Decimal] = None
    package_ids: Optional[List[str]] = None
    limit: int = Field(default=10, ge=1, le=100)
    offset: int = Field(default=0, ge=0)
    sort_by: ExpiredPackageSortField = ExpiredPackageSortField.EXPIRED_AT
    sort_order: SortOrder = SortOrder.DESC

    @model_validator(mode="after")
    def check_ranges(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        if (
            self.min_credits_used is not None
            and self.max_credits_used is not None
            and self.min_credits_used > self.max_credits_used
        ):
            raise ValueError("min_credits_used must not exceed max_credits_used")
        return self


class PriceCalculation(BaseModel):
    """Price of a package for one shop after promotions and discounts"""

    final_price: Decimal
    adjusted_amount: Decimal
    applied_promotions: List[Any] = Field(default_factory=list)
    applied_discounts: List[Any] = Field(default_factory=list)

    model_config = ConfigDict(arbitrary_types_allowed=True)


class PurchaseResult(BaseModel):
    credit_purchase: CreditPurchase
    payment: Payment
    outbox_id: Optional[str] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)


class AIRequestDetails(BaseModel):
    """Per-request token counts reported with AI usage"""

    model_name: Optional[str] = None
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)


class ServiceUsageResult(BaseModel):
    service: str
    requests: int
    credits_charged: Decimal
    purchases_charged: List[str] = Field(default_factory=list)
    expired_purchases: List[str] = Field(default_factory=list)
