"""
Billing models for SQLAlchemy

Represents credit purchases, payments, billing events and subscriptions.
"""

from sqlalchemy import (
    Column,
    String,
    ForeignKey,
    Numeric,
    Text,
    DateTime,
    JSON,
    Table,
    Index,
)
from sqlalchemy.orm import relationship

from .base import Base, BaseModel, ShopMixin
from .enums import PackageStatus, PaymentStatus, BillingType, SubscriptionStatus


credit_purchase_associated_users = Table(
    "credit_purchase_associated_users",
    Base.metadata,
    Column(
        "credit_purchase_id",
        String,
        ForeignKey("credit_purchases.id"),
        primary_key=True,
    ),
    Column(
        "associated_user_id",
        String,
        ForeignKey("associated_users.id"),
        primary_key=True,
    ),
)


class CreditPurchase(BaseModel, ShopMixin):
    """A bought package; only `status` and `expired_at` change after creation"""

    __tablename__ = "credit_purchases"

    credit_package_id = Column(
        String, ForeignKey("credit_packages.id"), nullable=False, index=True
    )
    # Package fields frozen at purchase time (money as strings)
    purchase_snapshot = Column(JSON, nullable=False)
    status = Column(
        String(32), default=PackageStatus.ACTIVE.value, nullable=False, index=True
    )
    shopify_purchase_id = Column(String(255), unique=True, nullable=True)
    expired_at = Column(DateTime(timezone=True), nullable=True, index=True)

    shop = relationship("Shop", back_populates="credit_purchases")
    credit_package = relationship("CreditPackage", back_populates="purchases")
    usages = relationship(
        "Usage", back_populates="credit_purchase", order_by="Usage.created_at"
    )
    payment = relationship("Payment", back_populates="credit_purchase", uselist=False)
    billing_events = relationship(
        "BillingEvent",
        back_populates="credit_purchase",
        order_by="BillingEvent.created_at",
    )
    associated_users = relationship(
        "AssociatedUser", secondary=credit_purchase_associated_users
    )

    __table_args__ = (
        Index("ix_credit_purchase_shop_status", "shop_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<CreditPurchase(id={self.id}, status={self.status})>"

    @property
    def snapshot_credit_amount(self) -> int:
        return int((self.purchase_snapshot or {}).get("credit_amount") or 0)


class Payment(BaseModel, ShopMixin):
    """Only `status` changes after creation"""

    __tablename__ = "payments"

    credit_purchase_id = Column(
        String, ForeignKey("credit_purchases.id"), unique=True, nullable=True
    )
    subscription_id = Column(String, ForeignKey("subscriptions.id"), nullable=True)

    amount = Column(Numeric(12, 2), nullable=False)
    adjusted_amount = Column(Numeric(12, 2), default=0, nullable=False)
    currency = Column(String(3), default="USD", nullable=False)
    billing_type = Column(String(32), default=BillingType.ONE_TIME.value, nullable=False)
    status = Column(
        String(32), default=PaymentStatus.PENDING.value, nullable=False, index=True
    )
    shopify_transaction_id = Column(String(255), unique=True, nullable=True)

    credit_purchase = relationship("CreditPurchase", back_populates="payment")
    subscription = relationship("Subscription", back_populates="payments")


class BillingEvent(BaseModel):
    """Append-only audit row for an applied promotion or discount"""

    __tablename__ = "billing_events"

    credit_purchase_id = Column(
        String, ForeignKey("credit_purchases.id"), nullable=False, index=True
    )
    type = Column(String(32), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(Text, nullable=True)
    promotion_id = Column(String, ForeignKey("promotions.id"), nullable=True)
    discount_id = Column(String, ForeignKey("discounts.id"), nullable=True)

    credit_purchase = relationship("CreditPurchase", back_populates="billing_events")
    promotion = relationship("Promotion")
    discount = relationship("Discount")


class Subscription(BaseModel, ShopMixin):
    __tablename__ = "subscriptions"

    plan_name = Column(String(255), nullable=True)
    status = Column(
        String(32), default=SubscriptionStatus.ACTIVE.value, nullable=False, index=True
    )
    credit_balance = Column(Numeric(14, 4), default=0, nullable=False)
    current_period_end = Column(DateTime(timezone=True), nullable=True)

    shop = relationship("Shop", back_populates="subscriptions")
    usages = relationship("Usage", back_populates="subscription")
    payments = relationship("Payment", back_populates="subscription")
