"""
Usage ledger models for SQLAlchemy

One Usage per purchase (or per subscription). Its ServiceUsage holds the
per-service counters used for quota and rate-limit accounting.
"""

from sqlalchemy import (
    Column,
    String,
    ForeignKey,
    Integer,
    Numeric,
    DateTime,
    JSON,
    Table,
)
from sqlalchemy.orm import relationship

from .base import Base, BaseModel, ShopMixin
from .enums import Service


usage_associated_users = Table(
    "usage_associated_users",
    Base.metadata,
    Column("usage_id", String, ForeignKey("usages.id"), primary_key=True),
    Column(
        "associated_user_id",
        String,
        ForeignKey("associated_users.id"),
        primary_key=True,
    ),
)


class Usage(BaseModel, ShopMixin):
    __tablename__ = "usages"

    credit_purchase_id = Column(
        String, ForeignKey("credit_purchases.id"), nullable=True, index=True
    )
    subscription_id = Column(
        String, ForeignKey("subscriptions.id"), nullable=True, index=True
    )

    credits_used = Column(Numeric(14, 4), default=0, nullable=False)
    total_credits = Column(Numeric(14, 4), default=0, nullable=False)
    total_remaining_credits = Column(Numeric(14, 4), default=0, nullable=False)

    model_name = Column(String(255), nullable=True)
    input_tokens = Column(Integer, default=0, nullable=False)
    output_tokens = Column(Integer, default=0, nullable=False)
    usage_metadata = Column("metadata", JSON, nullable=True)

    credit_purchase = relationship("CreditPurchase", back_populates="usages")
    subscription = relationship("Subscription", back_populates="usages")
    service_usage = relationship(
        "ServiceUsage", back_populates="usage", uselist=False
    )
    associated_users = relationship("AssociatedUser", secondary=usage_associated_users)


class ServiceUsage(BaseModel):
    __tablename__ = "service_usages"

    usage_id = Column(String, ForeignKey("usages.id"), unique=True, nullable=False)

    usage = relationship("Usage", back_populates="service_usage")
    ai_usage_details = relationship(
        "AIUsageDetails", back_populates="service_usage", uselist=False
    )
    crawl_usage_details = relationship(
        "CrawlUsageDetails", back_populates="service_usage", uselist=False
    )


class AIUsageDetails(BaseModel):
    __tablename__ = "ai_usage_details"

    service_usage_id = Column(
        String, ForeignKey("service_usages.id"), unique=True, nullable=False
    )
    service = Column(String(32), default=Service.AI_API.value, nullable=False)
    model_name = Column(String(255), nullable=True)

    input_tokens_count = Column(Integer, default=0, nullable=False)
    output_tokens_count = Column(Integer, default=0, nullable=False)

    total_requests = Column(Integer, default=0, nullable=False)
    total_requests_used = Column(Integer, default=0, nullable=False)
    total_remaining_requests = Column(Integer, default=0, nullable=False)

    requests_per_minute_limit = Column(Integer, default=0, nullable=False)
    requests_per_day_limit = Column(Integer, default=0, nullable=False)
    remaining_requests_per_minute = Column(Integer, default=0, nullable=False)
    remaining_requests_per_day = Column(Integer, default=0, nullable=False)
    reset_time_for_minute_requests = Column(DateTime(timezone=True), nullable=True)
    reset_time_for_day_requests = Column(DateTime(timezone=True), nullable=True)

    tokens_consumed_per_minute = Column(Integer, default=0, nullable=False)
    tokens_consumed_per_day = Column(Integer, default=0, nullable=False)
    total_tokens = Column(Integer, default=0, nullable=False)
    total_tokens_used = Column(Integer, default=0, nullable=False)
    total_remaining_tokens = Column(Integer, default=0, nullable=False)

    total_credits = Column(Numeric(14, 4), default=0, nullable=False)
    total_credits_used = Column(Numeric(14, 4), default=0, nullable=False)
    total_remaining_credits = Column(Numeric(14, 4), default=0, nullable=False)

    last_token_usage_update_time = Column(DateTime(timezone=True), nullable=True)

    service_usage = relationship("ServiceUsage", back_populates="ai_usage_details")


class CrawlUsageDetails(BaseModel):
    __tablename__ = "crawl_usage_details"

    service_usage_id = Column(
        String, ForeignKey("service_usages.id"), unique=True, nullable=False
    )
    service = Column(String(32), default=Service.CRAWL_API.value, nullable=False)

    total_requests = Column(Integer, default=0, nullable=False)
    total_requests_used = Column(Integer, default=0, nullable=False)
    total_remaining_requests = Column(Integer, default=0, nullable=False)

    total_credits = Column(Numeric(14, 4), default=0, nullable=False)
    total_credits_used = Column(Numeric(14, 4), default=0, nullable=False)
    total_remaining_credits = Column(Numeric(14, 4), default=0, nullable=False)

    service_usage = relationship("ServiceUsage", back_populates="crawl_usage_details")
