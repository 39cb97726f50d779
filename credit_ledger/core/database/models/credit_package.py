"""
Credit package catalog models for SQLAlchemy

A package owns one Feature, which points at its AI and Crawl limits.
"""

from sqlalchemy import (
    Column,
    String,
    Boolean,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    DateTime,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import Service, AdjustmentType


class CreditPackage(BaseModel):
    __tablename__ = "credit_packages"

    name = Column(String(255), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    credit_amount = Column(Integer, nullable=False)
    price_per_credit = Column(Numeric(12, 4), nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), default="USD", nullable=False)
    is_custom = Column(Boolean, default=False, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    feature = relationship("Feature", back_populates="package", uselist=False)
    promotions = relationship("PackagePromotion", back_populates="package")
    discounts = relationship("PackageDiscount", back_populates="package")
    purchases = relationship("CreditPurchase", back_populates="credit_package")

    def __repr__(self) -> str:
        return f"<CreditPackage(name={self.name}, credit_amount={self.credit_amount})>"


class AIFeature(BaseModel):
    __tablename__ = "ai_features"

    service = Column(String(32), default=Service.AI_API.value, nullable=False)
    request_limits = Column(Integer, default=0, nullable=False)
    token_limits = Column(Integer, default=0, nullable=False)
    max_tokens = Column(Integer, default=0, nullable=False)
    credit_limits = Column(Numeric(14, 4), default=0, nullable=False)
    rpm = Column(Integer, default=0, nullable=False)
    rpd = Column(Integer, default=0, nullable=False)
    tpm = Column(Integer, default=0, nullable=False)
    tpd = Column(Integer, default=0, nullable=False)


class CrawlFeature(BaseModel):
    __tablename__ = "crawl_features"

    service = Column(String(32), default=Service.CRAWL_API.value, nullable=False)
    request_limits = Column(Integer, default=0, nullable=False)
    credit_limits = Column(Numeric(14, 4), default=0, nullable=False)


class Feature(BaseModel):
    __tablename__ = "features"

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    package_id = Column(
        String, ForeignKey("credit_packages.id"), unique=True, nullable=True
    )
    ai_feature_id = Column(String, ForeignKey("ai_features.id"), nullable=True)
    crawl_feature_id = Column(String, ForeignKey("crawl_features.id"), nullable=True)

    package = relationship("CreditPackage", back_populates="feature")
    ai_api = relationship("AIFeature")
    crawl_api = relationship("CrawlFeature")


class _AdjustmentColumns:
    """Shared shape of promotions and discounts"""

    code = Column(String(64), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(32), default=AdjustmentType.PERCENTAGE.value, nullable=False)
    value = Column(Numeric(12, 2), nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    usage_limit = Column(Integer, nullable=True)
    used_count = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class Promotion(_AdjustmentColumns, BaseModel):
    __tablename__ = "promotions"

    packages = relationship("PackagePromotion", back_populates="promotion")


class Discount(_AdjustmentColumns, BaseModel):
    __tablename__ = "discounts"

    # Null means any shop
    shop_id = Column(String, ForeignKey("shops.id"), nullable=True, index=True)

    packages = relationship("PackageDiscount", back_populates="discount")


class PackagePromotion(BaseModel):
    __tablename__ = "package_promotions"

    package_id = Column(String, ForeignKey("credit_packages.id"), nullable=False)
    promotion_id = Column(String, ForeignKey("promotions.id"), nullable=False)

    package = relationship("CreditPackage", back_populates="promotions")
    promotion = relationship("Promotion", back_populates="packages")

    __table_args__ = (UniqueConstraint("package_id", "promotion_id"),)


class PackageDiscount(BaseModel):
    __tablename__ = "package_discounts"

    package_id = Column(String, ForeignKey("credit_packages.id"), nullable=False)
    discount_id = Column(String, ForeignKey("discounts.id"), nullable=False)

    package = relationship("CreditPackage", back_populates="discounts")
    discount = relationship("Discount", back_populates="packages")

    __table_args__ = (UniqueConstraint("package_id", "discount_id"),)
