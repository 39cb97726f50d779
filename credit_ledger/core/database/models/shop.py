"""
Shop and identity models for SQLAlchemy
"""

from sqlalchemy import Column, String, Boolean, ForeignKey, Index
from sqlalchemy.orm import relationship

from .base import BaseModel, ShopMixin


class Shop(BaseModel):
    """A storefront tenant"""

    __tablename__ = "shops"

    shop_name = Column(String(255), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=True)
    currency_code = Column(String(3), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    associated_users = relationship("AssociatedUser", back_populates="shop")
    credit_purchases = relationship("CreditPurchase", back_populates="shop")
    subscriptions = relationship("Subscription", back_populates="shop")

    def __repr__(self) -> str:
        return f"<Shop(shop_name={self.shop_name})>"


class AssociatedUser(BaseModel, ShopMixin):
    """A Shopify staff account seen through an online session"""

    __tablename__ = "associated_users"

    # External Shopify user id
    user_id = Column(String(64), unique=True, nullable=False)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    locale = Column(String(16), nullable=True)
    account_owner = Column(Boolean, default=False, nullable=False)
    collaborator = Column(Boolean, default=False, nullable=False)
    email_verified = Column(Boolean, default=False, nullable=False)
    # True while the user holds a live online session for the shop
    is_active = Column(Boolean, default=True, nullable=False)

    shop = relationship("Shop", back_populates="associated_users")

    __table_args__ = (Index("ix_associated_user_shop_active", "shop_id", "is_active"),)


class AIModel(BaseModel):
    """AI model catalog; the newest active row seeds usage records"""

    __tablename__ = "ai_models"

    name = Column(String(255), nullable=False, unique=True)
    provider = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
