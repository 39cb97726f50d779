"""
Base model class for SQLAlchemy models

Provides common functionality and base configuration for all models.
"""

import uuid
from typing import Any, Dict
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import declarative_base, declared_attr

from credit_ledger.shared.helpers.datetime_utils import now_utc

# Create the declarative base
Base = declarative_base()


class TimestampMixin:
    """Mixin for models that need created_at and updated_at timestamps"""

    # Python-side clock keeps sub-second ordering on every backend
    created_at = Column(
        "created_at", DateTime(timezone=True), default=now_utc, nullable=False, index=True
    )
    updated_at = Column(
        "updated_at",
        DateTime(timezone=True),
        default=now_utc,
        onupdate=now_utc,
        nullable=False,
    )


class IDMixin:
    """Mixin for models that need a primary key ID"""

    @declared_attr
    def id(cls):
        return Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))


class BaseModel(Base, IDMixin, TimestampMixin):
    """
    Base model class with common functionality.

    All models should inherit from this class to get:
    - Automatic ID generation
    - Created/updated timestamps
    - Common utility methods
    """

    __abstract__ = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert model instance to dictionary keyed by attribute name"""
        return {
            attr.key: getattr(self, attr.key)
            for attr in self.__mapper__.column_attrs
        }

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(id={self.id})>"


class ShopMixin:
    """Mixin for models that belong to a shop"""

    @declared_attr
    def shop_id(cls):
        return Column(
            "shop_id", String, ForeignKey("shops.id"), nullable=False, index=True
        )
