"""
Notification and email outbox models for SQLAlchemy
"""

from sqlalchemy import Column, String, Boolean, ForeignKey, Integer, Text, DateTime, JSON, Index

from .base import BaseModel, ShopMixin
from .enums import NotificationType, OutboxStatus


class Notification(BaseModel, ShopMixin):
    """In-app notification shown to the merchant"""

    __tablename__ = "notifications"

    type = Column(String(32), default=NotificationType.BILLING.value, nullable=False)
    title = Column(String(512), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)


class EmailOutbox(BaseModel, ShopMixin):
    """Email queued by a committed transaction, delivered afterwards"""

    __tablename__ = "email_outbox"

    credit_purchase_id = Column(
        String, ForeignKey("credit_purchases.id"), nullable=True, index=True
    )
    template = Column(String(64), nullable=False)
    recipient = Column(String(255), nullable=True)
    payload = Column(JSON, nullable=False)
    status = Column(String(16), default=OutboxStatus.PENDING.value, nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_email_outbox_status", "status"),)
