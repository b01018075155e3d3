"""Lounge digest subscription model."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.sql import func

from database import Base


class LoungeDigestSubscription(Base):
    """Recipient opted in to a lounge's periodic digest."""

    __tablename__ = "lounge_digest_subscriptions"
    __table_args__ = (UniqueConstraint("user_id", "lounge_id", name="uq_lounge_digest_subscriptions_pair"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    lounge_id = Column(String, ForeignKey("lounges.id"), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    last_sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
