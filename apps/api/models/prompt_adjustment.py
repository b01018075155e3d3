"""Prompt adjustment suggestion model."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from database import Base


ADJUSTMENT_TYPES = ("keep", "filter", "borderline")


class PromptAdjustment(Base):
    """Suggested scoring rule for one lounge; activated only by a human."""

    __tablename__ = "prompt_adjustments"
    __table_args__ = (
        UniqueConstraint("lounge_id", "adjustment_text", name="uq_prompt_adjustments_lounge_text"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    lounge_id = Column(String, ForeignKey("lounges.id"), nullable=False, index=True)
    adjustment_type = Column(String, nullable=False)
    adjustment_text = Column(String, nullable=False)
    reasoning = Column(Text, nullable=True)
    corrections_addressed = Column(Integer, nullable=False, default=0)
    approved = Column(Boolean, nullable=False, default=False, index=True)
    active = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
