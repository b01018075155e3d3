"""Relevancy correction model (human override training signal)."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.sql import func

from database import Base


class RelevancyCorrection(Base):
    """Snapshot of a suppressed item taken when a curator restored it."""

    __tablename__ = "relevancy_corrections"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    content_id = Column(String, ForeignKey("content.id"), nullable=False, index=True)
    lounge_id = Column(String, ForeignKey("lounges.id"), nullable=False, index=True)
    original_score = Column(Integer, nullable=False, default=0)
    original_reason = Column(Text, nullable=True)
    restored_by = Column(String, nullable=True)
    content_snapshot_json = Column(JSON, nullable=False)
    processed = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
