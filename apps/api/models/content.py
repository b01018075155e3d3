"""Content model for normalized creator posts."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from database import Base


PROCESSING_STATUSES = ("pending", "processed", "error")


class Content(Base):
    """Canonical content row; identity is (platform, platform_content_id, creator_id)."""

    __tablename__ = "content"
    __table_args__ = (
        UniqueConstraint("platform", "platform_content_id", "creator_id", name="uq_content_identity"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    creator_id = Column(String, ForeignKey("creators.id"), nullable=False, index=True)
    platform = Column(String, nullable=False, index=True)
    platform_content_id = Column(String, nullable=False)
    title = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    content_body = Column(Text, nullable=True)
    url = Column(String, nullable=False)
    published_at = Column(DateTime(timezone=True), nullable=True, index=True)
    media_urls_json = Column(JSON, nullable=True)
    engagement_json = Column(JSON, nullable=True)
    reference_type = Column(String, nullable=True)
    referenced_content_json = Column(JSON, nullable=True)
    content_hash = Column(String, nullable=True, index=True)
    is_primary = Column(Boolean, nullable=False, default=True)
    processing_status = Column(String, nullable=False, default="processed", index=True)
    relevancy_score = Column(Integer, nullable=True)
    relevancy_reason = Column(Text, nullable=True)
    relevancy_checked_at = Column(DateTime(timezone=True), nullable=True, index=True)
    manually_approved = Column(Boolean, nullable=False, default=False, index=True)
    manually_approved_by = Column(String, nullable=True)
    manually_approved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class ContentLoungeScore(Base):
    """Per-lounge relevancy score ledger for a content item."""

    __tablename__ = "content_lounge_scores"
    __table_args__ = (UniqueConstraint("content_id", "lounge_id", name="uq_content_lounge_scores_pair"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    content_id = Column(String, ForeignKey("content.id"), nullable=False, index=True)
    lounge_id = Column(String, ForeignKey("lounges.id"), nullable=False, index=True)
    score = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)
    checked_at = Column(DateTime(timezone=True), nullable=False)
