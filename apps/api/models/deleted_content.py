"""Suppression marker model (tombstone keyed by content identity)."""

import uuid

from sqlalchemy import Column, DateTime, String, UniqueConstraint
from sqlalchemy.sql import func

from database import Base


class DeletedContent(Base):
    """Presence of a row suppresses the matching content; absence means live."""

    __tablename__ = "deleted_content"
    __table_args__ = (
        UniqueConstraint("platform_content_id", "platform", "creator_id", name="uq_deleted_content_identity"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    platform_content_id = Column(String, nullable=False)
    platform = Column(String, nullable=False)
    creator_id = Column(String, nullable=False, index=True)
    deletion_reason = Column(String, nullable=False, default="low_relevancy")
    deleted_by = Column(String, nullable=True)
    deleted_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    title = Column(String, nullable=True)
    url = Column(String, nullable=True)
