"""Bright Data snapshot (vendor job handle) model."""

from sqlalchemy import Column, DateTime, Integer, JSON, String, Text
from sqlalchemy.sql import func

from database import Base


SNAPSHOT_STATUSES = ("pending", "running", "ready", "processed", "failed")
OPEN_SNAPSHOT_STATUSES = ("pending", "running", "ready")


class BrightDataSnapshot(Base):
    """Opaque vendor collection job tracked until processed or failed."""

    __tablename__ = "brightdata_snapshots"

    snapshot_id = Column(String, primary_key=True)
    dataset_id = Column(String, nullable=True)
    platform = Column(String, nullable=False, default="linkedin", index=True)
    status = Column(String, nullable=False, default="pending", index=True)
    creator_urls_json = Column(JSON, nullable=True)
    metadata_json = Column(JSON, nullable=True)
    poll_attempts = Column(Integer, nullable=False, default=0)
    posts_retrieved = Column(Integer, nullable=True)
    error = Column(Text, nullable=True)
    error_code = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    last_checked_at = Column(DateTime(timezone=True), nullable=True)
    next_check_at = Column(DateTime(timezone=True), nullable=True, index=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
