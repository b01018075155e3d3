"""Correction analysis run model."""

import uuid

from sqlalchemy import Column, DateTime, Integer, JSON, String
from sqlalchemy.sql import func

from database import Base


class RelevancyAnalysisRun(Base):
    """Execution record for a correction analysis pass."""

    __tablename__ = "relevancy_analysis_runs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    corrections_analyzed = Column(Integer, nullable=False, default=0)
    suggestions_generated = Column(Integer, nullable=False, default=0)
    failed_lounges = Column(Integer, nullable=False, default=0)
    analysis_summary_json = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
