"""Lounge and creator-lounge membership models."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class Lounge(Base):
    """Curated topic collection with its own relevancy threshold."""

    __tablename__ = "lounges"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False, index=True)
    theme_description = Column(Text, nullable=True)
    relevancy_threshold = Column(Integer, nullable=False, default=60)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    creator_links = relationship("CreatorLounge", back_populates="lounge", cascade="all, delete-orphan")


class CreatorLounge(Base):
    """Many-to-many membership edge between creators and lounges."""

    __tablename__ = "creator_lounges"
    __table_args__ = (UniqueConstraint("creator_id", "lounge_id", name="uq_creator_lounges_pair"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    creator_id = Column(String, ForeignKey("creators.id"), nullable=False, index=True)
    lounge_id = Column(String, ForeignKey("lounges.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    creator = relationship("Creator", back_populates="lounge_links")
    lounge = relationship("Lounge", back_populates="creator_links")
