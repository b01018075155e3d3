"""Creator and creator profile URL models."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class Creator(Base):
    """A followed content source publishing on one or more platforms."""

    __tablename__ = "creators"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    display_name = Column(String, nullable=False)
    username = Column(String, nullable=True, index=True)
    content_type = Column(String, nullable=False, default="social")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    urls = relationship("CreatorUrl", back_populates="creator", cascade="all, delete-orphan")
    lounge_links = relationship("CreatorLounge", back_populates="creator", cascade="all, delete-orphan")


class CreatorUrl(Base):
    """External profile URL of a creator, one per platform."""

    __tablename__ = "creator_urls"
    __table_args__ = (UniqueConstraint("creator_id", "platform", name="uq_creator_urls_creator_platform"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    creator_id = Column(String, ForeignKey("creators.id"), nullable=False, index=True)
    platform = Column(String, nullable=False, index=True)
    url = Column(String, nullable=False, index=True)
    normalized_url = Column(String, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    creator = relationship("Creator", back_populates="urls")
