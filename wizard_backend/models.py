# models.py

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from wizard_backend.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class Job(Base):
    """Job model for tracking video generation requests."""

    __tablename__ = "video_jobs"

    id = Column(String, primary_key=True, index=True)
    session_id = Column(String, index=True, nullable=False)
    video_type = Column(String, nullable=False)
    style = Column(String, nullable=False)
    duration = Column(String, nullable=False)
    format = Column(String, nullable=False)
    user_prompt = Column(Text, nullable=False)
    generated_prompt = Column(Text, nullable=True)
    status = Column(String, default="pending", nullable=False)  # pending, processing, completed, failed
    progress = Column(Integer, default=0, nullable=False)
    video_url = Column(String, nullable=True)
    thumbnail_url = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)
    is_demo = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)


class ApiKey(Base):
    """Stored provider credentials, consulted when the environment has none."""

    __tablename__ = "api_keys"

    key_name = Column(String, primary_key=True)
    key_value = Column(Text, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
