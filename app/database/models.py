from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import Column, String, Text, Boolean, JSON, DateTime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Base class for all models
class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"
    # Firebase uid doubles as the primary key
    id = Column(String(128), primary_key=True)
    email = Column(Text, nullable=True, index=True)
    is_admin = Column(Boolean, default=False, nullable=False)
    fcm_token = Column(Text, nullable=True, index=True)
    token_updated_at = Column(DateTime(timezone=True), nullable=True)


class AdminToken(Base):
    __tablename__ = "admin_tokens"
    owner_id = Column(String(128), primary_key=True)
    token = Column(Text, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)


class NotificationQueueItem(Base):
    __tablename__ = "notification_queue"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    payload = Column(JSON, nullable=False)
    target_type = Column(String(32), nullable=False)
    processed = Column(Boolean, default=False, nullable=False, index=True)
    failed = Column(Boolean, default=False, nullable=False)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
