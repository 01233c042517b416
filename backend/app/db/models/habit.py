"""Tracked habit ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text as sa_text,
)
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.db.types import JSONBCompat


class Habit(Base):
    __tablename__ = "habits"
    __table_args__ = (
        Index("ix_habits_user_id", "user_id"),
        Index("ix_habits_transformer_id", "transformer_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(length=30), nullable=False, default="other")
    icon = Column(String(length=16), nullable=True)
    methodology = Column(String(length=20), nullable=False, default="boolean")
    frequency = Column(String(length=20), nullable=False, default="daily")
    weekly_target = Column(Integer, nullable=True)
    target_value = Column(Float, nullable=True)
    target_unit = Column(String(length=30), nullable=True)
    custom_unit = Column(Text, nullable=True)
    schedule_days = Column(JSONBCompat, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default=sa_text("true"))
    is_archived = Column(Boolean, nullable=False, default=False, server_default=sa_text("false"))
    activated_at = Column(DateTime(timezone=True), nullable=True)
    source = Column(String(length=30), nullable=True)
    transformer_id = Column(
        UUID(as_uuid=True),
        ForeignKey("transformers.id", ondelete="SET NULL"),
        nullable=True,
    )
    transformer_phase_index = Column(Integer, nullable=True)
    # Maintained by the habit tracking side; read-only here.
    completion_rate = Column(Float, nullable=False, default=0.0, server_default=sa_text("0"))
    current_streak = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
