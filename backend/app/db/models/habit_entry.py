"""Habit completion entry ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class HabitEntry(Base):
    __tablename__ = "habit_entries"
    __table_args__ = (
        Index("ix_habit_entries_user_id_date", "user_id", "entry_date"),
        Index("ix_habit_entries_habit_id", "habit_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    habit_id = Column(UUID(as_uuid=True), ForeignKey("habits.id", ondelete="CASCADE"), nullable=False)
    entry_date = Column(Date, nullable=False)
    completed = Column(Boolean, nullable=False, default=False, server_default=sa_text("false"))
    mood = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
