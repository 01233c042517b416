"""Transformer (goal plan) ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.db.types import JSONBCompat


class Transformer(Base):
    __tablename__ = "transformers"
    __table_args__ = (
        Index("ix_transformers_user_id_status", "user_id", "status"),
        Index("ix_transformers_suite_id", "suite_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(length=20), nullable=False, default="preview", server_default=sa_text("'preview'"))
    suite_id = Column(UUID(as_uuid=True), nullable=True)
    suite_index = Column(Integer, nullable=True)
    suite_name = Column(Text, nullable=True)
    # Full plan document: goal, system, progress, refinements, generation, appliedResources.
    document = Column(JSONBCompat, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
