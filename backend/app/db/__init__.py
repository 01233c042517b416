"""Declarative base plus the user, habit and transformer models."""

from app.db.base import Base
from app.db import models  # noqa: F401  (imported for side effects)

__all__ = ["Base"]
