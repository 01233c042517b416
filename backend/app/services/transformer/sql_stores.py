"""SQLAlchemy-backed implementations of the engine's storage interfaces.

Queries run synchronously on the request's session and block the event loop
while they execute. Running them in a thread pool would let the concurrently
gathered dossier sections touch one Session from several threads at once.
"""
from __future__ import annotations

from datetime import date
from typing import List
from uuid import UUID

from sqlalchemy import asc, func
from sqlalchemy.orm import Session

from app.db.models.habit import Habit
from app.db.models.habit_entry import HabitEntry
from app.db.models.journal_entry import JournalEntry
from app.db.models.transformer import Transformer
from app.db.models.user import User
from app.services.transformer.stores import (
    CommunicationPreferences,
    EntrySnapshot,
    EntryStore,
    HabitSnapshot,
    HabitStore,
    JournalSnapshot,
    JournalStore,
    ProfileStore,
)

PREFERENCE_CHOICES = {
    "tone": {"warm", "direct", "playful", "neutral"},
    "focus": {"wins", "patterns", "actionable", "balanced"},
    "verbosity": {"concise", "detailed"},
    "accountability": {"gentle", "honest", "tough"},
}


def _uuid(user_id: str) -> UUID:
    return user_id if isinstance(user_id, UUID) else UUID(str(user_id))


class SqlHabitStore(HabitStore):
    def __init__(self, db: Session) -> None:
        self._db = db

    async def list_active_habits(self, user_id: str) -> List[HabitSnapshot]:
        rows = (
            self._db.query(Habit)
            .filter(Habit.user_id == _uuid(user_id), Habit.is_active.is_(True), Habit.is_archived.is_(False))
            .order_by(asc(Habit.created_at))
            .all()
        )
        return [
            HabitSnapshot(
                name=row.name,
                category=row.category or "other",
                frequency=row.frequency or "daily",
                methodology=row.methodology or "boolean",
                completion_rate=float(row.completion_rate or 0.0),
                current_streak=int(row.current_streak or 0),
            )
            for row in rows
        ]


class SqlEntryStore(EntryStore):
    def __init__(self, db: Session) -> None:
        self._db = db

    async def list_entries(self, user_id: str, start: date, end: date) -> List[EntrySnapshot]:
        rows = (
            self._db.query(HabitEntry)
            .filter(
                HabitEntry.user_id == _uuid(user_id),
                HabitEntry.entry_date >= start,
                HabitEntry.entry_date <= end,
            )
            .order_by(asc(HabitEntry.entry_date))
            .all()
        )
        return [EntrySnapshot(entry_date=row.entry_date, completed=bool(row.completed), mood=row.mood) for row in rows]


class SqlProfileStore(ProfileStore):
    def __init__(self, db: Session) -> None:
        self._db = db

    async def get_preferences(self, user_id: str) -> CommunicationPreferences:
        user = self._db.get(User, _uuid(user_id))
        stored = dict((user.ai_personality or {}) if user else {})
        defaults = CommunicationPreferences()
        values = {}
        for key, allowed in PREFERENCE_CHOICES.items():
            value = stored.get(key)
            values[key] = value if value in allowed else getattr(defaults, key)
        return CommunicationPreferences(**values)

    async def count_active_plans(self, user_id: str) -> int:
        return (
            self._db.query(func.count(Transformer.id))
            .filter(Transformer.user_id == _uuid(user_id), Transformer.status == "active")
            .scalar()
            or 0
        )


class SqlJournalStore(JournalStore):
    def __init__(self, db: Session) -> None:
        self._db = db

    async def list_recent_entries(self, user_id: str, since: date) -> List[JournalSnapshot]:
        rows = (
            self._db.query(JournalEntry)
            .filter(JournalEntry.user_id == _uuid(user_id), JournalEntry.entry_date >= since)
            .order_by(asc(JournalEntry.entry_date))
            .all()
        )
        return [
            JournalSnapshot(
                entry_date=row.entry_date,
                mood=row.mood,
                tags=[str(tag) for tag in (row.tags or []) if tag],
            )
            for row in rows
        ]
