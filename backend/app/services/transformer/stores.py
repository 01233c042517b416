"""Read-side interfaces the engine consumes from the storage collaborators."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional


@dataclass
class HabitSnapshot:
    name: str
    category: str = "other"
    frequency: str = "daily"
    methodology: str = "boolean"
    completion_rate: float = 0.0
    current_streak: int = 0


@dataclass
class EntrySnapshot:
    entry_date: date
    completed: bool
    mood: Optional[int] = None


@dataclass
class JournalSnapshot:
    entry_date: date
    mood: Optional[int] = None
    tags: List[str] = field(default_factory=list)


@dataclass
class CommunicationPreferences:
    tone: str = "warm"
    focus: str = "balanced"
    verbosity: str = "concise"
    accountability: str = "gentle"


class HabitStore:
    """Tracked habits owned by the habit service."""

    async def list_active_habits(self, user_id: str) -> List[HabitSnapshot]:
        raise NotImplementedError


class EntryStore:
    """Completion entries owned by the habit service."""

    async def list_entries(self, user_id: str, start: date, end: date) -> List[EntrySnapshot]:
        raise NotImplementedError


class ProfileStore:
    """User profile: communication settings and plan counts."""

    async def get_preferences(self, user_id: str) -> CommunicationPreferences:
        raise NotImplementedError

    async def count_active_plans(self, user_id: str) -> int:
        raise NotImplementedError


class JournalStore:
    """Optional journal source used for theme extraction."""

    async def list_recent_entries(self, user_id: str, since: date) -> List[JournalSnapshot]:
        raise NotImplementedError
