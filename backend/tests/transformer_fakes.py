"""Scripted model and in-memory stores shared by the transformer tests."""
from __future__ import annotations

import json
from datetime import date
from typing import Any, Dict, List, Optional

from app.services.transformer import prompts
from app.services.transformer.llm import LanguageModel, LLMResponse
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

PROMPT_KINDS = {
    prompts.PARSE_SYSTEM_PROMPT: "parse",
    prompts.GENERATION_SYSTEM_PROMPT: "generate",
    prompts.CLARIFY_SYSTEM_PROMPT: "clarify",
    prompts.REFINE_SYSTEM_PROMPT: "refine",
}


class FakeLanguageModel(LanguageModel):
    """Scripted provider: replies are queued per call kind (parse, generate, clarify, refine)."""

    model_name = "fake-model"

    def __init__(self, configured: bool = True, **scripts: List[Any]) -> None:
        self.configured = configured
        self.scripts: Dict[str, List[Any]] = {kind: list(replies) for kind, replies in scripts.items()}
        self.calls: List[Dict[str, Any]] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    def calls_of(self, kind: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["kind"] == kind]

    async def complete(self, system_prompt, user_prompt, *, temperature, max_tokens) -> LLMResponse:
        kind = PROMPT_KINDS.get(system_prompt, "unknown")
        self.calls.append(
            {"kind": kind, "system": system_prompt, "user": user_prompt, "temperature": temperature, "max_tokens": max_tokens}
        )
        queue = self.scripts.get(kind) or []
        if not queue:
            raise AssertionError(f"unexpected {kind} call")
        reply = queue.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, (dict, list)):
            reply = json.dumps(reply)
        return LLMResponse(text=reply, model=self.model_name, input_tokens=100, output_tokens=50)


def habit_payload(name: str, **overrides: Any) -> Dict[str, Any]:
    habit = {
        "name": name,
        "description": f"{name} to build momentum",
        "methodology": "boolean",
        "frequency": {"type": "daily"},
        "target": {"value": None, "unit": None},
        "icon": "✅",
        "category": "fitness",
        "difficulty": "easy",
        "isRequired": True,
    }
    habit.update(overrides)
    return habit


def system_payload(phase_count: int = 2, habits_per_phase: int = 2, duration_days: int = 14) -> Dict[str, Any]:
    return {
        "name": "Test Plan",
        "description": "A plan used in tests",
        "icon": "🏃",
        "category": "fitness",
        "phases": [
            {
                "name": f"Phase {index + 1}",
                "description": f"Stage {index + 1}",
                "durationDays": duration_days,
                "habits": [habit_payload(f"Habit {index}-{slot}") for slot in range(habits_per_phase)],
            }
            for index in range(phase_count)
        ],
    }


class MemoryHabitStore(HabitStore):
    def __init__(self, habits: Optional[List[HabitSnapshot]] = None, error: Optional[Exception] = None):
        self.habits = habits or []
        self.error = error

    async def list_active_habits(self, user_id):
        if self.error:
            raise self.error
        return list(self.habits)


class MemoryEntryStore(EntryStore):
    def __init__(self, entries: Optional[List[EntrySnapshot]] = None, error: Optional[Exception] = None):
        self.entries = entries or []
        self.error = error

    async def list_entries(self, user_id, start: date, end: date):
        if self.error:
            raise self.error
        return [entry for entry in self.entries if start <= entry.entry_date <= end]


class MemoryProfileStore(ProfileStore):
    def __init__(self, preferences: Optional[CommunicationPreferences] = None, active_plans: int = 0):
        self.preferences = preferences or CommunicationPreferences()
        self.active_plans = active_plans

    async def get_preferences(self, user_id):
        return self.preferences

    async def count_active_plans(self, user_id):
        return self.active_plans


class MemoryJournalStore(JournalStore):
    def __init__(self, entries: Optional[List[JournalSnapshot]] = None, error: Optional[Exception] = None):
        self.entries = entries or []
        self.error = error

    async def list_recent_entries(self, user_id, since: date):
        if self.error:
            raise self.error
        return [entry for entry in self.entries if entry.entry_date >= since]

