"""User context assembly for generation and refinement prompts."""
from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Awaitable, Callable, Generic, List, Literal, Optional, TypeVar

from app.observability.metrics import log_metric
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

logger = logging.getLogger(__name__)

T = TypeVar("T")

Trend = Literal["improving", "declining", "stable"]
DataRichness = Literal["sparse", "moderate", "rich"]

ANALYTICS_WINDOW_DAYS = 30
TREND_WINDOW_DAYS = 7
TREND_THRESHOLD = 10.0
SPARSE_ENTRY_LIMIT = 15
RICH_ENTRY_LIMIT = 50
MAX_THEMES = 5
MAX_LISTED_HABITS = 15
WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


@dataclass
class SectionResult(Generic[T]):
    """Outcome of one dossier section: a value, or the reason it is missing."""

    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class AnalyticsSnapshot:
    entry_count: int = 0
    completion_rate: Optional[float] = None
    best_day: Optional[str] = None
    worst_day: Optional[str] = None
    trend: Trend = "stable"
    mood_average: Optional[float] = None


@dataclass
class Dossier:
    habits: SectionResult[List[HabitSnapshot]] = field(default_factory=SectionResult)
    analytics: SectionResult[AnalyticsSnapshot] = field(default_factory=SectionResult)
    preferences: SectionResult[CommunicationPreferences] = field(default_factory=SectionResult)
    journal_themes: SectionResult[List[str]] = field(default_factory=SectionResult)
    data_richness: DataRichness = "sparse"

    @classmethod
    def empty(cls) -> "Dossier":
        return cls(
            habits=SectionResult(value=[]),
            analytics=SectionResult(value=AnalyticsSnapshot()),
            preferences=SectionResult(value=CommunicationPreferences()),
            journal_themes=SectionResult(value=[]),
        )

    @property
    def failed_sections(self) -> List[str]:
        sections = {
            "habits": self.habits,
            "analytics": self.analytics,
            "preferences": self.preferences,
            "journal_themes": self.journal_themes,
        }
        return [name for name, section in sections.items() if not section.ok]

    def render(self, max_chars: int = 3000) -> str:
        """Plain-text block for prompt injection, clipped to ``max_chars``."""
        lines: List[str] = [f"Data richness: {self.data_richness}"]

        habits = self.habits.value or []
        if habits:
            lines.append("Existing habits (do not duplicate these):")
            for habit in habits[:MAX_LISTED_HABITS]:
                lines.append(
                    f"- {habit.name} ({habit.category}, {habit.frequency}, "
                    f"{habit.completion_rate:.0f}% completion, streak {habit.current_streak})"
                )
            if len(habits) > MAX_LISTED_HABITS:
                lines.append(f"- ...and {len(habits) - MAX_LISTED_HABITS} more")
        else:
            lines.append("Existing habits: none tracked yet.")

        analytics = self.analytics.value
        if analytics and analytics.entry_count:
            lines.append(f"Last {ANALYTICS_WINDOW_DAYS} days:")
            if analytics.completion_rate is not None:
                lines.append(f"- Completion rate: {analytics.completion_rate:.0f}%")
            if analytics.best_day:
                lines.append(f"- Strongest day: {analytics.best_day}; weakest day: {analytics.worst_day}")
            lines.append(f"- Week-over-week trend: {analytics.trend}")
            if analytics.mood_average is not None:
                lines.append(f"- Average mood: {analytics.mood_average:.1f}/5")

        themes = self.journal_themes.value or []
        if themes:
            lines.append(f"Recurring journal themes: {', '.join(themes)}")

        preferences = self.preferences.value
        if preferences:
            lines.append(
                f"Communication style: tone={preferences.tone}, focus={preferences.focus}, "
                f"verbosity={preferences.verbosity}, accountability={preferences.accountability}"
            )

        text = "\n".join(lines)
        if len(text) > max_chars:
            text = text[: max(0, max_chars - 3)].rstrip() + "..."
        return text


# ── Analytics ──


def compute_analytics(entries: List[EntrySnapshot], today: date) -> AnalyticsSnapshot:
    """Aggregate completion entries from the trailing window ending ``today``."""
    window_start = today - timedelta(days=ANALYTICS_WINDOW_DAYS - 1)
    window = [entry for entry in entries if window_start <= entry.entry_date <= today]
    if not window:
        return AnalyticsSnapshot()

    completed = sum(1 for entry in window if entry.completed)
    completion_rate = round(completed / len(window) * 100, 1)

    per_weekday: dict[int, List[bool]] = {}
    for entry in window:
        per_weekday.setdefault(entry.entry_date.weekday(), []).append(entry.completed)
    weekday_rates = {day: sum(values) / len(values) for day, values in per_weekday.items()}
    best_day = max(sorted(weekday_rates), key=lambda day: weekday_rates[day])
    worst_day = min(sorted(weekday_rates), key=lambda day: weekday_rates[day])

    moods = [entry.mood for entry in window if entry.mood is not None]
    mood_average = round(sum(moods) / len(moods), 2) if moods else None

    return AnalyticsSnapshot(
        entry_count=len(window),
        completion_rate=completion_rate,
        best_day=WEEKDAY_NAMES[best_day],
        worst_day=WEEKDAY_NAMES[worst_day],
        trend=classify_trend(window, today),
        mood_average=mood_average,
    )


def classify_trend(entries: List[EntrySnapshot], today: date) -> Trend:
    """Compare the last seven days against the seven before them."""
    recent_start = today - timedelta(days=TREND_WINDOW_DAYS - 1)
    prior_start = recent_start - timedelta(days=TREND_WINDOW_DAYS)
    recent = [entry.completed for entry in entries if recent_start <= entry.entry_date <= today]
    prior = [entry.completed for entry in entries if prior_start <= entry.entry_date < recent_start]
    if not recent or not prior:
        return "stable"
    delta = (sum(recent) / len(recent) - sum(prior) / len(prior)) * 100
    if delta > TREND_THRESHOLD:
        return "improving"
    if delta < -TREND_THRESHOLD:
        return "declining"
    return "stable"


def classify_richness(entry_count: int) -> DataRichness:
    if entry_count < SPARSE_ENTRY_LIMIT:
        return "sparse"
    if entry_count < RICH_ENTRY_LIMIT:
        return "moderate"
    return "rich"


def extract_themes(entries: List[JournalSnapshot], limit: int = MAX_THEMES) -> List[str]:
    counts: Counter[str] = Counter()
    for entry in entries:
        for tag in entry.tags:
            cleaned = tag.strip().lower()
            if cleaned:
                counts[cleaned] += 1
    return [tag for tag, _ in counts.most_common(limit)]


# ── Builder ──


class DossierBuilder:
    """Read-only assembly of a user's context; sections degrade independently."""

    def __init__(
        self,
        habits: HabitStore,
        entries: EntryStore,
        profiles: ProfileStore,
        journal: Optional[JournalStore] = None,
        *,
        max_chars: int = 3000,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._habits = habits
        self._entries = entries
        self._profiles = profiles
        self._journal = journal
        self.max_chars = max_chars
        self._today = today

    async def build(self, user_id: str) -> Dossier:
        today = self._today()
        window_start = today - timedelta(days=ANALYTICS_WINDOW_DAYS - 1)

        habits, entries, preferences, journal = await asyncio.gather(
            self._section("habits", user_id, self._habits.list_active_habits(user_id)),
            self._section("entries", user_id, self._entries.list_entries(user_id, window_start, today)),
            self._section("preferences", user_id, self._profiles.get_preferences(user_id)),
            self._journal_section(user_id, window_start),
        )

        analytics: SectionResult[AnalyticsSnapshot]
        if entries.ok:
            analytics = SectionResult(value=compute_analytics(entries.value or [], today))
        else:
            analytics = SectionResult(error=entries.error)

        themes: SectionResult[List[str]]
        if journal.ok:
            themes = SectionResult(value=extract_themes(journal.value or []))
        else:
            themes = SectionResult(error=journal.error)

        entry_count = analytics.value.entry_count if analytics.value else 0
        return Dossier(
            habits=habits,
            analytics=analytics,
            preferences=preferences,
            journal_themes=themes,
            data_richness=classify_richness(entry_count),
        )

    async def _journal_section(self, user_id: str, since: date) -> SectionResult[List[JournalSnapshot]]:
        if self._journal is None:
            return SectionResult(error="journal store not configured")
        return await self._section("journal", user_id, self._journal.list_recent_entries(user_id, since))

    async def _section(self, name: str, user_id: str, query: Awaitable[T]) -> SectionResult[T]:
        try:
            return SectionResult(value=await query)
        except Exception as exc:
            logger.warning("Dossier section %s failed for user %s: %s", name, user_id, exc)
            log_metric("transformer.dossier.section_failed", 1, metadata={"section": name})
            return SectionResult(error=f"{type(exc).__name__}: {exc}")
