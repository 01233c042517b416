"""Sanitation layer for anything the language model produces.

Model output is treated as untrusted input: enum fields are coerced into
their closed sets, strings are clipped, list sizes are capped and the plan
structure is normalized so that a malformed generation can never reach a
persisted plan. Every sanitizer accepts either raw JSON-ish data or an
already-validated model, and running a sanitizer on its own output is a
no-op.
"""
from __future__ import annotations

import json
import logging
import math
import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional, get_args

from pydantic import BaseModel

from app.services.transformer.errors import (
    INCOMPLETE_SYSTEM_MESSAGE,
    JSONExtractionError,
    MalformedOutputError,
)
from app.services.transformer.models import (
    Difficulty,
    DurationUnit,
    EstimatedDuration,
    FrequencyType,
    HabitBlueprint,
    HabitCategory,
    HabitFrequency,
    HabitTarget,
    Intent,
    Methodology,
    ParsedGoal,
    Phase,
    PhasedBody,
    PlanCategory,
    PlanSystem,
)

logger = logging.getLogger(__name__)

VALID_INTENTS = frozenset(get_args(Intent))
VALID_SYSTEM_CATEGORIES = frozenset(get_args(PlanCategory))
VALID_HABIT_CATEGORIES = frozenset(get_args(HabitCategory))
VALID_METHODOLOGIES = frozenset(get_args(Methodology))
VALID_DIFFICULTIES = frozenset(get_args(Difficulty))
VALID_FREQUENCY_TYPES = frozenset(get_args(FrequencyType))
VALID_DURATION_UNITS = frozenset(get_args(DurationUnit))
VALID_DAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

HABIT_NAME_MAX = 100
HABIT_DESCRIPTION_MAX = 300
PHASE_NAME_MAX = 60
PHASE_DESCRIPTION_MAX = 200
SYSTEM_NAME_MAX = 120
SYSTEM_DESCRIPTION_MAX = 500
ICON_MAX = 16
UNIT_MAX = 30
LIST_ITEM_MAX = 200

MAX_HABITS_PER_PHASE = 6
MAX_GENERATED_PHASES = 4
MAX_PHASES = 5
MAX_PARSED_ITEMS = 15

DEFAULT_ICON = "🎯"
DEFAULT_HABIT_NAME = "Untitled Habit"
DEFAULT_SYSTEM_NAME = "Untitled plan"
DEFAULT_PHASE_DAYS = 14
DEFAULT_DURATION_VALUE = 4
MAX_PHASE_DAYS = 365
MAX_NUMBER = 1_000_000_000

_FENCE_START = re.compile(r"^\s*```[a-zA-Z]*\s*")
_FENCE_END = re.compile(r"\s*```\s*$")


# ── JSON extraction ──


def extract_json(text: Optional[str]) -> Dict[str, Any]:
    """Recover a JSON object from a raw model response.

    Tries, in order: the bare text, the text with code fences stripped, and
    the substring between the first ``{`` and the last ``}``. Raises
    ``JSONExtractionError`` when none of them is a JSON object.
    """
    if not text or not text.strip():
        raise JSONExtractionError("empty response")

    candidates = [text.strip()]
    unfenced = _FENCE_END.sub("", _FENCE_START.sub("", text.strip()))
    candidates.append(unfenced)
    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        candidates.append(text[first : last + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(parsed, dict):
            return parsed

    raise JSONExtractionError(f"no JSON object in response: {text[:120]!r}")


# ── Primitive coercions ──


def _as_dict(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, BaseModel):
        return raw.model_dump(by_alias=True, mode="json")
    return raw if isinstance(raw, dict) else {}


def clip_text(value: Any, limit: int, default: str = "") -> str:
    if not isinstance(value, str):
        return default
    cleaned = value.strip()
    if not cleaned:
        return default
    return cleaned[:limit].rstrip()


def _member(value: Any, allowed: frozenset, default: str) -> str:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in allowed:
            return lowered
    return default


def _positive_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, int):
        return value if 0 < value <= MAX_NUMBER else None
    if not math.isfinite(value) or value <= 0 or value > MAX_NUMBER:
        return None
    return int(value) if value.is_integer() else value


def _positive_int(value: Any, *, default: int, upper: int) -> int:
    number = _positive_number(value)
    if number is None:
        if isinstance(value, str) and value.strip().isdecimal():
            number = int(value.strip())
        else:
            return default
    number = int(round(number))
    if number <= 0:
        return default
    return min(number, upper)


def string_list(raw: Any, *, limit: int = MAX_PARSED_ITEMS) -> List[str]:
    if not isinstance(raw, list):
        return []
    items: List[str] = []
    for entry in raw:
        if entry is None or isinstance(entry, (dict, list)):
            continue
        text = clip_text(str(entry), LIST_ITEM_MAX)
        if text:
            items.append(text)
    return items[:limit]


# ── Habit blueprints ──


def sanitize_frequency(raw: Any) -> HabitFrequency:
    data = _as_dict(raw)
    freq_type = _member(data.get("type"), VALID_FREQUENCY_TYPES, "daily")
    days: List[str] = []
    raw_days = data.get("days")
    for day in raw_days if isinstance(raw_days, list) else []:
        if isinstance(day, str):
            code = day.strip().lower()[:3]
            if code in VALID_DAYS and code not in days:
                days.append(code)
    times = data.get("timesPerWeek", data.get("times_per_week"))
    times_per_week = _positive_int(times, default=0, upper=7) or None
    return HabitFrequency(type=freq_type, days=days, times_per_week=times_per_week)


def sanitize_target(raw: Any) -> HabitTarget:
    data = _as_dict(raw)
    unit = clip_text(data.get("unit"), UNIT_MAX) or None
    return HabitTarget(value=_positive_number(data.get("value")), unit=unit)


def sanitize_habit(raw: Any) -> HabitBlueprint:
    """Coerce any value into a valid habit blueprint."""
    data = _as_dict(raw)
    is_required = data.get("isRequired", data.get("is_required"))
    return HabitBlueprint(
        name=clip_text(data.get("name"), HABIT_NAME_MAX, DEFAULT_HABIT_NAME),
        description=clip_text(data.get("description"), HABIT_DESCRIPTION_MAX),
        methodology=_member(data.get("methodology"), VALID_METHODOLOGIES, "boolean"),
        frequency=sanitize_frequency(data.get("frequency")),
        target=sanitize_target(data.get("target")),
        icon=clip_text(data.get("icon"), ICON_MAX, DEFAULT_ICON),
        category=_member(data.get("category"), VALID_HABIT_CATEGORIES, "other"),
        difficulty=_member(data.get("difficulty"), VALID_DIFFICULTIES, "medium"),
        is_required=is_required is not False,
    )


def sanitize_habits(raw: Any) -> List[HabitBlueprint]:
    if not isinstance(raw, list):
        return []
    habits = [sanitize_habit(entry) for entry in raw if isinstance(entry, (dict, BaseModel))]
    return habits[:MAX_HABITS_PER_PHASE]


# ── Phases and systems ──


def sanitize_phase(raw: Any, order: int) -> Phase:
    data = _as_dict(raw)
    duration = data.get("durationDays", data.get("duration_days"))
    return Phase(
        name=clip_text(data.get("name"), PHASE_NAME_MAX, f"Phase {order + 1}"),
        description=clip_text(data.get("description"), PHASE_DESCRIPTION_MAX),
        duration_days=_positive_int(duration, default=DEFAULT_PHASE_DAYS, upper=MAX_PHASE_DAYS),
        order=order,
        habits=sanitize_habits(data.get("habits")),
    )


def sanitize_duration(raw: Any) -> EstimatedDuration:
    data = _as_dict(raw)
    unit = _member(data.get("unit"), VALID_DURATION_UNITS, "weeks")
    value = _positive_number(data.get("value"))
    return EstimatedDuration(value=value if value is not None else DEFAULT_DURATION_VALUE, unit=unit)


def duration_in_days(duration: EstimatedDuration) -> int:
    multiplier = {"days": 1, "weeks": 7, "months": 30}[duration.unit]
    return max(1, int(round(min(MAX_PHASE_DAYS, duration.value * multiplier))))


def sanitize_system(raw: Any, *, max_phases: int = MAX_GENERATED_PHASES) -> PlanSystem:
    """Sanitize a system object and normalize it into the phased shape.

    Phases that carry at least one habit are kept (up to ``max_phases``) and
    renumbered. When none qualify, a flat ``habits`` list is promoted into a
    single phase. Raises ``MalformedOutputError`` when neither yields a habit.
    """
    data = _as_dict(raw)
    duration = sanitize_duration(data.get("estimatedDuration", data.get("estimated_duration")))

    phases: List[Phase] = []
    raw_phases = data.get("phases")
    for entry in raw_phases if isinstance(raw_phases, list) else []:
        if not isinstance(entry, (dict, BaseModel)):
            continue
        phase = sanitize_phase(entry, len(phases))
        if phase.habits:
            phases.append(phase)
        if len(phases) == max_phases:
            break

    if not phases:
        flat = sanitize_habits(data.get("habits"))
        if not flat:
            raise MalformedOutputError(INCOMPLETE_SYSTEM_MESSAGE)
        logger.debug("Promoting %d flat habits into a single phase", len(flat))
        phases = [
            Phase(
                name="Phase 1",
                description="",
                duration_days=duration_in_days(duration),
                order=0,
                habits=flat,
            )
        ]

    return PlanSystem(
        name=clip_text(data.get("name"), SYSTEM_NAME_MAX, DEFAULT_SYSTEM_NAME),
        description=clip_text(data.get("description"), SYSTEM_DESCRIPTION_MAX),
        icon=clip_text(data.get("icon"), ICON_MAX, DEFAULT_ICON),
        category=_member(data.get("category"), VALID_SYSTEM_CATEGORIES, "custom"),
        estimated_duration=duration,
        body=PhasedBody(phases=phases),
    )


# ── Parsed goal metadata ──


def sanitize_intent(value: Any) -> str:
    return _member(value, VALID_INTENTS, "custom")


def sanitize_target_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def sanitize_parsed(raw: Any) -> ParsedGoal:
    """Sanitize the single-goal part of a parse result."""
    data = _as_dict(raw)
    return ParsedGoal(
        goal_type="single",
        intent=sanitize_intent(data.get("intent")),
        target_date=sanitize_target_date(data.get("targetDate", data.get("target_date"))),
        constraints=string_list(data.get("constraints")),
        keywords=string_list(data.get("keywords")),
    )
