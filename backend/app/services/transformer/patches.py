"""Typed patch operations and their in-memory application to a plan system."""
from __future__ import annotations

import logging
from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Tuple, Union

from pydantic import Field, TypeAdapter, ValidationError

from app.observability.metrics import log_metric
from app.services.transformer.errors import PatchError
from app.services.transformer.models import CamelModel, Phase, PlanSystem
from app.services.transformer.schema_guard import (
    DEFAULT_ICON,
    DEFAULT_SYSTEM_NAME,
    ICON_MAX,
    MAX_HABITS_PER_PHASE,
    MAX_PHASES,
    SYSTEM_DESCRIPTION_MAX,
    SYSTEM_NAME_MAX,
    clip_text,
    duration_in_days,
    sanitize_habit,
    sanitize_phase,
    sanitize_target,
)

logger = logging.getLogger(__name__)

PHASE_FIELDS = ("name", "durationDays", "description")
SYSTEM_FIELDS = ("name", "description", "icon")


class ModifyHabit(CamelModel):
    op: Literal["modifyHabit"]
    phase: int
    habit_index: int
    fields: Dict[str, Any] = Field(default_factory=dict)


class AddHabit(CamelModel):
    op: Literal["addHabit"]
    phase: int
    habit: Dict[str, Any]


class RemoveHabit(CamelModel):
    op: Literal["removeHabit"]
    phase: int
    habit_index: int


class ModifyPhase(CamelModel):
    op: Literal["modifyPhase"]
    phase: int
    fields: Dict[str, Any] = Field(default_factory=dict)


class AddPhase(CamelModel):
    op: Literal["addPhase"]
    # None appends after the last phase; -1 inserts at the front.
    after_index: Optional[int] = None
    phase: Dict[str, Any] = Field(default_factory=dict)


class RemovePhase(CamelModel):
    op: Literal["removePhase"]
    phase: int


class ModifySystem(CamelModel):
    op: Literal["modifySystem"]
    fields: Dict[str, Any] = Field(default_factory=dict)


class MoveHabit(CamelModel):
    op: Literal["moveHabit"]
    from_phase: int
    habit_index: int
    to_phase: int


class ScaleHabit(CamelModel):
    op: Literal["scaleHabit"]
    habit_name: str
    phases: List[int] = Field(default_factory=list)
    target: Dict[str, Any] = Field(default_factory=dict)


Patch = Annotated[
    Union[
        ModifyHabit,
        AddHabit,
        RemoveHabit,
        ModifyPhase,
        AddPhase,
        RemovePhase,
        ModifySystem,
        MoveHabit,
        ScaleHabit,
    ],
    Field(discriminator="op"),
]
PatchAdapter: TypeAdapter[Patch] = TypeAdapter(Patch)


class PatchChange(CamelModel):
    """A location touched by a patch; ``habit_index`` is None for phase/system edits."""

    phase: Optional[int] = None
    habit_index: Optional[int] = None


def parse_patches(raw: Any) -> Tuple[List[Patch], int]:
    """Validate raw patch dicts, returning the valid ones and a rejected count."""
    if not isinstance(raw, list):
        return [], 0
    patches: List[Patch] = []
    rejected = 0
    for entry in raw:
        try:
            patches.append(PatchAdapter.validate_python(entry))
        except ValidationError as exc:
            rejected += 1
            logger.warning("Dropping malformed patch %r: %s", entry, exc.errors()[:1])
    return patches, rejected


# ── Helpers ──


def _phase_at(system: PlanSystem, index: int) -> Phase:
    phases = system.phases
    if not isinstance(index, int) or index < 0 or index >= len(phases):
        raise PatchError(f"phase {index} does not exist ({len(phases)} phases)")
    return phases[index]


def _check_habit_index(phase: Phase, phase_index: int, habit_index: int) -> None:
    if habit_index < 0 or habit_index >= len(phase.habits):
        raise PatchError(f"habit {habit_index} does not exist in phase {phase_index}")


# ── Operations ──


def _modify_habit(system: PlanSystem, patch: ModifyHabit) -> List[PatchChange]:
    phase = _phase_at(system, patch.phase)
    _check_habit_index(phase, patch.phase, patch.habit_index)
    merged = phase.habits[patch.habit_index].to_document()
    merged.update(patch.fields)
    phase.habits[patch.habit_index] = sanitize_habit(merged)
    return [PatchChange(phase=patch.phase, habit_index=patch.habit_index)]


def _add_habit(system: PlanSystem, patch: AddHabit) -> List[PatchChange]:
    phase = _phase_at(system, patch.phase)
    if len(phase.habits) >= MAX_HABITS_PER_PHASE:
        raise PatchError(f"phase {patch.phase} already has {MAX_HABITS_PER_PHASE} habits")
    phase.habits.append(sanitize_habit(patch.habit))
    return [PatchChange(phase=patch.phase, habit_index=len(phase.habits) - 1)]


def _remove_habit(system: PlanSystem, patch: RemoveHabit) -> List[PatchChange]:
    phase = _phase_at(system, patch.phase)
    _check_habit_index(phase, patch.phase, patch.habit_index)
    del phase.habits[patch.habit_index]
    return [PatchChange(phase=patch.phase, habit_index=patch.habit_index)]


def _modify_phase(system: PlanSystem, patch: ModifyPhase) -> List[PatchChange]:
    phase = _phase_at(system, patch.phase)
    merged = phase.to_document()
    merged.update({key: value for key, value in patch.fields.items() if key in PHASE_FIELDS})
    updated = sanitize_phase(merged, patch.phase)
    phase.name = updated.name
    phase.description = updated.description
    phase.duration_days = updated.duration_days
    return [PatchChange(phase=patch.phase)]


def _add_phase(system: PlanSystem, patch: AddPhase, max_phases: int) -> List[PatchChange]:
    phases = system.phases
    if len(phases) >= max_phases:
        raise PatchError(f"plan already has {max_phases} phases")
    after = len(phases) - 1 if patch.after_index is None else patch.after_index
    if after < -1 or after >= len(phases):
        raise PatchError(f"cannot insert after phase {after}")
    position = after + 1
    phases.insert(position, sanitize_phase(patch.phase, position))
    system.renumber_phases()
    return [PatchChange(phase=position)]


def _remove_phase(system: PlanSystem, patch: RemovePhase) -> List[PatchChange]:
    _phase_at(system, patch.phase)
    if len(system.phases) == 1:
        raise PatchError("cannot remove the only phase")
    del system.phases[patch.phase]
    system.renumber_phases()
    return [PatchChange(phase=patch.phase)]


def _modify_system(system: PlanSystem, patch: ModifySystem) -> List[PatchChange]:
    fields = {key: value for key, value in patch.fields.items() if key in SYSTEM_FIELDS}
    if not fields:
        raise PatchError("modifySystem carried no editable fields")
    if "name" in fields:
        system.name = clip_text(fields["name"], SYSTEM_NAME_MAX, system.name or DEFAULT_SYSTEM_NAME)
    if "description" in fields:
        system.description = clip_text(fields["description"], SYSTEM_DESCRIPTION_MAX)
    if "icon" in fields:
        system.icon = clip_text(fields["icon"], ICON_MAX, system.icon or DEFAULT_ICON)
    return [PatchChange()]


def _move_habit(system: PlanSystem, patch: MoveHabit) -> List[PatchChange]:
    source = _phase_at(system, patch.from_phase)
    destination = _phase_at(system, patch.to_phase)
    _check_habit_index(source, patch.from_phase, patch.habit_index)
    if patch.from_phase == patch.to_phase:
        raise PatchError("moveHabit source and destination are the same phase")
    if len(destination.habits) >= MAX_HABITS_PER_PHASE:
        raise PatchError(f"phase {patch.to_phase} already has {MAX_HABITS_PER_PHASE} habits")
    destination.habits.append(source.habits.pop(patch.habit_index))
    return [
        PatchChange(phase=patch.from_phase, habit_index=patch.habit_index),
        PatchChange(phase=patch.to_phase, habit_index=len(destination.habits) - 1),
    ]


def _scale_habit(system: PlanSystem, patch: ScaleHabit) -> List[PatchChange]:
    wanted = patch.habit_name.strip().lower()
    phase_indexes = patch.phases or list(range(len(system.phases)))
    changes: List[PatchChange] = []
    for phase_index in phase_indexes:
        if phase_index < 0 or phase_index >= len(system.phases):
            continue
        for habit_index, habit in enumerate(system.phases[phase_index].habits):
            if habit.name.strip().lower() == wanted:
                habit.target = sanitize_target(patch.target)
                changes.append(PatchChange(phase=phase_index, habit_index=habit_index))
    if not changes:
        logger.info("scaleHabit found no habit named %r; nothing changed", patch.habit_name)
    return changes


_HANDLERS: Dict[type, Callable[[PlanSystem, Any], List[PatchChange]]] = {
    ModifyHabit: _modify_habit,
    AddHabit: _add_habit,
    RemoveHabit: _remove_habit,
    ModifyPhase: _modify_phase,
    RemovePhase: _remove_phase,
    ModifySystem: _modify_system,
    MoveHabit: _move_habit,
    ScaleHabit: _scale_habit,
}


def apply_patches(system: PlanSystem, patches: List[Patch], *, max_phases: int = MAX_PHASES) -> List[PatchChange]:
    """Apply patches in order, in place; a failing patch is logged and skipped.

    A legacy flat system is promoted into a single phase first.
    """
    if not system.is_phased:
        system.promote_flat(duration_days=duration_in_days(system.estimated_duration))

    changed: List[PatchChange] = []
    for patch in patches:
        try:
            if isinstance(patch, AddPhase):
                changed.extend(_add_phase(system, patch, max_phases))
            else:
                changed.extend(_HANDLERS[type(patch)](system, patch))
        except PatchError as exc:
            logger.warning("Skipping %s patch: %s", patch.op, exc.message)
            log_metric("transformer.patch.failed", 1, metadata={"op": patch.op})
        except ValidationError as exc:
            logger.warning("Skipping %s patch with invalid fields: %s", patch.op, exc.errors()[:1])
            log_metric("transformer.patch.failed", 1, metadata={"op": patch.op})
    return changed
