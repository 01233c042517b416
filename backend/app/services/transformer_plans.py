"""Persistence and lifecycle operations around transformer plans."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.db.models.habit import Habit
from app.db.models.habit_entry import HabitEntry
from app.db.models.transformer import Transformer
from app.services.transformer import lifecycle
from app.services.transformer.engine import GenerationResult, TransformerEngine
from app.services.transformer.errors import LifecycleError
from app.services.transformer.models import (
    FlatBody,
    HabitBlueprint,
    PhasedBody,
    PlanStatus,
    TransformerPlan,
)
from app.services.transformer.patches import (
    AddHabit,
    AddPhase,
    ModifyHabit,
    MoveHabit,
    PatchChange,
    RemoveHabit,
    RemovePhase,
    ScaleHabit,
)
from app.services.transformer.refinement import RefinementEngine, snapshot_phases
from app.services.transformer.schema_guard import (
    DEFAULT_ICON,
    DEFAULT_SYSTEM_NAME,
    ICON_MAX,
    MAX_PHASES,
    SYSTEM_DESCRIPTION_MAX,
    SYSTEM_NAME_MAX,
    clip_text,
    duration_in_days,
    sanitize_habits,
    sanitize_phase,
)
from app.services.user_service import record_generation

logger = logging.getLogger(__name__)

HABIT_SOURCE = "transformer"
KEPT_UNITS = frozenset({"minutes", "hours", "pages", "miles", "calories", "glasses"})
CUSTOM_UNITS = frozenset({"reps", "items"})
DAY_NUMBERS = {"sun": 0, "mon": 1, "tue": 2, "wed": 3, "thu": 4, "fri": 5, "sat": 6}
DEFAULT_WEEKLY_TARGET = 3


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ── Row <-> document ──


def plan_from_row(row: Transformer) -> TransformerPlan:
    document = dict(row.document or {})
    document.update(
        {
            "userId": str(row.user_id),
            "status": row.status,
            "suiteId": str(row.suite_id) if row.suite_id else None,
            "suiteIndex": row.suite_index,
            "suiteName": row.suite_name,
        }
    )
    return TransformerPlan.model_validate(document)


def save_plan(db: Session, row: Transformer, plan: TransformerPlan) -> None:
    row.status = PlanStatus(plan.status).value
    row.document = plan.to_document()
    db.add(row)


def load_plan(db: Session, transformer_id: UUID, user_id: Optional[UUID] = None) -> Tuple[Transformer, TransformerPlan]:
    row = db.get(Transformer, transformer_id)
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transformer not found")
    if user_id is not None and row.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Transformer does not belong to user")
    return row, plan_from_row(row)


def persist_generation(db: Session, user_id: UUID, result: GenerationResult) -> List[Tuple[Transformer, TransformerPlan]]:
    """Store every generated preview and count the generation once against the user."""
    record_generation(db, user_id)
    stored: List[Tuple[Transformer, TransformerPlan]] = []
    for plan in result.plans:
        row = Transformer(
            user_id=user_id,
            suite_id=UUID(plan.suite_id) if plan.suite_id else None,
            suite_index=plan.suite_index,
            suite_name=plan.suite_name,
        )
        save_plan(db, row, plan)
        stored.append((row, plan))
    db.commit()
    for row, _ in stored:
        db.refresh(row)
    return stored


# ── Direct edits ──


def edit_plan(db: Session, row: Transformer, plan: TransformerPlan, update: Dict[str, Any]) -> TransformerPlan:
    """Replace top-level fields, phases or flat habits of a draft/preview plan."""
    lifecycle.ensure_editable(plan)
    system = plan.system
    if update.get("name") is not None:
        system.name = clip_text(update["name"], SYSTEM_NAME_MAX, system.name or DEFAULT_SYSTEM_NAME)
    if update.get("description") is not None:
        system.description = clip_text(update["description"], SYSTEM_DESCRIPTION_MAX)
    if update.get("icon") is not None:
        system.icon = clip_text(update["icon"], ICON_MAX, system.icon or DEFAULT_ICON)

    if update.get("phases") is not None:
        raw_phases = [entry for entry in update["phases"] if isinstance(entry, dict)][:MAX_PHASES]
        if not raw_phases:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A plan needs at least one phase")
        system.body = PhasedBody(phases=[sanitize_phase(entry, index) for index, entry in enumerate(raw_phases)])
        plan.generation.user_edits_before_apply += 1
    elif update.get("habits") is not None:
        if system.is_phased:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="This plan is organised in phases; edit phases instead of habits",
            )
        system.body = FlatBody(habits=sanitize_habits(update["habits"]))
        plan.generation.user_edits_before_apply += 1

    save_plan(db, row, plan)
    db.commit()
    db.refresh(row)
    return plan


# ── Habit materialization ──


def blueprint_to_habit(
    blueprint: HabitBlueprint,
    *,
    user_id: UUID,
    transformer_id: UUID,
    phase_index: Optional[int],
    active: bool,
    now: datetime,
) -> Habit:
    habit = Habit(
        user_id=user_id,
        transformer_id=transformer_id,
        transformer_phase_index=phase_index,
        source=HABIT_SOURCE,
        is_active=active,
        is_archived=False,
        activated_at=now if active else None,
    )
    update_habit_from_blueprint(habit, blueprint)
    return habit


def update_habit_from_blueprint(habit: Habit, blueprint: HabitBlueprint) -> None:
    habit.name = blueprint.name
    habit.description = blueprint.description or None
    habit.category = blueprint.category
    habit.icon = blueprint.icon
    habit.methodology = blueprint.methodology

    frequency = blueprint.frequency
    habit.schedule_days = None
    if frequency.type == "weekly":
        habit.frequency = "weekly"
        habit.weekly_target = frequency.times_per_week or DEFAULT_WEEKLY_TARGET
    elif frequency.type == "specific_days" and frequency.days:
        habit.frequency = "weekly"
        habit.weekly_target = len(frequency.days)
        habit.schedule_days = sorted(DAY_NUMBERS[day] for day in frequency.days if day in DAY_NUMBERS)
    else:
        habit.frequency = "daily"
        habit.weekly_target = None

    unit = (blueprint.target.unit or "").strip().lower()
    habit.custom_unit = None
    if unit in KEPT_UNITS:
        habit.target_unit = unit
    elif unit in CUSTOM_UNITS:
        habit.target_unit = "custom"
        habit.custom_unit = blueprint.target.unit
    else:
        habit.target_unit = "times"
    habit.target_value = blueprint.target.value or 1


def apply_plan(db: Session, row: Transformer, plan: TransformerPlan) -> List[Habit]:
    """Create tracked habits from the blueprint and move the plan to active."""
    if plan.status in (PlanStatus.ACTIVE, PlanStatus.ARCHIVED, PlanStatus.COMPLETED):
        raise LifecycleError(f"This transformer is already {PlanStatus(plan.status).value}.")
    if not plan.system.all_habits():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Transformer has no habits to apply")

    now = _now()
    created: List[Habit] = []
    if plan.system.is_phased:
        for phase_index, phase in enumerate(plan.system.phases):
            for blueprint in phase.habits:
                created.append(
                    blueprint_to_habit(
                        blueprint,
                        user_id=row.user_id,
                        transformer_id=row.id,
                        phase_index=phase_index,
                        active=phase_index == 0,
                        now=now,
                    )
                )
    else:
        for blueprint in plan.system.flat_habits:
            created.append(
                blueprint_to_habit(
                    blueprint, user_id=row.user_id, transformer_id=row.id, phase_index=None, active=True, now=now
                )
            )

    db.add_all(created)
    db.flush()
    lifecycle.mark_applied(plan, [str(habit.id) for habit in created], now=now)
    save_plan(db, row, plan)
    db.commit()
    db.refresh(row)
    logger.info("Applied transformer %s: %d habits created", row.id, len(created))
    return created


def _linked_habits(db: Session, row: Transformer, phase_index: Optional[int] = None) -> List[Habit]:
    query = db.query(Habit).filter(Habit.transformer_id == row.id, Habit.is_archived.is_(False))
    if phase_index is not None:
        query = query.filter(Habit.transformer_phase_index == phase_index)
    return query.all()


def _activate_phase(db: Session, row: Transformer, phase_index: int, now: datetime) -> None:
    for habit in _linked_habits(db, row, phase_index):
        habit.is_active = True
        habit.activated_at = habit.activated_at or now
        db.add(habit)


def advance_plan(db: Session, row: Transformer, plan: TransformerPlan) -> lifecycle.AdvanceResult:
    now = _now()
    result = lifecycle.advance_phase(plan, now=now)
    if not result.completed:
        _activate_phase(db, row, result.current_phase_index, now)
    save_plan(db, row, plan)
    db.commit()
    db.refresh(row)
    return result


@dataclass
class ArchiveOutcome:
    habits_archived: int = 0
    habits_deleted: int = 0


def archive_plan(db: Session, row: Transformer, plan: TransformerPlan, mode: str = "keep_habits") -> ArchiveOutcome:
    """Archive the plan and handle the tracked habits of an active plan by ``mode``.

    ``keep_habits`` leaves them alone, ``cascade`` archives them and
    ``delete_habits`` removes them together with their entries.
    """
    was_active = plan.status == PlanStatus.ACTIVE
    lifecycle.archive(plan)
    outcome = ArchiveOutcome()
    if was_active and mode == "cascade":
        for habit in _linked_habits(db, row):
            _archive_habit(db, habit)
            outcome.habits_archived += 1
    elif was_active and mode == "delete_habits":
        habits = db.query(Habit).filter(Habit.transformer_id == row.id).all()
        for habit in habits:
            db.query(HabitEntry).filter(HabitEntry.habit_id == habit.id).delete(synchronize_session=False)
            db.delete(habit)
            outcome.habits_deleted += 1
        plan.applied_resources.habit_ids = []
    save_plan(db, row, plan)
    db.commit()
    db.refresh(row)
    logger.info(
        "Archived transformer %s (%s): %d habits archived, %d deleted",
        row.id,
        mode,
        outcome.habits_archived,
        outcome.habits_deleted,
    )
    return outcome


def list_plans(
    db: Session, user_id: UUID, statuses: Optional[List[PlanStatus]] = None
) -> List[Tuple[Transformer, TransformerPlan]]:
    """The user's plans, suite siblings together in suite order; archived plans only when asked for."""
    query = db.query(Transformer).filter(Transformer.user_id == user_id)
    if statuses:
        query = query.filter(Transformer.status.in_([PlanStatus(value).value for value in statuses]))
    else:
        query = query.filter(Transformer.status != PlanStatus.ARCHIVED.value)
    rows = query.order_by(
        Transformer.suite_id.isnot(None),
        Transformer.suite_id,
        Transformer.suite_index,
        Transformer.created_at.desc(),
    ).all()
    return [(row, plan_from_row(row)) for row in rows]


# ── Refinement ──


@dataclass
class RefineOutcome:
    plan: TransformerPlan
    assistant_message: str
    changes: List[PatchChange] = field(default_factory=list)
    patches_applied: int = 0
    rejected_patches: int = 0
    turns_remaining: int = 0


def _habit_name_at(plan: TransformerPlan, phase: int, habit_index: int) -> Optional[str]:
    phases = plan.system.phases
    if 0 <= phase < len(phases) and 0 <= habit_index < len(phases[phase].habits):
        return phases[phase].habits[habit_index].name
    return None


def _find_linked_habit(db: Session, row: Transformer, phase: int, name: str) -> Optional[Habit]:
    return (
        db.query(Habit)
        .filter(
            Habit.transformer_id == row.id,
            Habit.transformer_phase_index == phase,
            Habit.name == name,
            Habit.is_archived.is_(False),
        )
        .first()
    )


def _create_linked_habit(
    db: Session, row: Transformer, plan: TransformerPlan, blueprint: HabitBlueprint, phase_index: int
) -> Habit:
    active = phase_index <= plan.progress.current_phase_index
    habit = blueprint_to_habit(
        blueprint, user_id=row.user_id, transformer_id=row.id, phase_index=phase_index, active=active, now=_now()
    )
    db.add(habit)
    db.flush()
    plan.applied_resources.habit_ids.append(str(habit.id))
    return habit


def _archive_habit(db: Session, habit: Habit) -> None:
    habit.is_archived = True
    habit.is_active = False
    db.add(habit)


def _shift_linked_phases(db: Session, row: Transformer, start: int, delta: int) -> None:
    """Move every tracked habit at phase ``start`` or later by ``delta`` phases."""
    for habit in _linked_habits(db, row):
        if habit.transformer_phase_index is not None and habit.transformer_phase_index >= start:
            habit.transformer_phase_index += delta
            db.add(habit)
    db.flush()


def _sync_active_habit(
    db: Session,
    row: Transformer,
    plan: TransformerPlan,
    patch: Any,
    previous_name: Optional[str],
    changes: List[PatchChange],
) -> None:
    """Mirror one applied patch onto the tracked habits and progress of an active plan."""
    if not changes:
        return
    if isinstance(patch, ModifyHabit) and previous_name:
        habit = _find_linked_habit(db, row, patch.phase, previous_name)
        blueprint = plan.system.phases[patch.phase].habits[patch.habit_index]
        if habit is None:
            logger.warning("No tracked habit %r in phase %d of transformer %s", previous_name, patch.phase, row.id)
            return
        update_habit_from_blueprint(habit, blueprint)
        db.add(habit)
    elif isinstance(patch, AddHabit):
        change = changes[0]
        _create_linked_habit(db, row, plan, plan.system.phases[change.phase].habits[change.habit_index], change.phase)
    elif isinstance(patch, RemoveHabit) and previous_name:
        habit = _find_linked_habit(db, row, patch.phase, previous_name)
        if habit is None:
            logger.warning("No tracked habit %r to archive in transformer %s", previous_name, row.id)
            return
        _archive_habit(db, habit)
    elif isinstance(patch, MoveHabit) and previous_name:
        habit = _find_linked_habit(db, row, patch.from_phase, previous_name)
        if habit is None:
            logger.warning("No tracked habit %r to move in transformer %s", previous_name, row.id)
            return
        habit.transformer_phase_index = patch.to_phase
        habit.is_active = patch.to_phase <= plan.progress.current_phase_index
        if habit.is_active:
            habit.activated_at = habit.activated_at or _now()
        db.add(habit)
    elif isinstance(patch, ScaleHabit):
        for change in changes:
            blueprint = plan.system.phases[change.phase].habits[change.habit_index]
            habit = _find_linked_habit(db, row, change.phase, blueprint.name)
            if habit is not None:
                update_habit_from_blueprint(habit, blueprint)
                db.add(habit)
    elif isinstance(patch, AddPhase):
        position = changes[0].phase
        _shift_linked_phases(db, row, position, 1)
        lifecycle.track_phase_inserted(plan, position)
        for blueprint in plan.system.phases[position].habits:
            _create_linked_habit(db, row, plan, blueprint, position)
    elif isinstance(patch, RemovePhase):
        was_current = patch.phase == plan.progress.current_phase_index
        for habit in _linked_habits(db, row, patch.phase):
            _archive_habit(db, habit)
        db.flush()
        _shift_linked_phases(db, row, patch.phase + 1, -1)
        lifecycle.track_phase_removed(plan, patch.phase)
        if was_current:
            _activate_phase(db, row, plan.progress.current_phase_index, _now())


def _promote_flat_active_plan(db: Session, row: Transformer, plan: TransformerPlan) -> None:
    """Turn a flat active plan into one phase and link its tracked habits to that phase."""
    plan.system.promote_flat(duration_days=duration_in_days(plan.system.estimated_duration))
    for habit in _linked_habits(db, row):
        if habit.transformer_phase_index is None:
            habit.transformer_phase_index = 0
            db.add(habit)
    db.flush()


async def refine_plan(
    db: Session,
    engine: TransformerEngine,
    row: Transformer,
    plan: TransformerPlan,
    message: str,
) -> RefineOutcome:
    """Run one refinement turn: propose patches, apply them, record the turn and persist."""
    result = await engine.refine(plan, message)
    snapshot = snapshot_phases(plan)

    changes: List[PatchChange] = []
    if plan.status == PlanStatus.ACTIVE:
        if result.patches and not plan.system.is_phased:
            _promote_flat_active_plan(db, row, plan)
        for patch in result.patches:
            previous_name = None
            if isinstance(patch, (ModifyHabit, RemoveHabit)):
                previous_name = _habit_name_at(plan, patch.phase, patch.habit_index)
            elif isinstance(patch, MoveHabit):
                previous_name = _habit_name_at(plan, patch.from_phase, patch.habit_index)
            patch_changes = engine.apply_patches(plan.system, [patch])
            changes.extend(patch_changes)
            try:
                _sync_active_habit(db, row, plan, patch, previous_name, patch_changes)
                db.flush()
            except (IndexError, ValueError) as exc:
                logger.warning("Could not sync %s patch to tracked habits: %s", patch.op, exc)
    else:
        changes = engine.apply_patches(plan.system, result.patches)

    RefinementEngine.record_turn(plan, message, result, snapshot)
    save_plan(db, row, plan)
    db.commit()
    db.refresh(row)
    return RefineOutcome(
        plan=plan,
        assistant_message=result.assistant_message,
        changes=changes,
        patches_applied=len(changes),
        rejected_patches=result.rejected_patches,
        turns_remaining=engine.turns_remaining(plan),
    )


# ── Progress ──


def progress_view(plan: TransformerPlan) -> List[Dict[str, Any]]:
    statuses = lifecycle.phase_statuses(plan)
    return [
        {
            "index": index,
            "name": phase.name,
            "description": phase.description,
            "duration_days": phase.duration_days,
            "status": statuses[index],
            "habits": list(phase.habits),
        }
        for index, phase in enumerate(plan.system.phases)
    ]
