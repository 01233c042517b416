"""Plan lifecycle: draft -> preview -> active -> completed, with archived as a sink.

Every mutation of ``status`` goes through ``transition`` so an illegal move
raises ``LifecycleError`` instead of silently corrupting the plan.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Literal, Optional

from app.services.transformer.errors import LifecycleError
from app.services.transformer.models import (
    CompletedPhase,
    PlanStatus,
    Progress,
    RefinementMode,
    TransformerPlan,
)

PhaseStatus = Literal["completed", "active", "upcoming", "locked"]

TRANSITIONS: Dict[PlanStatus, FrozenSet[PlanStatus]] = {
    PlanStatus.DRAFT: frozenset({PlanStatus.PREVIEW, PlanStatus.ACTIVE, PlanStatus.ARCHIVED}),
    PlanStatus.PREVIEW: frozenset({PlanStatus.ACTIVE, PlanStatus.ARCHIVED}),
    PlanStatus.ACTIVE: frozenset({PlanStatus.COMPLETED, PlanStatus.ARCHIVED}),
    PlanStatus.COMPLETED: frozenset(),
    PlanStatus.ARCHIVED: frozenset(),
}
EDITABLE_STATUSES = frozenset({PlanStatus.DRAFT, PlanStatus.PREVIEW})
REFINABLE_STATUSES = frozenset({PlanStatus.DRAFT, PlanStatus.PREVIEW, PlanStatus.ACTIVE})


def _now() -> datetime:
    return datetime.now(timezone.utc)


def can_transition(current: PlanStatus, target: PlanStatus) -> bool:
    return target in TRANSITIONS[PlanStatus(current)]


def transition(plan: TransformerPlan, target: PlanStatus) -> None:
    current = PlanStatus(plan.status)
    if not can_transition(current, target):
        raise LifecycleError(f"Cannot move a {current.value} plan to {target.value}.")
    plan.status = target


def ensure_editable(plan: TransformerPlan) -> None:
    if plan.status not in EDITABLE_STATUSES:
        raise LifecycleError(f"Cannot edit a {PlanStatus(plan.status).value} plan.")


def ensure_refinable(plan: TransformerPlan) -> None:
    if plan.status not in REFINABLE_STATUSES:
        raise LifecycleError(f"Cannot refine a {PlanStatus(plan.status).value} plan.")


def refinement_mode(plan: TransformerPlan) -> RefinementMode:
    return "active" if plan.status == PlanStatus.ACTIVE else "blueprint"


def mark_applied(plan: TransformerPlan, habit_ids: List[str], *, now: Optional[datetime] = None) -> None:
    """Record a successful apply: status, progress and the materialized habit ids."""
    if plan.status in (PlanStatus.ACTIVE, PlanStatus.ARCHIVED):
        raise LifecycleError(f"This transformer is already {PlanStatus(plan.status).value}.")
    transition(plan, PlanStatus.ACTIVE)
    plan.progress = Progress()
    plan.applied_resources.habit_ids = list(habit_ids)
    plan.activated_at = now or _now()


@dataclass
class AdvanceResult:
    completed_phase_index: int
    completed: bool
    current_phase_index: int


def advance_phase(plan: TransformerPlan, *, now: Optional[datetime] = None) -> AdvanceResult:
    """Close the current phase and open the next; past the last phase the plan completes."""
    if plan.status != PlanStatus.ACTIVE:
        raise LifecycleError("Only active transformers can advance phases.")
    phases = plan.system.phases
    if not phases:
        raise LifecycleError("Transformer has no phases.")

    now = now or _now()
    progress = plan.progress
    current = min(max(progress.current_phase_index, 0), len(phases) - 1)
    done = {entry.phase_index for entry in progress.completed_phases}

    if current >= len(phases) - 1:
        for index, phase in enumerate(phases):
            if index not in done:
                progress.completed_phases.append(
                    CompletedPhase(phase_index=index, phase_name=phase.name, completed_at=now)
                )
        progress.current_phase_index = len(phases) - 1
        progress.overall_completion = 100
        transition(plan, PlanStatus.COMPLETED)
        plan.completed_at = now
        return AdvanceResult(completed_phase_index=current, completed=True, current_phase_index=current)

    if current not in done:
        progress.completed_phases.append(
            CompletedPhase(phase_index=current, phase_name=phases[current].name, completed_at=now)
        )
    progress.current_phase_index = current + 1
    progress.overall_completion = round(len(progress.completed_phases) / len(phases) * 100)
    return AdvanceResult(completed_phase_index=current, completed=False, current_phase_index=current + 1)


def _update_completion(plan: TransformerPlan) -> None:
    phases = plan.system.phases
    progress = plan.progress
    progress.overall_completion = round(len(progress.completed_phases) / len(phases) * 100) if phases else 0


def track_phase_inserted(plan: TransformerPlan, position: int) -> None:
    """Keep progress on the same phases after a phase is inserted at ``position``.

    A phase inserted at or before the current one lands behind the user, so
    the current index moves forward with the phase it pointed at.
    """
    progress = plan.progress
    for entry in progress.completed_phases:
        if entry.phase_index >= position:
            entry.phase_index += 1
    if position <= progress.current_phase_index:
        progress.current_phase_index += 1
    _update_completion(plan)


def track_phase_removed(plan: TransformerPlan, index: int) -> None:
    """Keep progress on the same phases after the phase at ``index`` is removed.

    Removing the current phase makes the phase that followed it current; when
    there is none, the new last phase is current.
    """
    progress = plan.progress
    progress.completed_phases = [entry for entry in progress.completed_phases if entry.phase_index != index]
    for entry in progress.completed_phases:
        if entry.phase_index > index:
            entry.phase_index -= 1
    if index < progress.current_phase_index:
        progress.current_phase_index -= 1
    progress.current_phase_index = max(0, min(progress.current_phase_index, len(plan.system.phases) - 1))
    _update_completion(plan)


def archive(plan: TransformerPlan) -> None:
    """Archive from draft, preview or active; completed and archived plans are rejected."""
    if plan.status == PlanStatus.COMPLETED:
        raise LifecycleError("Completed transformers cannot be archived.")
    if plan.status == PlanStatus.ARCHIVED:
        raise LifecycleError("This transformer is already archived.")
    transition(plan, PlanStatus.ARCHIVED)


def phase_statuses(plan: TransformerPlan) -> List[PhaseStatus]:
    """Per-phase display status.

    Active plans: phases before the current one are completed, the current one
    is active, the next is upcoming and later ones are locked. Completed plans
    show every phase completed; unapplied plans show the first phase upcoming.
    """
    phases = plan.system.phases
    if plan.status == PlanStatus.COMPLETED:
        return ["completed"] * len(phases)

    done = {entry.phase_index for entry in plan.progress.completed_phases}
    if plan.status in EDITABLE_STATUSES:
        return ["upcoming" if index == 0 else "locked" for index in range(len(phases))]

    current = plan.progress.current_phase_index
    statuses: List[PhaseStatus] = []
    for index in range(len(phases)):
        if index in done or index < current:
            statuses.append("completed")
        elif index == current and plan.status == PlanStatus.ACTIVE:
            statuses.append("active")
        elif index == current + 1 and plan.status == PlanStatus.ACTIVE:
            statuses.append("upcoming")
        else:
            statuses.append("locked")
    return statuses
