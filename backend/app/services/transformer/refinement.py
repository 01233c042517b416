"""Conversational refinement: a change request in, typed patches and a reply out."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.observability.tracing import annotate, trace
from app.services.transformer.dossier import Dossier
from app.services.transformer.errors import (
    EMPTY_RESPONSE_MESSAGE,
    INVALID_RESPONSE_MESSAGE,
    BudgetExceededError,
    JSONExtractionError,
    MalformedOutputError,
)
from app.services.transformer.llm import LanguageModel
from app.services.transformer.models import (
    PlanStatus,
    RefinementMode,
    RefinementTurn,
    TokenUsage,
    TransformerPlan,
)
from app.services.transformer.patches import Patch, parse_patches
from app.services.transformer.prompts import ACTIVE_MODE_NOTE, REFINE_SYSTEM_PROMPT
from app.services.transformer.schema_guard import clip_text, duration_in_days, extract_json

logger = logging.getLogger(__name__)

REFINE_TEMPERATURE = 0.4
ASSISTANT_MESSAGE_MAX = 1000
DEFAULT_REPLY = "Done! I've updated your plan."
NO_CHANGE_REPLY = "I couldn't turn that into a change to your plan. Could you rephrase it?"


@dataclass
class RefinementResult:
    patches: List[Patch]
    assistant_message: str
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    rejected_patches: int = 0


def snapshot_phases(plan: TransformerPlan) -> List[Dict[str, Any]]:
    """Deep copy of the plan's phases as JSON documents; flat habits appear as one phase."""
    system = plan.system.model_copy(deep=True)
    if not system.is_phased:
        system.promote_flat(duration_days=duration_in_days(system.estimated_duration))
    return [phase.to_document() for phase in system.phases]


def describe_frequency(habit: Dict[str, Any]) -> str:
    frequency = habit.get("frequency") or {}
    kind = frequency.get("type") or "daily"
    if kind == "weekly" and frequency.get("timesPerWeek"):
        return f"{frequency['timesPerWeek']}x/week"
    if kind == "specific_days" and frequency.get("days"):
        return "/".join(frequency["days"])
    return kind


def render_plan_state(plan: TransformerPlan) -> str:
    system = plan.system
    lines = [f"Plan: {system.name} ({system.category})"]
    if system.description:
        lines.append(f"Description: {system.description}")
    for index, phase in enumerate(snapshot_phases(plan)):
        lines.append(f"Phase {index}: {phase['name']} ({phase['durationDays']} days)")
        for habit_index, habit in enumerate(phase["habits"]):
            target = habit.get("target") or {}
            target_text = ""
            if target.get("value") is not None:
                target_text = f", target {target['value']} {target.get('unit') or ''}".rstrip()
            lines.append(
                f"  [{habit_index}] {habit['name']} ({habit['methodology']}, "
                f"{describe_frequency(habit)}, {habit['difficulty']}{target_text})"
            )
    return "\n".join(lines)


def render_history(turns: List[RefinementTurn]) -> str:
    """Prior turns as plain lines; they are never sent as chat-role messages."""
    labels = {"user": "User", "assistant": "Assistant"}
    return "\n".join(f"{labels[turn.role]}: {turn.message}" for turn in turns)


def build_refine_prompt(
    plan: TransformerPlan,
    message: str,
    mode: RefinementMode,
    dossier: Dossier,
    *,
    max_chars: int,
) -> str:
    sections = [f'Original goal: "{plan.goal.text}"', f"Current plan:\n{render_plan_state(plan)}"]
    if mode == "active":
        current = plan.progress.current_phase_index
        sections.append(f"{ACTIVE_MODE_NOTE}\nThe user is currently in phase {current}.")
    sections.append(f"User context:\n{dossier.render(max_chars)}")
    if plan.refinements:
        sections.append(f"Conversation so far:\n{render_history(plan.refinements)}")
    sections.append(f"New request: {message.strip()}")
    return "\n\n".join(sections)


class RefinementEngine:
    def __init__(
        self,
        llm: LanguageModel,
        *,
        max_refinements: int = 5,
        max_tokens: int = 2000,
        dossier_max_chars: int = 3000,
    ) -> None:
        self._llm = llm
        self.max_refinements = max_refinements
        self._max_tokens = max_tokens
        self._dossier_max_chars = dossier_max_chars

    def turns_remaining(self, plan: TransformerPlan) -> int:
        return plan.turns_remaining(self.max_refinements)

    def check_budget(self, plan: TransformerPlan) -> None:
        if plan.user_turns >= self.max_refinements:
            raise BudgetExceededError()

    async def refine(
        self,
        plan: TransformerPlan,
        message: str,
        mode: RefinementMode,
        dossier: Dossier,
    ) -> RefinementResult:
        """Ask the model for patches; the plan itself is not modified here."""
        self.check_budget(plan)
        prompt = build_refine_prompt(plan, message, mode, dossier, max_chars=self._dossier_max_chars)

        with trace("transformer.refine", metadata={"mode": mode, "turn": plan.user_turns + 1}) as span:
            response = await self._llm.complete(
                REFINE_SYSTEM_PROMPT,
                prompt,
                temperature=REFINE_TEMPERATURE,
                max_tokens=self._max_tokens,
            )
            annotate(span, input_tokens=response.input_tokens, output_tokens=response.output_tokens)

        if not response.text.strip():
            raise MalformedOutputError(EMPTY_RESPONSE_MESSAGE)
        try:
            data = extract_json(response.text)
        except JSONExtractionError as exc:
            logger.error("Failed to parse refinement response: %s", exc)
            raise MalformedOutputError(INVALID_RESPONSE_MESSAGE) from exc

        patches, rejected = parse_patches(data.get("patches"))
        fallback = DEFAULT_REPLY if patches else NO_CHANGE_REPLY
        reply = data.get("assistantMessage", data.get("assistant_message"))
        return RefinementResult(
            patches=patches,
            assistant_message=clip_text(reply, ASSISTANT_MESSAGE_MAX, fallback),
            token_usage=TokenUsage(input=response.input_tokens, output=response.output_tokens),
            rejected_patches=rejected,
        )

    @staticmethod
    def record_turn(
        plan: TransformerPlan,
        message: str,
        result: RefinementResult,
        phases_snapshot: Optional[List[Dict[str, Any]]],
    ) -> None:
        """Append the user/assistant turn pair and count the edit."""
        plan.refinements.append(RefinementTurn(role="user", message=message.strip(), phases_snapshot=phases_snapshot))
        plan.refinements.append(RefinementTurn(role="assistant", message=result.assistant_message))
        if plan.status != PlanStatus.ACTIVE:
            plan.generation.user_edits_before_apply += 1
        plan.generation.token_usage = plan.generation.token_usage + result.token_usage
