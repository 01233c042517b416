"""Goal-to-plan generation, for single goals and compound suites."""
from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence
from uuid import uuid4

from app.observability.metrics import log_metric
from app.observability.tracing import annotate, trace
from app.services.transformer.dossier import Dossier
from app.services.transformer.errors import (
    EMPTY_RESPONSE_MESSAGE,
    INVALID_RESPONSE_MESSAGE,
    JSONExtractionError,
    MalformedOutputError,
    TransformerError,
)
from app.services.transformer.llm import LanguageModel
from app.services.transformer.models import (
    ClarificationAnswer,
    EstimatedDuration,
    GenerationInfo,
    Goal,
    ParsedGoal,
    PlanStatus,
    SuiteGroup,
    TokenUsage,
    TransformerPlan,
)
from app.services.transformer.prompts import GENERATION_SYSTEM_PROMPT
from app.services.transformer.schema_guard import (
    MAX_GENERATED_PHASES,
    SYSTEM_NAME_MAX,
    clip_text,
    extract_json,
    sanitize_system,
)

logger = logging.getLogger(__name__)


@dataclass
class SiblingContext:
    """The other plans generated alongside this one from the same compound goal."""

    siblings: List[SuiteGroup] = field(default_factory=list)
    synergies: List[str] = field(default_factory=list)

    def render(self) -> str:
        lines = ["This plan is one of several generated together. The sibling plans cover:"]
        lines.extend(f"- {group.name} ({group.intent})" for group in self.siblings)
        if self.synergies:
            lines.append(f"Cross-goal synergies: {', '.join(self.synergies)}")
        lines.append("Do not duplicate habits that belong in a sibling plan.")
        return "\n".join(lines)


@dataclass
class SuiteResult:
    suite_id: str
    suite_name: str
    plans: List[TransformerPlan]
    token_usage: TokenUsage
    failed_groups: List[str] = field(default_factory=list)


def build_generation_prompt(
    goal_text: str,
    parsed: ParsedGoal,
    dossier: Dossier,
    *,
    max_chars: int,
    sibling_context: Optional[SiblingContext] = None,
    clarification_answers: Optional[Sequence[ClarificationAnswer]] = None,
) -> str:
    sections = [f'Goal: "{goal_text.strip()}"', f"Intent: {parsed.intent}"]
    if parsed.target_date:
        sections.append(f"Target date: {parsed.target_date.isoformat()}")
    if parsed.constraints:
        sections.append(f"Constraints: {', '.join(parsed.constraints)}")
    if parsed.keywords:
        sections.append(f"Keywords: {', '.join(parsed.keywords)}")
    if sibling_context and sibling_context.siblings:
        sections.append(sibling_context.render())
    sections.append(f"User context:\n{dossier.render(max_chars)}")
    if clarification_answers:
        answers = "\n".join(f"Q: {item.question}\nA: {item.answer}" for item in clarification_answers)
        sections.append(f"The user answered these questions before generation:\n{answers}")
    return "\n\n".join(sections)


def focused_goal_text(parsed: ParsedGoal, group: SuiteGroup) -> str:
    return "; ".join(parsed.sub_goals[index].text for index in group.sub_goal_indices)


class PlanSynthesizer:
    def __init__(
        self,
        llm: LanguageModel,
        *,
        temperature: float = 0.7,
        max_tokens: int = 3000,
        dossier_max_chars: int = 3000,
    ) -> None:
        self._llm = llm
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._dossier_max_chars = dossier_max_chars

    async def generate_single(
        self,
        goal_text: str,
        parsed: ParsedGoal,
        dossier: Dossier,
        *,
        user_id: Optional[str] = None,
        sibling_context: Optional[SiblingContext] = None,
        clarification_answers: Optional[Sequence[ClarificationAnswer]] = None,
    ) -> TransformerPlan:
        """Generate one plan in ``preview`` status.

        Raises ``MalformedOutputError`` for an empty reply, a reply with no
        JSON object, or a system without usable habits. Nothing is retried.
        """
        prompt = build_generation_prompt(
            goal_text,
            parsed,
            dossier,
            max_chars=self._dossier_max_chars,
            sibling_context=sibling_context,
            clarification_answers=clarification_answers,
        )
        metadata = {"intent": parsed.intent, "suite_member": sibling_context is not None}
        with trace("transformer.generate", metadata=metadata) as span:
            response = await self._llm.complete(
                GENERATION_SYSTEM_PROMPT,
                prompt,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
            annotate(span, input_tokens=response.input_tokens, output_tokens=response.output_tokens)

        if not response.text.strip():
            raise MalformedOutputError(EMPTY_RESPONSE_MESSAGE)
        try:
            raw_system = extract_json(response.text)
        except JSONExtractionError as exc:
            logger.error("Failed to parse generation response: %s", exc)
            raise MalformedOutputError(INVALID_RESPONSE_MESSAGE) from exc

        system = sanitize_system(raw_system, max_phases=MAX_GENERATED_PHASES)
        system.estimated_duration = EstimatedDuration(value=max(1, math.ceil(system.total_days() / 7)), unit="weeks")

        return TransformerPlan(
            user_id=user_id,
            goal=Goal(text=goal_text, parsed=parsed),
            system=system,
            status=PlanStatus.PREVIEW,
            generation=GenerationInfo(
                model=response.model or self._llm.model_name,
                generated_at=datetime.now(timezone.utc),
                token_usage=TokenUsage(input=response.input_tokens, output=response.output_tokens),
            ),
        )

    async def generate_suite(
        self,
        goal_text: str,
        parsed: ParsedGoal,
        dossier: Dossier,
        *,
        user_id: Optional[str] = None,
        clarification_answers: Optional[Sequence[ClarificationAnswer]] = None,
    ) -> SuiteResult:
        """One plan per suite group; fails only when every group fails."""
        groups = parsed.suite_groups
        jobs = []
        for position, group in enumerate(groups):
            siblings = [other for index, other in enumerate(groups) if index != position]
            sub_parsed = ParsedGoal(
                goal_type="single",
                intent=group.intent,
                target_date=parsed.target_date,
                constraints=list(parsed.constraints),
                keywords=list(parsed.keywords),
            )
            jobs.append(
                self.generate_single(
                    focused_goal_text(parsed, group),
                    sub_parsed,
                    dossier,
                    user_id=user_id,
                    sibling_context=SiblingContext(siblings=siblings, synergies=list(parsed.synergies)),
                    clarification_answers=clarification_answers,
                )
            )
        outcomes = await asyncio.gather(*jobs, return_exceptions=True)

        suite_id = str(uuid4())
        suite_name = clip_text(goal_text, SYSTEM_NAME_MAX, "Goal suite")
        plans: List[TransformerPlan] = []
        failures: List[BaseException] = []
        failed_groups: List[str] = []
        usage = TokenUsage()
        for group, outcome in zip(groups, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning("Suite group %r failed to generate: %s", group.name, outcome)
                failures.append(outcome)
                failed_groups.append(group.name)
                continue
            outcome.suite_id = suite_id
            outcome.suite_index = len(plans)
            outcome.suite_name = suite_name
            usage = usage + outcome.generation.token_usage
            plans.append(outcome)

        if failed_groups:
            log_metric("transformer.suite.groups_failed", len(failed_groups), metadata={"groups": len(groups)})
        if not plans:
            first = failures[0] if failures else MalformedOutputError(INVALID_RESPONSE_MESSAGE)
            if isinstance(first, TransformerError):
                raise first
            raise MalformedOutputError(INVALID_RESPONSE_MESSAGE) from first

        return SuiteResult(
            suite_id=suite_id,
            suite_name=suite_name,
            plans=plans,
            token_usage=usage,
            failed_groups=failed_groups,
        )
