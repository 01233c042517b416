"""Decide whether to ask the user a few questions before generating."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

from pydantic import Field

from app.observability.tracing import trace
from app.services.transformer.dossier import Dossier, DossierBuilder
from app.services.transformer.goal_parser import GoalParser
from app.services.transformer.llm import LanguageModel, is_available
from app.services.transformer.models import CamelModel, ParsedGoal
from app.services.transformer.prompts import CLARIFY_SYSTEM_PROMPT
from app.services.transformer.schema_guard import LIST_ITEM_MAX, clip_text, extract_json, string_list
from app.services.transformer.stores import ProfileStore

logger = logging.getLogger(__name__)

MAX_QUESTIONS = 3
MAX_EXAMPLES = 4
CLARIFY_TEMPERATURE = 0.4
CLARIFY_MAX_TOKENS = 800
REASONING_MAX = 500
PROCEED_REASONING = "Goal is clear enough to generate a plan."
CAPACITY_WARNING_THRESHOLD = 3


class ClarificationQuestion(CamelModel):
    question: str
    why: str = ""
    examples: List[str] = Field(default_factory=list)


class ClarificationResult(CamelModel):
    needs_clarification: bool = False
    questions: List[ClarificationQuestion] = Field(default_factory=list)
    reasoning: str = PROCEED_REASONING
    goal_analysis: Optional[str] = None


def sanitize_clarification(data: Any) -> ClarificationResult:
    data = data if isinstance(data, dict) else {}
    questions: List[ClarificationQuestion] = []
    raw_questions = data.get("questions")
    for entry in raw_questions if isinstance(raw_questions, list) else []:
        if not isinstance(entry, dict):
            continue
        question = clip_text(entry.get("question"), LIST_ITEM_MAX)
        if not question:
            continue
        questions.append(
            ClarificationQuestion(
                question=question,
                why=clip_text(entry.get("why"), LIST_ITEM_MAX),
                examples=string_list(entry.get("examples"), limit=MAX_EXAMPLES),
            )
        )
        if len(questions) == MAX_QUESTIONS:
            break

    needs = data.get("needsClarification", data.get("needs_clarification")) is True and bool(questions)
    return ClarificationResult(
        needs_clarification=needs,
        questions=questions if needs else [],
        reasoning=clip_text(data.get("reasoning"), REASONING_MAX, PROCEED_REASONING),
        goal_analysis=clip_text(data.get("goalAnalysis", data.get("goal_analysis")), REASONING_MAX) or None,
    )


def capacity_note(active_plans: int) -> str:
    if active_plans <= 0:
        return "The user has no active plans, so they have full capacity for a new one."
    note = f"The user already has {active_plans} active plan(s)."
    if active_plans >= CAPACITY_WARNING_THRESHOLD:
        note += " Capacity is a concern; consider asking how much time they can add."
    return note


def build_clarify_prompt(goal_text: str, parsed: ParsedGoal, dossier: Dossier, active_plans: int, max_chars: int) -> str:
    sections = [f'Goal: "{goal_text.strip()}"', f"Intent: {parsed.intent}"]
    if parsed.goal_type == "multi":
        lines = ["This input contains several goals that will become separate plans:"]
        for group in parsed.suite_groups:
            members = "; ".join(parsed.sub_goals[index].text for index in group.sub_goal_indices)
            lines.append(f"- {group.name} ({group.intent}): {members}")
        if parsed.synergies:
            lines.append(f"Synergies: {', '.join(parsed.synergies)}")
        lines.append("Explain this structure in goalAnalysis.")
        sections.append("\n".join(lines))
    else:
        if parsed.target_date:
            sections.append(f"Target date: {parsed.target_date.isoformat()}")
        if parsed.constraints:
            sections.append(f"Constraints: {', '.join(parsed.constraints)}")
    sections.append(f"Capacity: {capacity_note(active_plans)}")
    sections.append(f"User context:\n{dossier.render(max_chars)}")
    return "\n\n".join(sections)


class ClarificationAssessor:
    """Pure decision step; when in doubt it lets generation proceed."""

    def __init__(
        self,
        llm: Optional[LanguageModel],
        parser: GoalParser,
        dossiers: DossierBuilder,
        profiles: ProfileStore,
    ) -> None:
        self._llm = llm
        self._parser = parser
        self._dossiers = dossiers
        self._profiles = profiles

    async def assess(self, goal_text: str, user_id: str) -> ClarificationResult:
        if not is_available(self._llm):
            return ClarificationResult()

        parsed, dossier = await asyncio.gather(self._parser.parse(goal_text), self._dossiers.build(user_id))
        try:
            active_plans = await self._profiles.count_active_plans(user_id)
        except Exception as exc:
            logger.warning("Could not count active plans for %s: %s", user_id, exc)
            active_plans = 0

        prompt = build_clarify_prompt(goal_text, parsed, dossier, active_plans, self._dossiers.max_chars)
        try:
            with trace("transformer.clarify", metadata={"goal_type": parsed.goal_type}):
                response = await self._llm.complete(
                    CLARIFY_SYSTEM_PROMPT,
                    prompt,
                    temperature=CLARIFY_TEMPERATURE,
                    max_tokens=CLARIFY_MAX_TOKENS,
                )
            result = sanitize_clarification(extract_json(response.text))
        except Exception as exc:
            logger.warning("Clarification failed, proceeding without questions: %s", exc)
            return ClarificationResult()

        if parsed.goal_type == "multi" and not result.goal_analysis:
            names = ", ".join(group.name for group in parsed.suite_groups)
            result.goal_analysis = f"This will become {len(parsed.suite_groups)} linked plans: {names}."
        return result
