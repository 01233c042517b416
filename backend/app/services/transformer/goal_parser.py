"""Single vs compound goal classification."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from app.observability.tracing import trace
from app.services.transformer.llm import LanguageModel, is_available
from app.services.transformer.models import ParsedGoal, SubGoal, SuiteGroup, TokenUsage
from app.services.transformer.prompts import PARSE_SYSTEM_PROMPT
from app.services.transformer.schema_guard import (
    LIST_ITEM_MAX,
    clip_text,
    extract_json,
    sanitize_intent,
    sanitize_parsed,
    string_list,
)

logger = logging.getLogger(__name__)

PARSE_TEMPERATURE = 0.3
MAX_SUB_GOALS = 12
GROUP_NAME_MAX = 60
MIN_KEYWORD_LENGTH = 4


def heuristic_parse(goal_text: str) -> ParsedGoal:
    """Deterministic fallback used when the model is unavailable or misbehaves."""
    keywords = [word for word in goal_text.lower().split() if len(word) >= MIN_KEYWORD_LENGTH]
    return ParsedGoal(goal_type="single", intent="custom", keywords=keywords)


def _sub_goals(raw: Any) -> List[SubGoal]:
    if not isinstance(raw, list):
        return []
    items: List[SubGoal] = []
    for entry in raw:
        if isinstance(entry, str):
            entry = {"text": entry}
        if not isinstance(entry, dict):
            continue
        text = clip_text(entry.get("text"), LIST_ITEM_MAX)
        if text:
            items.append(SubGoal(text=text, intent=sanitize_intent(entry.get("intent"))))
    return items[:MAX_SUB_GOALS]


def repair_suite_groups(raw: Any, sub_goals: List[SubGoal]) -> List[SuiteGroup]:
    """Make every sub-goal index belong to exactly one group.

    Out-of-range and already-claimed indices are dropped from the model's
    groups, empty groups disappear, and each unclaimed sub-goal is placed in
    a singleton group of its own.
    """
    claimed: set[int] = set()
    groups: List[SuiteGroup] = []
    for entry in raw if isinstance(raw, list) else []:
        if not isinstance(entry, dict):
            continue
        indices: List[int] = []
        raw_indices = entry.get("subGoalIndices", entry.get("sub_goal_indices"))
        for index in raw_indices if isinstance(raw_indices, list) else []:
            if isinstance(index, bool) or not isinstance(index, int):
                continue
            if 0 <= index < len(sub_goals) and index not in claimed:
                claimed.add(index)
                indices.append(index)
        if not indices:
            continue
        fallback_name = sub_goals[indices[0]].text[:GROUP_NAME_MAX]
        intent = entry.get("intent") or sub_goals[indices[0]].intent
        groups.append(
            SuiteGroup(
                name=clip_text(entry.get("name"), GROUP_NAME_MAX, fallback_name),
                intent=sanitize_intent(intent),
                sub_goal_indices=indices,
            )
        )

    for index, sub_goal in enumerate(sub_goals):
        if index not in claimed:
            logger.debug("Sub-goal %d missing from suite groups; adding singleton group", index)
            groups.append(
                SuiteGroup(
                    name=sub_goal.text[:GROUP_NAME_MAX],
                    intent=sub_goal.intent,
                    sub_goal_indices=[index],
                )
            )
    return groups


def sanitize_parse_result(data: Dict[str, Any], goal_text: str) -> ParsedGoal:
    """Turn a raw parse response into a validated ``ParsedGoal``.

    A ``multi`` answer with fewer than two usable sub-goals is downgraded to a
    single goal.
    """
    goal_type = str(data.get("goalType", data.get("goal_type")) or "single").strip().lower()
    if goal_type == "multi":
        sub_goals = _sub_goals(data.get("subGoals", data.get("sub_goals")))
        if len(sub_goals) >= 2:
            groups = repair_suite_groups(data.get("suiteGroups", data.get("suite_groups")), sub_goals)
            return ParsedGoal(
                goal_type="multi",
                intent=groups[0].intent,
                keywords=string_list(data.get("keywords")),
                sub_goals=sub_goals,
                synergies=string_list(data.get("synergies")),
                suite_groups=groups,
            )
        logger.info("Downgrading multi-goal parse with %d sub-goals to single", len(sub_goals))

    parsed = sanitize_parsed(data)
    if not parsed.keywords:
        parsed.keywords = heuristic_parse(goal_text).keywords
    return parsed


class GoalParser:
    """Classify goal text; never raises."""

    def __init__(self, llm: Optional[LanguageModel], *, max_tokens: int = 600) -> None:
        self._llm = llm
        self._max_tokens = max_tokens

    async def parse(self, goal_text: str) -> ParsedGoal:
        parsed, _ = await self.parse_with_usage(goal_text)
        return parsed

    async def parse_with_usage(self, goal_text: str) -> Tuple[ParsedGoal, TokenUsage]:
        if not is_available(self._llm):
            return heuristic_parse(goal_text), TokenUsage()

        try:
            with trace("transformer.parse", metadata={"goal_chars": len(goal_text)}):
                response = await self._llm.complete(
                    PARSE_SYSTEM_PROMPT,
                    goal_text,
                    temperature=PARSE_TEMPERATURE,
                    max_tokens=self._max_tokens,
                )
            usage = TokenUsage(input=response.input_tokens, output=response.output_tokens)
            return sanitize_parse_result(extract_json(response.text), goal_text), usage
        except Exception as exc:
            logger.warning("Goal parse failed, using heuristic fallback: %s", exc)
        return heuristic_parse(goal_text), TokenUsage()
