"""Public facade of the transformer engine.

The engine holds no per-request state: the model client and the storage
collaborators are injected, and every call receives its inputs explicitly.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from app.core.config import Settings, settings as default_settings
from app.observability.metrics import log_metric
from app.services.transformer.clarification import ClarificationAssessor, ClarificationResult
from app.services.transformer.dossier import Dossier, DossierBuilder
from app.services.transformer.errors import ProviderUnavailableError
from app.services.transformer.goal_parser import GoalParser, repair_suite_groups
from app.services.transformer.lifecycle import ensure_refinable, refinement_mode
from app.services.transformer.llm import LanguageModel, is_available
from app.services.transformer.models import (
    ClarificationAnswer,
    GoalType,
    ParsedGoal,
    PlanSystem,
    RefinementMode,
    TokenUsage,
    TransformerPlan,
)
from app.services.transformer.patches import Patch, PatchChange, apply_patches
from app.services.transformer.refinement import RefinementEngine, RefinementResult
from app.services.transformer.schema_guard import MAX_PHASES
from app.services.transformer.stores import EntryStore, HabitStore, JournalStore, ProfileStore
from app.services.transformer.synthesizer import PlanSynthesizer

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    goal_type: GoalType
    preview: Optional[TransformerPlan] = None
    suite_id: Optional[str] = None
    suite_name: Optional[str] = None
    previews: List[TransformerPlan] = field(default_factory=list)
    token_usage: TokenUsage = field(default_factory=TokenUsage)

    @property
    def plans(self) -> List[TransformerPlan]:
        return [self.preview] if self.preview is not None else list(self.previews)


def normalize_parsed_override(parsed: ParsedGoal) -> ParsedGoal:
    """Re-check a caller-supplied parse so a suite always covers every sub-goal once."""
    if parsed.goal_type != "multi":
        return parsed
    if len(parsed.sub_goals) < 2:
        return parsed.model_copy(update={"goal_type": "single", "sub_goals": [], "suite_groups": []})
    groups = repair_suite_groups([group.to_document() for group in parsed.suite_groups], parsed.sub_goals)
    return parsed.model_copy(update={"suite_groups": groups})


class TransformerEngine:
    def __init__(
        self,
        llm: Optional[LanguageModel],
        *,
        habits: HabitStore,
        entries: EntryStore,
        profiles: ProfileStore,
        journal: Optional[JournalStore] = None,
        config: Settings = default_settings,
    ) -> None:
        self._llm = llm
        self.dossiers = DossierBuilder(habits, entries, profiles, journal, max_chars=config.dossier_max_chars)
        self.parser = GoalParser(llm, max_tokens=config.transformer_parse_max_tokens)
        self.assessor = ClarificationAssessor(llm, self.parser, self.dossiers, profiles)
        self.synthesizer = PlanSynthesizer(
            llm,
            temperature=config.transformer_generation_temperature,
            max_tokens=config.transformer_generation_max_tokens,
            dossier_max_chars=config.dossier_max_chars,
        )
        self.refiner = RefinementEngine(
            llm,
            max_refinements=config.transformer_max_refinements,
            max_tokens=config.transformer_refine_max_tokens,
            dossier_max_chars=config.dossier_max_chars,
        )

    def is_available(self) -> bool:
        return is_available(self._llm)

    def _require_provider(self) -> None:
        if not self.is_available():
            raise ProviderUnavailableError()

    async def clarify(self, goal_text: str, user_id: str) -> ClarificationResult:
        return await self.assessor.assess(goal_text, user_id)

    async def generate(
        self,
        goal_text: str,
        user_id: str,
        clarification_answers: Optional[Sequence[ClarificationAnswer]] = None,
        parsed_override: Optional[ParsedGoal] = None,
    ) -> GenerationResult:
        """Generate a preview plan, or a suite of previews for a compound goal."""
        self._require_provider()

        if parsed_override is not None:
            parsed = normalize_parsed_override(parsed_override)
            dossier = await self.dossiers.build(user_id)
            usage = TokenUsage()
        else:
            (parsed, usage), dossier = await asyncio.gather(
                self.parser.parse_with_usage(goal_text),
                self.dossiers.build(user_id),
            )

        if parsed.goal_type == "multi" and parsed.suite_groups:
            suite = await self.synthesizer.generate_suite(
                goal_text,
                parsed,
                dossier,
                user_id=user_id,
                clarification_answers=clarification_answers,
            )
            for plan in suite.plans:
                plan.goal.parsed.synergies = list(parsed.synergies)
            result = GenerationResult(
                goal_type="multi",
                suite_id=suite.suite_id,
                suite_name=suite.suite_name,
                previews=suite.plans,
                token_usage=usage + suite.token_usage,
            )
        else:
            plan = await self.synthesizer.generate_single(
                goal_text,
                parsed,
                dossier,
                user_id=user_id,
                clarification_answers=clarification_answers,
            )
            result = GenerationResult(
                goal_type="single",
                preview=plan,
                token_usage=usage + plan.generation.token_usage,
            )

        metadata = {"goal_type": result.goal_type, "plans": len(result.plans)}
        log_metric("transformer.generate.success", 1, metadata=metadata)
        log_metric("transformer.generate.tokens", result.token_usage.total, metadata=metadata)
        logger.info(
            "Generated %d %s plan(s) for user %s (%d tokens)",
            len(result.plans),
            result.goal_type,
            user_id,
            result.token_usage.total,
        )
        return result

    async def build_dossier(self, user_id: str) -> Dossier:
        return await self.dossiers.build(user_id)

    async def refine(
        self,
        plan: TransformerPlan,
        message: str,
        mode: Optional[RefinementMode] = None,
    ) -> RefinementResult:
        """Propose patches for ``plan``; raises ``BudgetExceededError`` once the turn budget is spent."""
        self._require_provider()
        ensure_refinable(plan)
        self.refiner.check_budget(plan)
        dossier = await self.dossiers.build(plan.user_id) if plan.user_id else Dossier.empty()
        return await self.refiner.refine(plan, message, mode or refinement_mode(plan), dossier)

    def apply_patches(self, system: PlanSystem, patches: Sequence[Patch]) -> List[PatchChange]:
        changes = apply_patches(system, list(patches), max_phases=MAX_PHASES)
        log_metric("transformer.refine.patches_applied", len(changes), metadata={"patches": len(patches)})
        return changes

    def turns_remaining(self, plan: TransformerPlan) -> int:
        return self.refiner.turns_remaining(plan)
