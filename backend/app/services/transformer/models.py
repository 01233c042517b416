"""Typed plan documents exchanged between the engine, storage and the API."""
from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_serializer,
    model_validator,
)
from pydantic.alias_generators import to_camel

Methodology = Literal["boolean", "numeric", "duration", "rating"]
FrequencyType = Literal["daily", "weekly", "specific_days", "custom"]
HabitCategory = Literal["health", "productivity", "learning", "fitness", "mindfulness", "social", "creative", "other"]
PlanCategory = Literal[
    "fitness",
    "health_wellness",
    "learning_skill",
    "productivity",
    "finance",
    "event_prep",
    "career",
    "relationships",
    "creative",
    "custom",
]
Intent = PlanCategory
Difficulty = Literal["easy", "medium", "hard"]
DurationUnit = Literal["days", "weeks", "months"]
GoalType = Literal["single", "multi"]
RefinementMode = Literal["blueprint", "active"]


class PlanStatus(str, Enum):
    DRAFT = "draft"
    PREVIEW = "preview"
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class CamelModel(BaseModel):
    """Snake-case attributes, camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class TokenUsage(CamelModel):
    input: int = 0
    output: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(input=self.input + other.input, output=self.output + other.output)

    @property
    def total(self) -> int:
        return self.input + self.output


# ── Habit blueprints and phases ──


class HabitFrequency(CamelModel):
    type: FrequencyType = "daily"
    days: List[str] = Field(default_factory=list)
    times_per_week: Optional[int] = None


class HabitTarget(CamelModel):
    value: Optional[float] = None
    unit: Optional[str] = None


class HabitBlueprint(CamelModel):
    name: str
    description: str = ""
    methodology: Methodology = "boolean"
    frequency: HabitFrequency = Field(default_factory=HabitFrequency)
    target: HabitTarget = Field(default_factory=HabitTarget)
    icon: str = "🎯"
    category: HabitCategory = "other"
    difficulty: Difficulty = "medium"
    is_required: bool = True


class Phase(CamelModel):
    name: str
    description: str = ""
    duration_days: int = Field(default=14, gt=0)
    order: int = 0
    habits: List[HabitBlueprint] = Field(default_factory=list)


class EstimatedDuration(CamelModel):
    value: float = 4
    unit: DurationUnit = "weeks"


class PhasedBody(CamelModel):
    kind: Literal["phased"] = "phased"
    phases: List[Phase] = Field(default_factory=list)


class FlatBody(CamelModel):
    kind: Literal["flat"] = "flat"
    habits: List[HabitBlueprint] = Field(default_factory=list)


PlanBody = Annotated[Union[PhasedBody, FlatBody], Field(discriminator="kind")]


class PlanSystem(CamelModel):
    """The generated habit system.

    Serialized with either a ``phases`` or a legacy flat ``habits`` list, never
    both; ``phases`` wins when a stored document carries a non-empty list.
    """

    name: str = "Untitled plan"
    description: str = ""
    icon: str = "🎯"
    category: PlanCategory = "custom"
    estimated_duration: EstimatedDuration = Field(default_factory=EstimatedDuration)
    body: PlanBody = Field(default_factory=PhasedBody)

    @model_validator(mode="before")
    @classmethod
    def _lift_body(cls, data: Any) -> Any:
        if isinstance(data, dict) and "body" not in data:
            data = dict(data)
            phases = data.pop("phases", None) or []
            habits = data.pop("habits", None) or []
            if phases:
                data["body"] = {"kind": "phased", "phases": phases}
            else:
                data["body"] = {"kind": "flat", "habits": habits} if habits else {"kind": "phased", "phases": []}
        return data

    @model_serializer(mode="wrap")
    def _flatten_body(self, handler):
        data = handler(self)
        body = data.pop("body", None) or {}
        body.pop("kind", None)
        data.update(body)
        return data

    @property
    def is_phased(self) -> bool:
        return isinstance(self.body, PhasedBody)

    @property
    def phases(self) -> List[Phase]:
        return self.body.phases if isinstance(self.body, PhasedBody) else []

    @property
    def flat_habits(self) -> List[HabitBlueprint]:
        return self.body.habits if isinstance(self.body, FlatBody) else []

    def all_habits(self) -> List[HabitBlueprint]:
        if isinstance(self.body, FlatBody):
            return list(self.body.habits)
        return [habit for phase in self.body.phases for habit in phase.habits]

    def total_days(self) -> int:
        return sum(phase.duration_days for phase in self.phases)

    def renumber_phases(self) -> None:
        for index, phase in enumerate(self.phases):
            phase.order = index

    def promote_flat(self, *, duration_days: int = 28) -> None:
        """Turn a legacy flat habit list into a single phase, in place."""
        if isinstance(self.body, FlatBody):
            self.body = PhasedBody(
                phases=[
                    Phase(
                        name="Phase 1",
                        description="",
                        duration_days=duration_days,
                        order=0,
                        habits=list(self.body.habits),
                    )
                ]
            )


# ── Goal parsing ──


class SubGoal(CamelModel):
    text: str
    intent: Intent = "custom"


class SuiteGroup(CamelModel):
    name: str
    intent: Intent = "custom"
    sub_goal_indices: List[int] = Field(default_factory=list)


class ParsedGoal(CamelModel):
    goal_type: GoalType = "single"
    intent: Intent = "custom"
    target_date: Optional[date] = None
    constraints: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    sub_goals: List[SubGoal] = Field(default_factory=list)
    synergies: List[str] = Field(default_factory=list)
    suite_groups: List[SuiteGroup] = Field(default_factory=list)


class Goal(CamelModel):
    text: str
    parsed: ParsedGoal = Field(default_factory=ParsedGoal)


class ClarificationAnswer(CamelModel):
    question: str
    answer: str


# ── Plan document ──


class CompletedPhase(CamelModel):
    phase_index: int
    phase_name: str
    completed_at: datetime


class Progress(CamelModel):
    current_phase_index: int = 0
    completed_phases: List[CompletedPhase] = Field(default_factory=list)
    overall_completion: int = 0


class RefinementTurn(CamelModel):
    role: Literal["user", "assistant"]
    message: str
    phases_snapshot: Optional[List[Dict[str, Any]]] = None


class GenerationInfo(CamelModel):
    model: Optional[str] = None
    generated_at: Optional[datetime] = None
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    user_edits_before_apply: int = 0


class AppliedResources(CamelModel):
    habit_ids: List[str] = Field(default_factory=list)


class TransformerPlan(CamelModel):
    """Root plan artifact ("Transformer")."""

    user_id: Optional[str] = None
    goal: Goal
    system: PlanSystem
    status: PlanStatus = PlanStatus.PREVIEW
    progress: Progress = Field(default_factory=Progress)
    refinements: List[RefinementTurn] = Field(default_factory=list)
    generation: GenerationInfo = Field(default_factory=GenerationInfo)
    applied_resources: AppliedResources = Field(default_factory=AppliedResources)
    suite_id: Optional[str] = None
    suite_index: Optional[int] = None
    suite_name: Optional[str] = None
    activated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def user_turns(self) -> int:
        return sum(1 for turn in self.refinements if turn.role == "user")

    def turns_remaining(self, max_refinements: int) -> int:
        return max(0, max_refinements - self.user_turns)
