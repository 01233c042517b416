"""Schemas for the transformer (goal plan) endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import Field, field_validator

from app.services.transformer.clarification import ClarificationQuestion
from app.services.transformer.models import (
    CamelModel,
    ClarificationAnswer,
    GoalType,
    HabitBlueprint,
    ParsedGoal,
    TokenUsage,
    TransformerPlan,
)
from app.services.transformer.patches import PatchChange

GOAL_MIN_CHARS = 5
GOAL_MAX_CHARS = 1000
MESSAGE_MIN_CHARS = 2


def _trimmed_goal(value: str) -> str:
    cleaned = value.strip()
    if not GOAL_MIN_CHARS <= len(cleaned) <= GOAL_MAX_CHARS:
        raise ValueError(f"goal must be between {GOAL_MIN_CHARS} and {GOAL_MAX_CHARS} characters")
    return cleaned


class ClarifyRequest(CamelModel):
    user_id: UUID
    goal: str

    @field_validator("goal")
    @classmethod
    def validate_goal(cls, value: str) -> str:
        return _trimmed_goal(value)


class ClarifyResponse(CamelModel):
    needs_clarification: bool
    questions: List[ClarificationQuestion] = Field(default_factory=list)
    reasoning: str
    goal_analysis: Optional[str] = None
    request_id: str


class GenerateRequest(CamelModel):
    user_id: UUID
    goal: str
    clarification_answers: List[ClarificationAnswer] = Field(default_factory=list)
    parsed_override: Optional[ParsedGoal] = None

    @field_validator("goal")
    @classmethod
    def validate_goal(cls, value: str) -> str:
        return _trimmed_goal(value)


class TransformerResponse(TransformerPlan):
    id: UUID
    # TransformerPlan.turns_remaining is a method; the field keeps the wire name.
    turns_left: int = Field(alias="turnsRemaining")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TransformerListResponse(CamelModel):
    transformers: List[TransformerResponse] = Field(default_factory=list)
    request_id: str


class GenerateResponse(CamelModel):
    goal_type: GoalType
    preview: Optional[TransformerResponse] = None
    suite_id: Optional[str] = None
    suite_name: Optional[str] = None
    previews: List[TransformerResponse] = Field(default_factory=list)
    token_usage: TokenUsage
    request_id: str


class UserScopedRequest(CamelModel):
    user_id: UUID


class EditRequest(UserScopedRequest):
    name: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    icon: Optional[str] = Field(default=None, max_length=32)
    phases: Optional[List[Dict[str, Any]]] = None
    habits: Optional[List[Dict[str, Any]]] = None


class RefineRequest(UserScopedRequest):
    message: str = Field(..., max_length=2000)

    @field_validator("message")
    @classmethod
    def validate_message(cls, value: str) -> str:
        cleaned = value.strip()
        if len(cleaned) < MESSAGE_MIN_CHARS:
            raise ValueError(f"message must be at least {MESSAGE_MIN_CHARS} characters")
        return cleaned


class RefineResponse(CamelModel):
    transformer: TransformerResponse
    assistant_message: str
    changes: List[PatchChange] = Field(default_factory=list)
    patches_applied: int
    rejected_patches: int = 0
    turns_remaining: int
    request_id: str


class ApplyResponse(CamelModel):
    transformer: TransformerResponse
    habit_ids: List[UUID]
    active_habits: int
    request_id: str


class AdvanceResponse(CamelModel):
    transformer: TransformerResponse
    completed: bool
    current_phase_index: int
    request_id: str


class ArchiveRequest(UserScopedRequest):
    mode: Literal["keep_habits", "cascade", "delete_habits"] = "keep_habits"


class ArchiveResponse(CamelModel):
    transformer: TransformerResponse
    habits_archived: int
    habits_deleted: int = 0
    request_id: str


class PhaseProgress(CamelModel):
    index: int
    name: str
    description: str = ""
    duration_days: int
    status: Literal["completed", "active", "upcoming", "locked"]
    habits: List[HabitBlueprint] = Field(default_factory=list)


class ProgressResponse(CamelModel):
    transformer_id: UUID
    status: str
    current_phase_index: int
    overall_completion: int
    phases: List[PhaseProgress]
    request_id: str
