"""Transformer (goal plan) API routes."""
from __future__ import annotations

from time import perf_counter
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.api.schemas.transformer import (
    AdvanceResponse,
    ApplyResponse,
    ArchiveRequest,
    ArchiveResponse,
    ClarifyRequest,
    ClarifyResponse,
    EditRequest,
    GenerateRequest,
    GenerateResponse,
    PhaseProgress,
    ProgressResponse,
    RefineRequest,
    RefineResponse,
    TransformerListResponse,
    TransformerResponse,
    UserScopedRequest,
)
from app.core.config import settings
from app.core.context import bind_user_id
from app.db.deps import get_db
from app.db.models.transformer import Transformer
from app.observability.metrics import log_metric
from app.observability.tracing import annotate, trace
from app.services import transformer_plans
from app.services.transformer import TransformerEngine
from app.services.transformer.clarification import ClarificationResult
from app.services.transformer.errors import (
    BudgetExceededError,
    LifecycleError,
    MalformedOutputError,
    ProviderUnavailableError,
    TransformerError,
)
from app.services.transformer.llm import LanguageModel, get_language_model
from app.services.transformer.models import PlanStatus, TransformerPlan
from app.services.transformer.sql_stores import SqlEntryStore, SqlHabitStore, SqlJournalStore, SqlProfileStore

router = APIRouter()

ERROR_STATUS = {
    ProviderUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    MalformedOutputError: status.HTTP_502_BAD_GATEWAY,
    BudgetExceededError: status.HTTP_400_BAD_REQUEST,
    LifecycleError: status.HTTP_409_CONFLICT,
}


def get_transformer_engine(
    db: Session = Depends(get_db),
    llm: LanguageModel = Depends(get_language_model),
) -> TransformerEngine:
    return TransformerEngine(
        llm,
        habits=SqlHabitStore(db),
        entries=SqlEntryStore(db),
        profiles=SqlProfileStore(db),
        journal=SqlJournalStore(db),
        config=settings,
    )


def _http_error(exc: TransformerError) -> HTTPException:
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=code, detail=exc.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.message)


def _request_id(http_request: Request) -> str:
    return getattr(http_request.state, "request_id", None) or ""


def _serialize(row: Transformer, plan: TransformerPlan) -> TransformerResponse:
    document = plan.to_document()
    document.update(
        {
            "id": row.id,
            "turnsRemaining": plan.turns_remaining(settings.transformer_max_refinements),
            "createdAt": row.created_at,
            "updatedAt": row.updated_at,
        }
    )
    return TransformerResponse.model_validate(document)


@router.post("/transformers/clarify", response_model=ClarifyResponse, tags=["transformers"])
async def clarify_goal(
    request: ClarifyRequest,
    http_request: Request,
    engine: TransformerEngine = Depends(get_transformer_engine),
) -> ClarifyResponse:
    """Decide whether to ask a few questions before generating a plan."""
    bind_user_id(str(request.user_id))
    request_id = _request_id(http_request)
    with trace("transformer.clarify.request", metadata={"route": "/transformers/clarify"}) as span:
        try:
            result = await engine.clarify(request.goal, str(request.user_id))
        except Exception as exc:
            log_metric("transformer.clarify.fallback", 1, metadata={"error": type(exc).__name__})
            result = ClarificationResult()
        annotate(span, needs_clarification=result.needs_clarification, questions=len(result.questions))

    return ClarifyResponse(
        needs_clarification=result.needs_clarification,
        questions=result.questions,
        reasoning=result.reasoning,
        goal_analysis=result.goal_analysis,
        request_id=request_id,
    )


@router.post("/transformers/generate", response_model=GenerateResponse, tags=["transformers"])
async def generate_transformer(
    request: GenerateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
    engine: TransformerEngine = Depends(get_transformer_engine),
) -> GenerateResponse:
    """Generate preview plan(s) from a goal and store them."""
    user_id: UUID = request.user_id
    bind_user_id(str(user_id))
    request_id = _request_id(http_request)
    base_metadata: Dict[str, Any] = {
        "route": "/transformers/generate",
        "goal_chars": len(request.goal),
        "clarification_answers": len(request.clarification_answers),
    }

    start_time = perf_counter()
    success = False
    plans_created = 0
    try:
        with trace("transformer.generation", metadata=base_metadata, user_id=str(user_id), request_id=request_id) as span:
            result = await engine.generate(
                request.goal,
                str(user_id),
                clarification_answers=request.clarification_answers,
                parsed_override=request.parsed_override,
            )
            stored = transformer_plans.persist_generation(db, user_id, result)
            plans_created = len(stored)
            annotate(span, goal_type=result.goal_type, plans=plans_created, tokens=result.token_usage.total)
            success = True
    except TransformerError as exc:
        db.rollback()
        raise _http_error(exc) from exc
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store transformer",
        ) from exc
    finally:
        latency_ms = (perf_counter() - start_time) * 1000
        metric_metadata = {"user_id": str(user_id), "plans_created": plans_created}
        log_metric("transformer.generation.success", 1 if success else 0, metadata=metric_metadata)
        log_metric("transformer.generation.latency_ms", latency_ms, metadata=metric_metadata)

    payloads = [_serialize(row, plan) for row, plan in stored]
    return GenerateResponse(
        goal_type=result.goal_type,
        preview=payloads[0] if result.goal_type == "single" else None,
        suite_id=result.suite_id,
        suite_name=result.suite_name,
        previews=payloads if result.goal_type == "multi" else [],
        token_usage=result.token_usage,
        request_id=request_id,
    )


@router.get("/transformers", response_model=TransformerListResponse, tags=["transformers"])
def list_transformers(
    http_request: Request,
    user_id: UUID = Query(...),
    status_filter: Optional[List[PlanStatus]] = Query(None, alias="status"),
    db: Session = Depends(get_db),
) -> TransformerListResponse:
    """List the user's plans; archived ones only when requested through ``status``."""
    plans = transformer_plans.list_plans(db, user_id, status_filter)
    return TransformerListResponse(
        transformers=[_serialize(row, plan) for row, plan in plans],
        request_id=_request_id(http_request),
    )


@router.get("/transformers/{transformer_id}", response_model=TransformerResponse, tags=["transformers"])
def get_transformer(
    transformer_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
) -> TransformerResponse:
    """Return a stored plan."""
    row, plan = transformer_plans.load_plan(db, transformer_id, user_id)
    return _serialize(row, plan)


@router.put("/transformers/{transformer_id}", response_model=TransformerResponse, tags=["transformers"])
def edit_transformer(
    transformer_id: UUID,
    request: EditRequest,
    db: Session = Depends(get_db),
) -> TransformerResponse:
    """Directly replace fields of a draft or preview plan."""
    bind_user_id(str(request.user_id))
    row, plan = transformer_plans.load_plan(db, transformer_id, request.user_id)
    update = request.model_dump(exclude={"user_id"}, exclude_none=True)
    with trace("transformer.edit", metadata={"transformer_id": str(transformer_id), "fields": sorted(update)}):
        try:
            plan = transformer_plans.edit_plan(db, row, plan, update)
        except TransformerError as exc:
            db.rollback()
            raise _http_error(exc) from exc
    return _serialize(row, plan)


@router.post("/transformers/{transformer_id}/refine", response_model=RefineResponse, tags=["transformers"])
async def refine_transformer(
    transformer_id: UUID,
    request: RefineRequest,
    http_request: Request,
    db: Session = Depends(get_db),
    engine: TransformerEngine = Depends(get_transformer_engine),
) -> RefineResponse:
    """Apply one conversational refinement turn to a plan."""
    bind_user_id(str(request.user_id))
    request_id = _request_id(http_request)
    row, plan = transformer_plans.load_plan(db, transformer_id, request.user_id)
    metadata = {"route": "/transformers/{id}/refine", "transformer_id": str(transformer_id), "status": row.status}

    with trace("transformer.refinement", metadata=metadata, request_id=request_id) as span:
        try:
            outcome = await transformer_plans.refine_plan(db, engine, row, plan, request.message)
        except TransformerError as exc:
            db.rollback()
            raise _http_error(exc) from exc
        annotate(span, patches_applied=outcome.patches_applied, turns_remaining=outcome.turns_remaining)

    return RefineResponse(
        transformer=_serialize(row, outcome.plan),
        assistant_message=outcome.assistant_message,
        changes=outcome.changes,
        patches_applied=outcome.patches_applied,
        rejected_patches=outcome.rejected_patches,
        turns_remaining=outcome.turns_remaining,
        request_id=request_id,
    )


@router.post("/transformers/{transformer_id}/apply", response_model=ApplyResponse, tags=["transformers"])
def apply_transformer(
    transformer_id: UUID,
    request: UserScopedRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> ApplyResponse:
    """Turn the plan's blueprints into tracked habits and activate it."""
    bind_user_id(str(request.user_id))
    request_id = _request_id(http_request)
    row, plan = transformer_plans.load_plan(db, transformer_id, request.user_id)
    with trace("transformer.apply", metadata={"transformer_id": str(transformer_id)}, request_id=request_id) as span:
        try:
            habits = transformer_plans.apply_plan(db, row, plan)
        except TransformerError as exc:
            db.rollback()
            raise _http_error(exc) from exc
        active = sum(1 for habit in habits if habit.is_active)
        annotate(span, habits_created=len(habits), active_habits=active)
    log_metric("transformer.apply.habits_created", len(habits), metadata={"transformer_id": str(transformer_id)})

    return ApplyResponse(
        transformer=_serialize(row, plan),
        habit_ids=[habit.id for habit in habits],
        active_habits=active,
        request_id=request_id,
    )


@router.post("/transformers/{transformer_id}/advance-phase", response_model=AdvanceResponse, tags=["transformers"])
def advance_transformer_phase(
    transformer_id: UUID,
    request: UserScopedRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> AdvanceResponse:
    """Close the current phase; past the final phase the plan completes."""
    bind_user_id(str(request.user_id))
    request_id = _request_id(http_request)
    row, plan = transformer_plans.load_plan(db, transformer_id, request.user_id)
    with trace("transformer.advance_phase", metadata={"transformer_id": str(transformer_id)}, request_id=request_id):
        try:
            result = transformer_plans.advance_plan(db, row, plan)
        except TransformerError as exc:
            db.rollback()
            raise _http_error(exc) from exc

    return AdvanceResponse(
        transformer=_serialize(row, plan),
        completed=result.completed,
        current_phase_index=result.current_phase_index,
        request_id=request_id,
    )


@router.get("/transformers/{transformer_id}/progress", response_model=ProgressResponse, tags=["transformers"])
def get_transformer_progress(
    transformer_id: UUID,
    http_request: Request,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
) -> ProgressResponse:
    """Per-phase progress with habits."""
    row, plan = transformer_plans.load_plan(db, transformer_id, user_id)
    phases = [PhaseProgress(**entry) for entry in transformer_plans.progress_view(plan)]
    return ProgressResponse(
        transformer_id=row.id,
        status=row.status,
        current_phase_index=plan.progress.current_phase_index,
        overall_completion=plan.progress.overall_completion,
        phases=phases,
        request_id=_request_id(http_request),
    )


@router.post("/transformers/{transformer_id}/archive", response_model=ArchiveResponse, tags=["transformers"])
def archive_transformer(
    transformer_id: UUID,
    request: ArchiveRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> ArchiveResponse:
    """Archive a plan; its tracked habits are kept, archived or deleted according to ``mode``."""
    bind_user_id(str(request.user_id))
    request_id = _request_id(http_request)
    row, plan = transformer_plans.load_plan(db, transformer_id, request.user_id)
    with trace("transformer.archive", metadata={"transformer_id": str(transformer_id), "mode": request.mode}):
        try:
            outcome = transformer_plans.archive_plan(db, row, plan, request.mode)
        except TransformerError as exc:
            db.rollback()
            raise _http_error(exc) from exc

    return ArchiveResponse(
        transformer=_serialize(row, plan),
        habits_archived=outcome.habits_archived,
        habits_deleted=outcome.habits_deleted,
        request_id=request_id,
    )
