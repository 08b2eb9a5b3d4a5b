"""Quest generation endpoints."""
from __future__ import annotations

from time import perf_counter
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status

from questgen.api.deps import get_quest_pipeline
from questgen.api.schemas.quests import (
    DeriveRequest,
    DeriveResponse,
    GoalDeepDiveRequest,
    PipelineRunPayload,
    QuestGenerationRequest,
    QuestGenerationResponse,
)
from questgen.observability.metrics import log_metric
from questgen.observability.tracing import trace
from questgen.services.constraints import derive_constraints, derive_daily
from questgen.services.contracts import GoalDeepDiveQuestions
from questgen.services.errors import BackendError, NotInitialized, QuestGenerationError
from questgen.services.quest_pipeline import PipelineRun, QuestPipeline

router = APIRouter()


def _http_error(exc: QuestGenerationError) -> HTTPException:
    if isinstance(exc, NotInitialized):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(exc, BackendError) and exc.is_timeout:
        code = status.HTTP_504_GATEWAY_TIMEOUT
    else:
        code = status.HTTP_502_BAD_GATEWAY
    return HTTPException(status_code=code, detail=exc.to_dict())


@router.post("/quests/generate", response_model=QuestGenerationResponse, tags=["quests"])
def generate_quests_endpoint(
    payload: QuestGenerationRequest,
    http_request: Request,
    pipeline: QuestPipeline = Depends(get_quest_pipeline),
) -> QuestGenerationResponse:
    """Run skill map, daily quest drafting and policy check for one learner."""
    request_id = getattr(http_request.state, "request_id", None)
    goal_text = (payload.goal_text or "").strip() or (payload.profile.long_term_goal or "").strip()
    if not goal_text:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="goal_text is required when profile.long_term_goal is empty",
        )

    metadata: Dict[str, Any] = {
        "route": "/quests/generate",
        "request_id": request_id,
        "heat_level": payload.profile.heat_level,
        "llm_input_text": goal_text[:500],
    }
    pipeline_run = PipelineRun()
    start_time = perf_counter()
    success = False
    try:
        with trace("http.quests.generate", metadata=metadata, request_id=request_id):
            result = pipeline.run(
                goal_text,
                payload.profile,
                current_level_tags=payload.current_level_tags,
                priority_areas=payload.priority_areas,
                checkin=payload.checkin,
                request_id=request_id,
                pipeline_run=pipeline_run,
            )
        success = True
    except QuestGenerationError as exc:
        raise _http_error(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    finally:
        latency_ms = (perf_counter() - start_time) * 1000
        metric_metadata = {"route": "/quests/generate", "stage": pipeline_run.stage.value}
        log_metric("quests.generate.success", 1 if success else 0, metadata=metric_metadata)
        log_metric("quests.generate.latency_ms", latency_ms, metadata=metric_metadata)

    run_state = result.run.to_dict()
    return QuestGenerationResponse(
        skill_atoms=result.skill_atoms,
        quests_candidate=result.quests_candidate,
        final_quests=result.final_quests,
        pipeline=PipelineRunPayload(
            stage=run_state["stage"],
            history=run_state["history"],
            notes=run_state["notes"],
        ),
        request_id=request_id or "",
    )


@router.post("/quests/derive", response_model=DeriveResponse, tags=["quests"])
def derive_quest_envelope(payload: DeriveRequest, http_request: Request) -> DeriveResponse:
    """Compute the daily envelope and policy constraints without calling the backend."""
    request_id = getattr(http_request.state, "request_id", None)
    with trace("http.quests.derive", metadata={"route": "/quests/derive"}, request_id=request_id):
        derived = derive_daily(payload.profile)
        constraints = derive_constraints(payload.profile, derived, payload.checkin)
    return DeriveResponse(derived=derived, constraints=constraints)


@router.post("/goals/deep-dive", response_model=GoalDeepDiveQuestions, tags=["goals"])
def goal_deep_dive_endpoint(
    http_request: Request,
    payload: GoalDeepDiveRequest | None = None,
    pipeline: QuestPipeline = Depends(get_quest_pipeline),
) -> GoalDeepDiveQuestions:
    """Return the four onboarding questions that sharpen a goal statement."""
    params = payload or GoalDeepDiveRequest()
    request_id = getattr(http_request.state, "request_id", None)
    start_time = perf_counter()
    success = False
    try:
        with trace("http.goals.deep_dive", metadata={"route": "/goals/deep-dive"}, request_id=request_id):
            questions = pipeline.generate_goal_deep_dive(params.goal_text)
        success = True
    except QuestGenerationError as exc:
        raise _http_error(exc) from exc
    finally:
        log_metric(
            "goals.deep_dive.success",
            1 if success else 0,
            metadata={"latency_ms": (perf_counter() - start_time) * 1000},
        )
    return questions
