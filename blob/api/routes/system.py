"""System-level endpoints for plan initialization."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from blob.api.deps import get_orchestrator, run_pipeline
from blob.api.schemas.schedule import GoalFailurePayload, InitializationResponse, InitializeRequest
from blob.db.deps import get_db
from blob.observability.tracing import trace
from blob.services.orchestrator import InitializationSummary, Orchestrator
from blob.services.schedule_synthesizer import Commitment

router = APIRouter(prefix="/system", tags=["system"])


@router.post("/initialize", response_model=InitializationResponse)
def initialize_plan(
    payload: InitializeRequest,
    http_request: Request,
    db: Session = Depends(get_db),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> InitializationResponse:
    """Generate tasks for every active goal and schedule the coming days."""
    commitments = [Commitment(title=item.title, start=item.start, end=item.end) for item in payload.commitments]
    with trace(
        "system.initialize",
        metadata={"route": "/system/initialize", "force": payload.force},
        user_id=str(payload.user_id),
        request_id=http_request.state.request_id,
    ):
        summary = run_pipeline(
            orchestrator.initialize(
                db,
                payload.user_id,
                days=payload.days,
                force=payload.force,
                commitments=commitments,
            )
        )
    return serialize_initialization(summary)


def serialize_initialization(summary: InitializationSummary) -> InitializationResponse:
    return InitializationResponse(
        status=summary.status,
        goals_active=summary.goals_active,
        tasks_generated=summary.tasks_generated,
        fallback_goals=summary.fallback_goals,
        schedule_ids=summary.schedule_ids,
        schedule_dates=summary.schedule_dates,
        failures=[
            GoalFailurePayload(goal_id=failure.goal_id, title=failure.title, error=failure.error)
            for failure in summary.failures
        ],
        next_actions=summary.next_actions,
    )
