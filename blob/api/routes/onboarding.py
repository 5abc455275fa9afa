"""Onboarding endpoints: free-text answers in, goals and a first plan out."""
from __future__ import annotations

from time import perf_counter
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from blob.api.deps import get_orchestrator, run_pipeline
from blob.api.routes.goals import serialize_goal
from blob.api.routes.system import serialize_initialization
from blob.api.schemas.onboarding import OnboardingRequest, OnboardingResponse, OnboardingRetryRequest
from blob.db.deps import get_db
from blob.observability.metrics import log_metric
from blob.observability.tracing import trace
from blob.services.orchestrator import OnboardingOutcome, Orchestrator

router = APIRouter(prefix="/onboarding", tags=["onboarding"])


@router.post("", response_model=OnboardingResponse)
def submit_onboarding(
    payload: OnboardingRequest,
    http_request: Request,
    db: Session = Depends(get_db),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> OnboardingResponse:
    """Extract goals from the user's answers, decompose them and build the first schedules."""
    request_id = http_request.state.request_id
    start = perf_counter()
    with trace(
        "onboarding.submit",
        metadata={"route": "/onboarding", "text_length": len(payload.text)},
        user_id=str(payload.user_id),
        request_id=request_id,
    ):
        outcome = run_pipeline(orchestrator.onboard(db, payload.user_id, payload.text, payload.profile))
    log_metric("onboarding.latency_ms", (perf_counter() - start) * 1000, {"status": outcome.status})
    return _serialize(outcome, request_id)


@router.post("/retry", response_model=OnboardingResponse)
def retry_onboarding(
    payload: OnboardingRetryRequest,
    http_request: Request,
    db: Session = Depends(get_db),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> OnboardingResponse:
    """Re-run extraction on the stored answers after an earlier failure."""
    request_id = http_request.state.request_id
    with trace(
        "onboarding.retry",
        metadata={"route": "/onboarding/retry"},
        user_id=str(payload.user_id),
        request_id=request_id,
    ):
        outcome = run_pipeline(orchestrator.retry_onboarding(db, payload.user_id))
    return _serialize(outcome, request_id)


def _serialize(outcome: OnboardingOutcome, request_id: Optional[str]) -> OnboardingResponse:
    return OnboardingResponse(
        status=outcome.status,
        message=outcome.message,
        insights_id=outcome.insights_id,
        goals=[serialize_goal(goal) for goal in outcome.goals],
        initialization=serialize_initialization(outcome.initialization) if outcome.initialization else None,
        request_id=request_id or "",
    )
