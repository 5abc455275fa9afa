"""Goal management endpoints."""
from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from blob.api.deps import get_decomposer, run_pipeline
from blob.api.schemas.goal import (
    GoalActionRequest,
    GoalCreateRequest,
    GoalResponse,
    GoalsOverviewResponse,
    GoalUpdateRequest,
)
from blob.db.deps import get_db
from blob.db.models.goal import Goal
from blob.observability.metrics import log_metric
from blob.observability.tracing import trace
from blob.services import goal_service
from blob.services.goal_decomposer import GoalDecomposer

router = APIRouter(prefix="/goals", tags=["goals"])


@router.get("", response_model=List[GoalResponse])
def list_goals(
    user_id: UUID = Query(...),
    include_completed: bool = Query(True),
    db: Session = Depends(get_db),
) -> List[GoalResponse]:
    goals = goal_service.list_goals(db, user_id, include_completed=include_completed)
    return [serialize_goal(goal) for goal in goals]


@router.get("/overview", response_model=GoalsOverviewResponse)
def goals_overview(user_id: UUID = Query(...), db: Session = Depends(get_db)) -> GoalsOverviewResponse:
    overview = goal_service.goals_overview(db, user_id)
    return GoalsOverviewResponse(
        total=overview.total,
        completed=overview.completed,
        active=overview.active,
        average_progress=overview.average_progress,
    )


@router.post("", response_model=GoalResponse, status_code=status.HTTP_201_CREATED)
def create_goal(
    payload: GoalCreateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
    decomposer: GoalDecomposer = Depends(get_decomposer),
) -> GoalResponse:
    """Create a goal manually; a breakdown is attached before the response returns."""
    with trace(
        "goals.create",
        metadata={"route": "/goals", "category": payload.category},
        user_id=str(payload.user_id),
        request_id=http_request.state.request_id,
    ):
        goal = run_pipeline(
            goal_service.create_goal(db, payload.user_id, payload.model_dump(exclude={"user_id"}), decomposer)
        )
    log_metric("goals.created", 1, {"source": "manual"})
    return serialize_goal(goal)


@router.get("/{goal_id}", response_model=GoalResponse)
def read_goal(goal_id: UUID, user_id: UUID = Query(...), db: Session = Depends(get_db)) -> GoalResponse:
    return serialize_goal(goal_service.get_goal(db, user_id, goal_id))


@router.patch("/{goal_id}", response_model=GoalResponse)
def update_goal(
    goal_id: UUID,
    payload: GoalUpdateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
    decomposer: GoalDecomposer = Depends(get_decomposer),
) -> GoalResponse:
    with trace(
        "goals.update",
        metadata={"route": f"/goals/{goal_id}"},
        user_id=str(payload.user_id),
        request_id=http_request.state.request_id,
    ):
        changes = payload.model_dump(exclude={"user_id"}, exclude_unset=True)
        goal = run_pipeline(goal_service.update_goal(db, payload.user_id, goal_id, changes, decomposer))
    return serialize_goal(goal)


@router.delete("/{goal_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_goal(goal_id: UUID, user_id: UUID = Query(...), db: Session = Depends(get_db)) -> Response:
    goal_service.delete_goal(db, user_id, goal_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{goal_id}/decompose", response_model=GoalResponse)
def redecompose_goal(
    goal_id: UUID,
    payload: GoalActionRequest,
    http_request: Request,
    db: Session = Depends(get_db),
    decomposer: GoalDecomposer = Depends(get_decomposer),
) -> GoalResponse:
    """Regenerate the goal's breakdown, e.g. after a fallback template was used."""
    with trace(
        "goals.decompose",
        metadata={"route": f"/goals/{goal_id}/decompose"},
        user_id=str(payload.user_id),
        request_id=http_request.state.request_id,
    ):
        goal = run_pipeline(goal_service.redecompose_goal(db, payload.user_id, goal_id, decomposer))
    return serialize_goal(goal)


@router.post("/{goal_id}/reset", response_model=GoalResponse)
def reset_goal(goal_id: UUID, payload: GoalActionRequest, db: Session = Depends(get_db)) -> GoalResponse:
    return serialize_goal(goal_service.reset_progress(db, payload.user_id, goal_id))


def serialize_goal(goal: Goal) -> GoalResponse:
    return GoalResponse.model_validate(goal)
