"""Task listing, completion and status endpoints."""
from __future__ import annotations

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from blob.api.deps import get_orchestrator
from blob.api.schemas.task import (
    TaskCompleteRequest,
    TaskCompleteResponse,
    TaskRescheduleRequest,
    TaskStatsResponse,
    TaskStatusRequest,
    TaskSummary,
)
from blob.db.deps import get_db
from blob.observability.metrics import log_metric
from blob.observability.tracing import trace
from blob.services.orchestrator import Orchestrator
from blob.services.task_service import list_tasks, task_stats

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("", response_model=List[TaskSummary])
def read_tasks(
    user_id: UUID = Query(...),
    day: Optional[date] = Query(None, alias="date"),
    status_filter: Optional[str] = Query(None, alias="status"),
    goal_id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
) -> List[TaskSummary]:
    tasks = list_tasks(db, user_id, day=day, status=status_filter, goal_id=goal_id)
    return [TaskSummary.model_validate(task) for task in tasks]


@router.get("/stats", response_model=TaskStatsResponse)
def read_task_stats(
    user_id: UUID = Query(...),
    day: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(get_db),
) -> TaskStatsResponse:
    stats = task_stats(db, user_id, day=day)
    return TaskStatsResponse(
        total=stats.total,
        completed=stats.completed,
        pending=stats.pending,
        in_progress=stats.in_progress,
        skipped=stats.skipped,
        completion_rate=stats.completion_rate,
    )


@router.post("/{task_id}/complete", response_model=TaskCompleteResponse)
def complete_task(
    task_id: UUID,
    payload: TaskCompleteRequest,
    http_request: Request,
    db: Session = Depends(get_db),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> TaskCompleteResponse:
    """Complete a task, award XP once, and advance the linked goal."""
    request_id = http_request.state.request_id
    with trace(
        "tasks.complete",
        metadata={"route": f"/tasks/{task_id}/complete", "task_id": str(task_id)},
        user_id=str(payload.user_id),
        request_id=request_id,
    ):
        result = orchestrator.on_task_completed(
            db,
            payload.user_id,
            task_id,
            payload.metadata,
            completed_on=payload.completed_on,
        )
    outcome = result.outcome
    if outcome.duplicate:
        log_metric("tasks.complete.duplicate", 1)

    return TaskCompleteResponse(
        task=TaskSummary.model_validate(outcome.task),
        xp_awarded=outcome.xp_awarded,
        duplicate=outcome.duplicate,
        message=result.message,
        xp_total=outcome.xp_total,
        level=outcome.level,
        leveled_up=outcome.leveled_up,
        current_streak=outcome.current_streak,
        goal_id=outcome.goal.goal_id if outcome.goal else None,
        goal_progress=outcome.goal.progress if outcome.goal else None,
        goal_completed=bool(outcome.goal and outcome.goal.completed),
        request_id=request_id or "",
    )


@router.patch("/{task_id}/status", response_model=TaskSummary)
def change_task_status(
    task_id: UUID,
    payload: TaskStatusRequest,
    http_request: Request,
    db: Session = Depends(get_db),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> TaskSummary:
    with trace(
        "tasks.status",
        metadata={"route": f"/tasks/{task_id}/status", "status": payload.status},
        user_id=str(payload.user_id),
        request_id=http_request.state.request_id,
    ):
        task = orchestrator.tracker.change_status(db, payload.user_id, task_id, payload.status)
    return TaskSummary.model_validate(task)


@router.post("/{task_id}/reschedule", response_model=TaskSummary)
def reschedule_task(
    task_id: UUID,
    payload: TaskRescheduleRequest,
    http_request: Request,
    db: Session = Depends(get_db),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> TaskSummary:
    with trace(
        "tasks.reschedule",
        metadata={"route": f"/tasks/{task_id}/reschedule", "new_date": payload.new_date.isoformat()},
        user_id=str(payload.user_id),
        request_id=http_request.state.request_id,
    ):
        task = orchestrator.tracker.reschedule(
            db, payload.user_id, task_id, payload.new_date, time_slot=payload.time_slot
        )
    return TaskSummary.model_validate(task)
