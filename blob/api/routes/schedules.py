"""Daily schedule endpoints."""
from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from blob.api.deps import get_orchestrator, run_pipeline
from blob.api.schemas.schedule import ScheduleRegenerateRequest, ScheduleResponse
from blob.core.errors import NotFoundError
from blob.db.deps import get_db
from blob.db.models.schedule import Schedule
from blob.observability.tracing import trace
from blob.services.orchestrator import Orchestrator
from blob.services.schedule_synthesizer import Commitment
from blob.services.task_generator import SchedulingPreferences
from blob.services.user_service import get_user

router = APIRouter(prefix="/schedules", tags=["schedules"])


@router.get("/{schedule_date}", response_model=ScheduleResponse)
def read_schedule(schedule_date: date, user_id: UUID = Query(...), db: Session = Depends(get_db)) -> ScheduleResponse:
    schedule = (
        db.query(Schedule)
        .filter(Schedule.user_id == user_id, Schedule.schedule_date == schedule_date)
        .one_or_none()
    )
    if schedule is None:
        raise NotFoundError("No schedule for that date.")
    return ScheduleResponse.model_validate(schedule)


@router.post("/{schedule_date}/regenerate", response_model=ScheduleResponse)
def regenerate_schedule(
    schedule_date: date,
    payload: ScheduleRegenerateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> ScheduleResponse:
    """Rebuild one day's schedule, replacing the stored one."""
    user = get_user(db, payload.user_id)
    commitments = [Commitment(title=item.title, start=item.start, end=item.end) for item in payload.commitments]
    with trace(
        "schedules.regenerate",
        metadata={"route": f"/schedules/{schedule_date.isoformat()}/regenerate", "commitments": len(commitments)},
        user_id=str(payload.user_id),
        request_id=http_request.state.request_id,
    ):
        schedule = run_pipeline(
            orchestrator.synthesizer.synthesize(
                db,
                payload.user_id,
                schedule_date,
                SchedulingPreferences.from_user(user),
                commitments,
            )
        )
    return ScheduleResponse.model_validate(schedule)
