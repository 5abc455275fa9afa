"""User profile endpoints."""
from __future__ import annotations

from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from blob.api.schemas.user import UserCreateRequest, UserProfileFields, UserResponse
from blob.db.deps import get_db
from blob.db.models.user import User
from blob.observability.tracing import trace
from blob.services.availability import available_hours
from blob.services.user_service import get_or_create_user, get_user, update_profile

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(payload: UserCreateRequest, http_request: Request, db: Session = Depends(get_db)) -> UserResponse:
    """Create a user (or return the existing one) and apply any profile fields supplied."""
    user_id = payload.user_id or uuid4()
    with trace(
        "users.create",
        metadata={"route": "/users"},
        user_id=str(user_id),
        request_id=http_request.state.request_id,
    ):
        user = get_or_create_user(db, user_id)
        changes = payload.model_dump(exclude={"user_id"}, exclude_none=True)
        user = update_profile(db, user, changes)
    return serialize_user(user)


@router.get("/{user_id}", response_model=UserResponse)
def read_user(user_id: UUID, db: Session = Depends(get_db)) -> UserResponse:
    return serialize_user(get_user(db, user_id))


@router.patch("/{user_id}", response_model=UserResponse)
def patch_user(
    user_id: UUID,
    payload: UserProfileFields,
    http_request: Request,
    db: Session = Depends(get_db),
) -> UserResponse:
    """Edit scheduling preferences; progression fields are read-only here."""
    with trace(
        "users.update",
        metadata={"route": f"/users/{user_id}"},
        user_id=str(user_id),
        request_id=http_request.state.request_id,
    ):
        user = update_profile(db, get_user(db, user_id), payload.model_dump(exclude_none=True))
    return serialize_user(user)


def serialize_user(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        display_name=user.display_name,
        energy_pattern=user.energy_pattern,
        work_style=user.work_style,
        stress_response=user.stress_response,
        work_start_time=user.work_start_time,
        work_end_time=user.work_end_time,
        break_duration_min=user.break_duration_min,
        preferred_task_duration_min=user.preferred_task_duration_min,
        available_hours=available_hours(user.work_start_time, user.work_end_time, user.break_duration_min),
        xp_total=user.xp_total,
        level=user.level,
        current_streak=user.current_streak,
        longest_streak=user.longest_streak,
        last_activity_on=user.last_activity_on,
        created_at=user.created_at,
    )
