"""Helpers for working with users."""
from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from blob.core.errors import NotFoundError, ValidationError
from blob.db.models.onboarding_insights import OnboardingInsights
from blob.db.models.user import User
from blob.services.availability import time_to_minutes

PROFILE_FIELDS = (
    "display_name",
    "energy_pattern",
    "work_style",
    "stress_response",
    "work_start_time",
    "work_end_time",
    "break_duration_min",
    "preferred_task_duration_min",
)

STRESS_PHRASES = {
    "reduce": "Under stress, a lighter load helps.",
    "structure": "Under stress, clear structure helps.",
    "support": "Under stress, encouragement helps.",
}


def get_or_create_user(db: Session, user_id: UUID) -> User:
    """Fetch an existing user or create a new row safely."""
    user = db.get(User, user_id)
    if user:
        return user

    user = User(id=user_id)
    db.add(user)
    try:
        db.flush()
        return user
    except IntegrityError:
        db.rollback()
        existing = db.get(User, user_id)
        if existing:
            return existing
        raise


def get_user(db: Session, user_id: UUID) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found.")
    return user


def update_profile(db: Session, user: User, changes: Dict[str, Any]) -> User:
    """Apply profile edits. XP, level and streak are owned by the progression tracker."""
    for field_name, value in changes.items():
        if field_name not in PROFILE_FIELDS:
            raise ValidationError(f"Field {field_name!r} cannot be edited.")
        setattr(user, field_name, value)

    start = time_to_minutes(user.work_start_time)
    end = time_to_minutes(user.work_end_time)
    if end <= start:
        raise ValidationError("Work end time must be after work start time.")
    if user.break_duration_min is not None and user.break_duration_min < 0:
        raise ValidationError("Break duration cannot be negative.")
    if user.preferred_task_duration_min is not None and user.preferred_task_duration_min <= 0:
        raise ValidationError("Preferred task duration must be positive.")

    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def build_user_context(db: Session, user: User) -> str:
    """Short free-text description of the user for generation prompts."""
    parts = []
    insights: Optional[OnboardingInsights] = (
        db.query(OnboardingInsights).filter(OnboardingInsights.user_id == user.id).one_or_none()
    )
    if insights and insights.status == "processed" and insights.summary:
        context = (insights.summary or {}).get("user_context")
        if context:
            parts.append(context)
    if user.energy_pattern:
        parts.append(f"Most energetic in the {user.energy_pattern}.")
    if user.work_style:
        parts.append(f"Prefers a {user.work_style.replace('_', ' ')} work style.")
    if user.stress_response in STRESS_PHRASES:
        parts.append(STRESS_PHRASES[user.stress_response])
    return " ".join(parts)
