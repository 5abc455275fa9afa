"""Goal CRUD, re-decomposition and progress overview."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from blob.core.errors import NotFoundError, ValidationError
from blob.db.models.activity_log import ActivityLog
from blob.db.models.goal import Goal
from blob.db.models.task import Task
from blob.services.breakdown import dump_breakdown
from blob.services.goal_decomposer import GoalDecomposer, GoalSpec
from blob.services.insight_extractor import GOAL_CATEGORIES, PRIORITIES
from blob.services.user_service import build_user_context, get_user

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "description", "category", "priority", "target_date")


@dataclass
class GoalsOverview:
    total: int
    completed: int
    active: int
    average_progress: float


def list_goals(db: Session, user_id: UUID, *, include_completed: bool = True) -> List[Goal]:
    query = db.query(Goal).filter(Goal.user_id == user_id)
    if not include_completed:
        query = query.filter(Goal.is_completed.is_(False))
    return query.order_by(Goal.created_at.asc()).all()


def get_goal(db: Session, user_id: UUID, goal_id: UUID) -> Goal:
    goal = db.get(Goal, goal_id)
    if goal is None or goal.user_id != user_id:
        raise NotFoundError("Goal not found.")
    return goal


async def create_goal(
    db: Session,
    user_id: UUID,
    fields: Dict[str, Any],
    decomposer: GoalDecomposer,
    *,
    today: Optional[date] = None,
) -> Goal:
    """Create a manual goal and attach a breakdown straight away."""
    fields = {"description": "", "category": "personal", "priority": "medium", **fields}
    _validate_fields(fields)
    user = get_user(db, user_id)
    goal = Goal(user_id=user_id, source="manual", progress=0, **fields)
    breakdown = await decomposer.decompose(GoalSpec.from_goal(goal), build_user_context(db, user), today=today)
    goal.breakdown = dump_breakdown(breakdown)
    db.add(goal)
    db.commit()
    db.refresh(goal)
    logger.info("Created goal %s (%s breakdown)", goal.id, breakdown.kind)
    return goal


async def update_goal(
    db: Session,
    user_id: UUID,
    goal_id: UUID,
    changes: Dict[str, Any],
    decomposer: GoalDecomposer,
    *,
    today: Optional[date] = None,
) -> Goal:
    """Edit a goal; any change to its defining fields re-runs decomposition."""
    _validate_fields(changes)
    goal = get_goal(db, user_id, goal_id)
    changed = False
    for field_name, value in changes.items():
        if getattr(goal, field_name) != value:
            setattr(goal, field_name, value)
            changed = True
    if changed:
        await _redecompose(db, goal, decomposer, today=today)
    db.commit()
    db.refresh(goal)
    return goal


async def redecompose_goal(
    db: Session,
    user_id: UUID,
    goal_id: UUID,
    decomposer: GoalDecomposer,
    *,
    today: Optional[date] = None,
) -> Goal:
    goal = get_goal(db, user_id, goal_id)
    await _redecompose(db, goal, decomposer, today=today)
    db.commit()
    db.refresh(goal)
    return goal


def delete_goal(db: Session, user_id: UUID, goal_id: UUID) -> None:
    """Delete a goal; its tasks survive with no goal reference."""
    goal = get_goal(db, user_id, goal_id)
    db.execute(
        update(Task)
        .where(Task.related_goal_id == goal.id)
        .values(related_goal_id=None)
        .execution_options(synchronize_session=False)
    )
    db.delete(goal)
    db.commit()


def reset_progress(db: Session, user_id: UUID, goal_id: UUID) -> Goal:
    """Explicitly reset a goal to zero progress, reopening it if completed.

    XP already awarded for the goal is kept.
    """
    goal = get_goal(db, user_id, goal_id)
    previous = goal.progress
    goal.progress = 0
    goal.is_completed = False
    goal.completed_at = None
    db.add(
        ActivityLog(
            user_id=user_id,
            event_type="goal_progress_reset",
            goal_id=goal.id,
            payload={"previous_progress": previous},
        )
    )
    db.commit()
    db.refresh(goal)
    return goal


def goals_overview(db: Session, user_id: UUID) -> GoalsOverview:
    goals = list_goals(db, user_id)
    total = len(goals)
    completed = sum(1 for goal in goals if goal.is_completed)
    average = round(sum(goal.progress for goal in goals) / total, 1) if total else 0.0
    return GoalsOverview(total=total, completed=completed, active=total - completed, average_progress=average)


async def _redecompose(db: Session, goal: Goal, decomposer: GoalDecomposer, *, today: Optional[date]) -> None:
    user = get_user(db, goal.user_id)
    breakdown = await decomposer.decompose(GoalSpec.from_goal(goal), build_user_context(db, user), today=today)
    goal.breakdown = dump_breakdown(breakdown)


def _validate_fields(fields: Dict[str, Any]) -> None:
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown goal fields: {', '.join(sorted(unknown))}.")
    for required in ("title", "description", "category", "priority"):
        if required in fields and fields[required] is None:
            raise ValidationError(f"Goal {required} cannot be null.")
    if "title" in fields and not str(fields["title"] or "").strip():
        raise ValidationError("Goal title cannot be empty.")
    if "category" in fields and fields["category"] not in GOAL_CATEGORIES:
        raise ValidationError(f"Unknown goal category {fields['category']!r}.")
    if "priority" in fields and fields["priority"] not in PRIORITIES:
        raise ValidationError(f"Unknown goal priority {fields['priority']!r}.")
