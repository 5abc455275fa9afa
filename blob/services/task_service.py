"""Read-side helpers for tasks."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy import asc, func, nulls_last
from sqlalchemy.orm import Session

from blob.db.models.task import Task


@dataclass
class TaskStats:
    total: int
    completed: int
    pending: int
    in_progress: int
    skipped: int
    completion_rate: float


def list_tasks(
    db: Session,
    user_id: UUID,
    *,
    day: Optional[date] = None,
    status: Optional[str] = None,
    goal_id: Optional[UUID] = None,
) -> List[Task]:
    query = db.query(Task).filter(Task.user_id == user_id)
    if day is not None:
        query = query.filter(Task.scheduled_date == day)
    if status is not None:
        query = query.filter(Task.status == status)
    if goal_id is not None:
        query = query.filter(Task.related_goal_id == goal_id)
    return query.order_by(nulls_last(asc(Task.scheduled_date)), asc(Task.created_at)).all()


def task_stats(db: Session, user_id: UUID, *, day: Optional[date] = None) -> TaskStats:
    query = db.query(Task.status, func.count(Task.id)).filter(Task.user_id == user_id)
    if day is not None:
        query = query.filter(Task.scheduled_date == day)
    counts = dict(query.group_by(Task.status).all())
    total = sum(counts.values())
    completed = counts.get("completed", 0)
    return TaskStats(
        total=total,
        completed=completed,
        pending=counts.get("pending", 0) + counts.get("rescheduled", 0),
        in_progress=counts.get("in_progress", 0),
        skipped=counts.get("skipped", 0),
        completion_rate=round(completed / total * 100, 1) if total else 0.0,
    )
