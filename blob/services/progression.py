"""Task state machine, XP awards, streaks and goal progress.

All shared counters (``users.xp_total``, ``users.level``, ``goals.progress``)
are changed with single SQL UPDATE statements computed from the stored value,
so concurrent completions never overwrite each other. Completion of a task and
of a goal are compare-and-swap updates; only the caller whose UPDATE matched a
row awards XP. Every award is mirrored in ``activity_log``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import case, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from blob.core.errors import DuplicateCompletionError, NotFoundError, PersistenceError, ValidationError
from blob.db.models.activity_log import ActivityLog
from blob.db.models.goal import Goal
from blob.db.models.task import Task
from blob.db.models.user import User
from blob.observability.metrics import log_metric
from blob.observability.tracing import trace

logger = logging.getLogger(__name__)

BASE_TASK_XP = 10
PRIORITY_XP_BONUS = {"high": 15, "medium": 10, "low": 5}
DIFFICULTY_XP = 5

BASE_PROGRESS = 5
PRIORITY_PROGRESS_BONUS = {"high": 5, "medium": 2, "low": 0}
DIFFICULTY_PROGRESS = 2
HEALTH_HABIT_BONUS = 3
MAX_PROGRESS_PER_TASK = 15
HEALTH_CATEGORIES = ("health", "fitness")

TASK_TRANSITIONS = {
    "pending": {"in_progress", "completed", "skipped", "rescheduled"},
    "in_progress": {"completed", "skipped"},
    "rescheduled": {"pending", "in_progress", "completed", "skipped", "rescheduled"},
    "completed": set(),
    "skipped": set(),
}


def compute_task_xp(priority: Optional[str], difficulty: Optional[int]) -> int:
    return BASE_TASK_XP + PRIORITY_XP_BONUS.get(priority or "medium", 10) + DIFFICULTY_XP * (difficulty or 1)


def level_for_xp(xp_total: int, xp_per_level: int = 100) -> int:
    return max(0, xp_total) // xp_per_level + 1


def progress_increment(
    priority: Optional[str],
    difficulty: Optional[int],
    *,
    goal_category: Optional[str] = None,
    task_type: Optional[str] = None,
) -> int:
    """Goal progress earned by one task, capped so no single task completes a goal."""
    increment = BASE_PROGRESS + PRIORITY_PROGRESS_BONUS.get(priority or "medium", 2)
    increment += DIFFICULTY_PROGRESS * (difficulty or 1)
    if goal_category in HEALTH_CATEGORIES and task_type == "daily_habit":
        increment += HEALTH_HABIT_BONUS
    return min(increment, MAX_PROGRESS_PER_TASK)


def can_transition(current: str, target: str) -> bool:
    return target in TASK_TRANSITIONS.get(current, set())


@dataclass
class GoalProgressResult:
    goal_id: UUID
    progress: int
    completed: bool
    bonus_xp: int = 0


@dataclass
class CompletionOutcome:
    task: Task
    xp_awarded: int
    duplicate: bool = False
    goal: Optional[GoalProgressResult] = None
    xp_total: int = 0
    level: int = 1
    leveled_up: bool = False
    current_streak: int = 0


class ProgressionTracker:
    def __init__(self, *, xp_per_level: int = 100, goal_completion_bonus_xp: int = 100) -> None:
        self.xp_per_level = xp_per_level
        self.goal_completion_bonus_xp = goal_completion_bonus_xp

    @classmethod
    def from_settings(cls, settings) -> "ProgressionTracker":
        return cls(
            xp_per_level=settings.xp_per_level,
            goal_completion_bonus_xp=settings.goal_completion_bonus_xp,
        )

    def complete_task(
        self,
        db: Session,
        user_id: UUID,
        task_id: UUID,
        *,
        completed_on: Optional[date] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CompletionOutcome:
        """Complete a task and cascade XP, streak and goal progress in one transaction.

        Completing an already-completed task is a no-op that awards nothing.
        """
        task = self._owned_task(db, user_id, task_id)
        with trace("progress.complete_task", metadata={"task_id": str(task_id)}, user_id=str(user_id)):
            try:
                outcome = self._complete(db, user_id, task, completed_on or date.today(), metadata or {})
                db.commit()
            except DuplicateCompletionError:
                db.rollback()
                logger.info("Task %s already completed; no XP awarded", task_id)
                db.refresh(task)
                user = db.get(User, user_id)
                return CompletionOutcome(
                    task=task,
                    xp_awarded=0,
                    duplicate=True,
                    xp_total=user.xp_total,
                    level=user.level,
                    current_streak=user.current_streak,
                )
            except OperationalError as exc:
                db.rollback()
                raise PersistenceError("Could not record the task completion; please retry.") from exc

        db.refresh(outcome.task)
        log_metric("progress.xp_awarded", outcome.xp_awarded, {"goal_completed": bool(outcome.goal and outcome.goal.completed)})
        return outcome

    def _complete(
        self,
        db: Session,
        user_id: UUID,
        task: Task,
        completed_on: date,
        metadata: Dict[str, Any],
    ) -> CompletionOutcome:
        if task.completed_at is not None or task.status == "completed":
            raise DuplicateCompletionError("Task already completed.")
        if not can_transition(task.status, "completed"):
            raise ValidationError(f"Cannot complete a task that is {task.status}.")

        now = datetime.now(timezone.utc)
        result = db.execute(
            update(Task)
            .where(
                Task.id == task.id,
                Task.completed_at.is_(None),
                Task.status.in_(_sources_for("completed")),
            )
            .values(status="completed", completed_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise DuplicateCompletionError("Task was completed concurrently.")

        xp = compute_task_xp(task.priority, task.difficulty_level)
        level_before = db.execute(select(User.level).where(User.id == user_id)).scalar_one()
        self._add_xp(db, user_id, xp, "task_completed", task_id=task.id, payload={"title": task.title, **metadata})

        goal_result = None
        if task.related_goal_id is not None:
            goal_result = self._advance_goal(db, user_id, task)

        user = self._touch_streak(db, user_id, completed_on)
        return CompletionOutcome(
            task=task,
            xp_awarded=xp + (goal_result.bonus_xp if goal_result else 0),
            goal=goal_result,
            xp_total=user.xp_total,
            level=user.level,
            leveled_up=user.level > level_before,
            current_streak=user.current_streak,
        )

    def change_status(self, db: Session, user_id: UUID, task_id: UUID, status: str) -> Task:
        """Move a task along the state machine; completion goes through ``complete_task``."""
        if status == "completed":
            raise ValidationError("Use the completion endpoint to complete tasks.")
        task = self._owned_task(db, user_id, task_id)
        if not can_transition(task.status, status):
            raise ValidationError(f"Cannot move a task from {task.status} to {status}.")
        previous = task.status
        result = db.execute(
            update(Task)
            .where(Task.id == task.id, Task.status == previous)
            .values(status=status)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.rollback()
            raise ValidationError("Task changed concurrently; reload and try again.")
        db.add(
            ActivityLog(
                user_id=user_id,
                event_type="task_status_changed",
                task_id=task.id,
                payload={"from": previous, "to": status},
            )
        )
        db.commit()
        db.refresh(task)
        return task

    def reschedule(
        self,
        db: Session,
        user_id: UUID,
        task_id: UUID,
        new_date: date,
        *,
        time_slot: Optional[str] = None,
    ) -> Task:
        task = self._owned_task(db, user_id, task_id)
        if not can_transition(task.status, "rescheduled"):
            raise ValidationError(f"Cannot reschedule a task that is {task.status}.")
        previous_date = task.scheduled_date
        task.status = "rescheduled"
        task.scheduled_date = new_date
        if time_slot:
            task.suggested_time_slot = time_slot
        db.add(
            ActivityLog(
                user_id=user_id,
                event_type="task_rescheduled",
                task_id=task.id,
                payload={
                    "from": previous_date.isoformat() if previous_date else None,
                    "to": new_date.isoformat(),
                },
            )
        )
        db.commit()
        db.refresh(task)
        return task

    def advance_goal(self, db: Session, user_id: UUID, goal_id: UUID, increment: int) -> GoalProgressResult:
        """Add progress to a goal outside of a task completion (e.g. manual check-in)."""
        if increment < 0:
            raise ValidationError("Progress increments must be positive.")
        result = self._apply_goal_progress(db, user_id, goal_id, min(increment, 100), task_id=None)
        db.commit()
        return result

    def _advance_goal(self, db: Session, user_id: UUID, task: Task) -> Optional[GoalProgressResult]:
        goal = db.get(Goal, task.related_goal_id)
        if goal is None:
            return None
        increment = progress_increment(
            task.priority,
            task.difficulty_level,
            goal_category=goal.category,
            task_type=task.type,
        )
        return self._apply_goal_progress(db, user_id, goal.id, increment, task_id=task.id)

    def _apply_goal_progress(
        self,
        db: Session,
        user_id: UUID,
        goal_id: UUID,
        increment: int,
        *,
        task_id: Optional[UUID],
    ) -> GoalProgressResult:
        now = datetime.now(timezone.utc)
        advanced = db.execute(
            update(Goal)
            .where(Goal.id == goal_id, Goal.user_id == user_id, Goal.is_completed.is_(False))
            .values(
                progress=case(
                    (Goal.progress + increment >= 100, 100),
                    else_=Goal.progress + increment,
                ),
                last_progress_update=now,
            )
            .execution_options(synchronize_session=False)
        )
        completed = db.execute(
            update(Goal)
            .where(Goal.id == goal_id, Goal.is_completed.is_(False), Goal.progress >= 100)
            .values(is_completed=True, completed_at=now)
            .execution_options(synchronize_session=False)
        )
        progress = db.execute(select(Goal.progress).where(Goal.id == goal_id)).scalar_one_or_none()
        if progress is None:
            raise NotFoundError("Goal not found.")

        # A completed goal is left untouched, so there is nothing to record.
        if advanced.rowcount == 1:
            db.add(
                ActivityLog(
                    user_id=user_id,
                    event_type="goal_progressed",
                    goal_id=goal_id,
                    task_id=task_id,
                    payload={"increment": increment, "progress": progress},
                )
            )

        bonus = 0
        just_completed = completed.rowcount == 1
        if just_completed and self._claim_completion_bonus(db, goal_id, now):
            bonus = self.goal_completion_bonus_xp
            self._add_xp(db, user_id, bonus, "goal_completed", goal_id=goal_id)
            log_metric("progress.goal_completed", 1)
        return GoalProgressResult(goal_id=goal_id, progress=progress, completed=just_completed, bonus_xp=bonus)

    def _claim_completion_bonus(self, db: Session, goal_id: UUID, now: datetime) -> bool:
        """Mark the goal's bonus as paid; False when an earlier completion already claimed it."""
        claimed = db.execute(
            update(Goal)
            .where(Goal.id == goal_id, Goal.completion_bonus_awarded_at.is_(None))
            .values(completion_bonus_awarded_at=now)
            .execution_options(synchronize_session=False)
        )
        return claimed.rowcount == 1

    def _add_xp(
        self,
        db: Session,
        user_id: UUID,
        amount: int,
        event_type: str,
        *,
        task_id: Optional[UUID] = None,
        goal_id: Optional[UUID] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        db.execute(
            update(User)
            .where(User.id == user_id)
            .values(
                xp_total=User.xp_total + amount,
                level=(User.xp_total + amount) // self.xp_per_level + 1,
            )
            .execution_options(synchronize_session=False)
        )
        db.add(
            ActivityLog(
                user_id=user_id,
                event_type=event_type,
                xp_delta=amount,
                task_id=task_id,
                goal_id=goal_id,
                payload=payload or {},
            )
        )

    def _touch_streak(self, db: Session, user_id: UUID, activity_day: date) -> User:
        user = db.execute(
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()
        last = user.last_activity_on
        if last == activity_day:
            return user
        if last is not None and (activity_day - last).days == 1:
            user.current_streak = (user.current_streak or 0) + 1
        elif last is None or activity_day > last:
            user.current_streak = 1
        else:
            # Backdated completion; the streak is anchored on the later day.
            return user
        user.last_activity_on = activity_day
        user.longest_streak = max(user.longest_streak or 0, user.current_streak)
        db.flush()
        return user

    def _owned_task(self, db: Session, user_id: UUID, task_id: UUID) -> Task:
        task = db.get(Task, task_id)
        if task is None or task.user_id != user_id:
            raise NotFoundError("Task not found.")
        return task


def _sources_for(target: str) -> list[str]:
    return [state for state, targets in TASK_TRANSITIONS.items() if target in targets]
