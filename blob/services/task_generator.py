"""Turn goal breakdowns into concrete, schedulable task rows."""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import date, time
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union
from uuid import UUID

from sqlalchemy.orm import Session

from blob.core.errors import MalformedGenerationResult, ValidationError
from blob.db.models.task import Task
from blob.observability.metrics import log_metric
from blob.observability.tracing import trace
from blob.services.breakdown import FallbackBreakdown, GeneratedBreakdown, next_open_milestone
from blob.services.goal_decomposer import GoalSpec
from blob.services.reasoning import expect_object
from blob.services.retry_policy import RetryPolicy

logger = logging.getLogger(__name__)

TASK_TYPES = ("daily_habit", "weekly_task", "milestone", "one_time", "recurring")
PRIORITIES = ("high", "medium", "low")
ENERGY_LEVELS = ("low", "medium", "high")
TIME_SLOTS = ("morning", "afternoon", "evening")
DEFAULT_DURATION_MIN = 30
DEFAULT_DIFFICULTY = 2
DEFAULT_SUCCESS_CRITERIA = "Complete the task"
GENERATED_SOURCES = ("generated", "fallback")

_GENERATE_TASKS_TOOL: Dict[str, Any] = {
    "name": "generate_daily_tasks",
    "description": "Generate concrete tasks for the user's day.",
    "parameters": {
        "type": "object",
        "properties": {
            "tasks": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "title": {"type": "string"},
                        "description": {"type": "string"},
                        "type": {"type": "string", "enum": list(TASK_TYPES)},
                        "priority": {"type": "string", "enum": list(PRIORITIES)},
                        "estimated_duration": {"type": "number", "description": "Minutes"},
                        "suggested_time_slot": {"type": "string", "description": "HH:MM or morning/afternoon/evening"},
                        "energy_level_required": {"type": "string", "enum": list(ENERGY_LEVELS)},
                        "difficulty_level": {"type": "number", "minimum": 1, "maximum": 5},
                        "success_criteria": {"type": "string"},
                    },
                    "required": ["title", "description", "type", "priority", "estimated_duration"],
                },
            }
        },
        "required": ["tasks"],
    },
}


@dataclass(frozen=True)
class SchedulingPreferences:
    work_start: time = time(9, 0)
    work_end: time = time(17, 0)
    break_minutes: int = 60
    energy_pattern: Optional[str] = None
    work_style: Optional[str] = None
    preferred_task_duration: int = DEFAULT_DURATION_MIN

    @classmethod
    def from_user(cls, user) -> "SchedulingPreferences":
        return cls(
            work_start=user.work_start_time or time(9, 0),
            work_end=user.work_end_time or time(17, 0),
            break_minutes=user.break_duration_min if user.break_duration_min is not None else 60,
            energy_pattern=user.energy_pattern,
            work_style=user.work_style,
            preferred_task_duration=user.preferred_task_duration_min or DEFAULT_DURATION_MIN,
        )


@dataclass
class TaskDraft:
    """A validated task that has not been persisted yet."""

    title: str
    description: str = ""
    type: str = "one_time"
    priority: str = "medium"
    estimated_duration_min: int = DEFAULT_DURATION_MIN
    suggested_time_slot: Optional[str] = None
    energy_level_required: str = "medium"
    difficulty_level: int = DEFAULT_DIFFICULTY
    success_criteria: str = DEFAULT_SUCCESS_CRITERIA
    source: str = "generated"


@dataclass
class DraftBatch:
    drafts: List[TaskDraft] = field(default_factory=list)
    dates: List[date] = field(default_factory=list)
    used_fallback: bool = False


def coerce_duration(value: Any, default: int = DEFAULT_DURATION_MIN) -> int:
    """Minutes as a positive int; anything non-numeric or non-positive becomes ``default``."""
    if isinstance(value, bool) or value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    minutes = int(round(number))
    return minutes if minutes > 0 else default


def coerce_difficulty(value: Any, default: int = DEFAULT_DIFFICULTY) -> int:
    """Round and clamp to 1..5; non-numeric becomes ``default``."""
    if isinstance(value, bool) or value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    if math.isinf(number):
        return 5 if number > 0 else 1
    return max(1, min(5, int(round(number))))


def coerce_choice(value: Any, allowed: Sequence[str], default: str) -> str:
    choice = str(value or "").strip().lower()
    return choice if choice in allowed else default


def coerce_time_slot(value: Any, default: str = "morning") -> str:
    slot = str(value or "").strip().lower()
    if slot in TIME_SLOTS:
        return slot
    parts = slot.split(":")
    if len(parts) == 2 and all(part.isdigit() for part in parts):
        hours, minutes = int(parts[0]), int(parts[1])
        if 0 <= hours < 24 and 0 <= minutes < 60:
            return f"{hours:02d}:{minutes:02d}"
    return default


def coerce_draft(raw: Dict[str, Any], *, default_duration: int = DEFAULT_DURATION_MIN) -> TaskDraft:
    """Coerce an upstream task payload into a valid draft.

    Raises ValidationError when no safe default exists (missing title).
    """
    if not isinstance(raw, dict):
        raise ValidationError("Task payload is not an object.")
    title = str(raw.get("title") or "").strip()
    if not title:
        raise ValidationError("Task is missing a title.")
    return TaskDraft(
        title=title,
        description=str(raw.get("description") or "").strip(),
        type=coerce_choice(raw.get("type"), TASK_TYPES, "one_time"),
        priority=coerce_choice(raw.get("priority"), PRIORITIES, "medium"),
        estimated_duration_min=coerce_duration(
            raw.get("estimated_duration", raw.get("estimated_duration_min")), default_duration
        ),
        suggested_time_slot=coerce_time_slot(raw.get("suggested_time_slot")),
        energy_level_required=coerce_choice(raw.get("energy_level_required"), ENERGY_LEVELS, "medium"),
        difficulty_level=coerce_difficulty(raw.get("difficulty_level")),
        success_criteria=str(raw.get("success_criteria") or "").strip() or DEFAULT_SUCCESS_CRITERIA,
    )


class TaskGenerator:
    """Draft tasks through the reasoning service, then persist them in one go.

    ``draft_tasks`` does I/O against the reasoning service only and is safe to
    run concurrently per goal. ``persist`` touches the session and belongs to
    the caller's transaction.
    """

    def __init__(self, reasoning, *, retry_policy: Optional[RetryPolicy] = None) -> None:
        self.reasoning = reasoning
        self.retry_policy = retry_policy or RetryPolicy()

    async def draft_tasks(
        self,
        goal: GoalSpec,
        breakdown: Union[GeneratedBreakdown, FallbackBreakdown],
        preferences: SchedulingPreferences,
        dates: Sequence[date],
        *,
        user_context: str = "",
    ) -> DraftBatch:
        if not dates:
            raise ValidationError("At least one target date is required.")
        target = dates[0]

        async def generate() -> List[TaskDraft]:
            return await self._generate(goal, breakdown, preferences, target, user_context)

        def fallback() -> List[TaskDraft]:
            return fallback_drafts(goal, breakdown, preferences)

        with trace("tasks.generate", metadata={"goal": goal.title, "days": len(dates)}):
            drafts, used_fallback = await self.retry_policy.run_with_fallback(
                generate, fallback, label="tasks.generate"
            )

        if not any(draft.type == "daily_habit" for draft in drafts):
            drafts.extend(_habit_drafts(breakdown, preferences, source="fallback" if used_fallback else "generated"))
        return DraftBatch(drafts=drafts, dates=list(dates), used_fallback=used_fallback)

    async def _generate(
        self,
        goal: GoalSpec,
        breakdown: Union[GeneratedBreakdown, FallbackBreakdown],
        preferences: SchedulingPreferences,
        target: date,
        user_context: str,
    ) -> List[TaskDraft]:
        prompt = (
            f"Create 5-8 specific tasks for {target.isoformat()} ({target.strftime('%A')}).\n"
            f"Goal: {goal.title} ({goal.category}, {goal.priority} priority)\n"
            f"Description: {goal.description}\n"
            f"Breakdown: {json.dumps(breakdown.model_dump(mode='json', include={'milestones', 'weekly_tasks', 'daily_habits'}))}\n"
            f"Work hours: {preferences.work_start.strftime('%H:%M')}-{preferences.work_end.strftime('%H:%M')}, "
            f"energy peak: {preferences.energy_pattern or 'morning'}, "
            f"work style: {preferences.work_style or 'flexible_mix'}, "
            f"preferred task length: {preferences.preferred_task_duration} minutes.\n"
            "Mix quick wins with deeper work and include the daily habits as daily_habit tasks."
        )
        if user_context:
            prompt += f"\nAbout the user: {user_context}"

        payload = expect_object(
            await self.reasoning.complete_json(
                [
                    {"role": "system", "content": "You are a productivity planner. Produce realistic, concrete tasks."},
                    {"role": "user", "content": prompt},
                ],
                tool=_GENERATE_TASKS_TOOL,
                name="tasks.generate.call",
            ),
            "task generation",
        )
        raw_tasks = payload.get("tasks")
        if not isinstance(raw_tasks, list):
            raise MalformedGenerationResult("Task payload is missing a tasks list.")

        drafts: List[TaskDraft] = []
        rejected = 0
        for raw in raw_tasks:
            try:
                drafts.append(coerce_draft(raw, default_duration=preferences.preferred_task_duration))
            except ValidationError as exc:
                rejected += 1
                logger.info("Rejected generated task: %s", exc.message)
        if rejected:
            log_metric("tasks.generate.rejected", rejected, {"goal": goal.title})
        if not drafts:
            raise MalformedGenerationResult("Task payload contained no usable tasks.")
        return drafts

    def persist(
        self,
        db: Session,
        *,
        user_id: UUID,
        goal_id: Optional[UUID],
        batch: DraftBatch,
    ) -> List[Task]:
        """Replace the goal's open generated tasks in the date range with ``batch``.

        Flushes but does not commit.
        """
        replace_open_generated_tasks(db, user_id=user_id, goal_id=goal_id, dates=batch.dates)

        first_day = batch.dates[0]
        rows: List[Task] = []
        for draft in batch.drafts:
            if draft.type == "daily_habit":
                for day in batch.dates:
                    rows.append(_task_row(draft, user_id, goal_id, day, recurring=True))
            else:
                rows.append(_task_row(draft, user_id, goal_id, first_day, recurring=draft.type == "recurring"))

        db.add_all(rows)
        db.flush()
        log_metric("tasks.generate.persisted", len(rows), {"fallback": batch.used_fallback})
        return rows


def replace_open_generated_tasks(
    db: Session,
    *,
    user_id: UUID,
    goal_id: Optional[UUID],
    dates: Iterable[date],
) -> int:
    dates = list(dates)
    query = db.query(Task).filter(
        Task.user_id == user_id,
        Task.scheduled_date.in_(dates),
        Task.status == "pending",
        Task.completed_at.is_(None),
        Task.source.in_(GENERATED_SOURCES),
    )
    if goal_id is None:
        query = query.filter(Task.related_goal_id.is_(None))
    else:
        query = query.filter(Task.related_goal_id == goal_id)
    stale = query.all()
    for task in stale:
        db.delete(task)
    if stale:
        db.flush()
    return len(stale)


def fallback_drafts(
    goal: GoalSpec,
    breakdown: Union[GeneratedBreakdown, FallbackBreakdown],
    preferences: SchedulingPreferences,
) -> List[TaskDraft]:
    """Deterministic tasks: one weekly task, the nearest open milestone, and the daily habits."""
    duration = preferences.preferred_task_duration or DEFAULT_DURATION_MIN
    peak_slot = preferences.energy_pattern if preferences.energy_pattern in TIME_SLOTS else "morning"
    drafts: List[TaskDraft] = []

    if breakdown.weekly_tasks:
        drafts.append(
            TaskDraft(
                title=breakdown.weekly_tasks[0],
                description=f"Weekly step toward {goal.title}",
                type="weekly_task",
                priority=goal.priority,
                estimated_duration_min=max(duration, 45),
                suggested_time_slot=peak_slot,
                energy_level_required="high" if goal.priority == "high" else "medium",
                difficulty_level=3,
                source="fallback",
            )
        )

    milestone = next_open_milestone(breakdown)
    if milestone:
        drafts.append(
            TaskDraft(
                title=f"Work toward milestone: {milestone.title}",
                description=milestone.description or f"Move {goal.title} closer to this milestone",
                type="milestone",
                priority=goal.priority,
                estimated_duration_min=duration,
                suggested_time_slot=peak_slot,
                energy_level_required="medium",
                difficulty_level=3,
                success_criteria=f"Visible progress on '{milestone.title}'",
                source="fallback",
            )
        )

    drafts.extend(_habit_drafts(breakdown, preferences, source="fallback"))
    if not drafts:
        drafts.append(
            TaskDraft(
                title=f"Take one step toward {goal.title}",
                description=goal.description,
                priority=goal.priority,
                estimated_duration_min=duration,
                suggested_time_slot=peak_slot,
                source="fallback",
            )
        )
    return drafts


def _habit_drafts(
    breakdown: Union[GeneratedBreakdown, FallbackBreakdown],
    preferences: SchedulingPreferences,
    *,
    source: str,
) -> List[TaskDraft]:
    return [
        TaskDraft(
            title=habit,
            description="Daily habit",
            type="daily_habit",
            priority="medium",
            estimated_duration_min=min(preferences.preferred_task_duration or DEFAULT_DURATION_MIN, 20),
            suggested_time_slot="morning",
            energy_level_required="low",
            difficulty_level=1,
            success_criteria="Habit done today",
            source=source,
        )
        for habit in breakdown.daily_habits
    ]


def _task_row(draft: TaskDraft, user_id: UUID, goal_id: Optional[UUID], day: date, *, recurring: bool) -> Task:
    return Task(
        user_id=user_id,
        related_goal_id=goal_id,
        title=draft.title,
        description=draft.description,
        type=draft.type,
        priority=draft.priority,
        status="pending",
        estimated_duration_min=coerce_duration(draft.estimated_duration_min),
        suggested_time_slot=draft.suggested_time_slot,
        energy_level_required=draft.energy_level_required,
        difficulty_level=coerce_difficulty(draft.difficulty_level),
        success_criteria=draft.success_criteria,
        is_recurring=recurring,
        recurrence_pattern="daily" if draft.type == "daily_habit" else None,
        scheduled_date=day,
        source=draft.source,
    )
