"""Build a non-overlapping, time-blocked plan for one user and one day."""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from blob.core.errors import MalformedGenerationResult
from blob.db.models.activity_log import ActivityLog
from blob.db.models.schedule import Schedule
from blob.db.models.task import Task
from blob.observability.metrics import log_metric
from blob.observability.tracing import trace
from blob.services.availability import (
    available_hours,
    energy_peak_window,
    minutes_to_time,
    time_to_minutes,
)
from blob.services.reasoning import expect_object
from blob.services.retry_policy import RetryPolicy
from blob.services.task_generator import SchedulingPreferences

logger = logging.getLogger(__name__)

PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}
SCHEDULABLE_STATUSES = ("pending", "in_progress", "rescheduled")
MAX_OVERDUE_TASKS = 3
LONG_TASK_MINUTES = 45
SHORT_BREAK_MINUTES = 10

_SCHEDULE_TOOL: Dict[str, Any] = {
    "name": "generate_daily_schedule",
    "description": "Place the given tasks into non-overlapping time blocks.",
    "parameters": {
        "type": "object",
        "properties": {
            "blocks": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "task_id": {"type": ["string", "null"]},
                        "kind": {"type": "string", "enum": ["task", "break"]},
                        "start_time": {"type": "string", "description": "HH:MM"},
                        "end_time": {"type": "string", "description": "HH:MM"},
                        "is_flexible": {"type": "boolean"},
                        "reason": {"type": "string"},
                    },
                    "required": ["kind", "start_time", "end_time"],
                },
            },
            "suggestions": {"type": "array", "items": {"type": "string"}},
            "optimization_notes": {"type": "string"},
        },
        "required": ["blocks"],
    },
}


@dataclass(frozen=True)
class Commitment:
    """An external, fixed appointment the plan must route around."""

    title: str
    start: time
    end: time

    @property
    def span(self) -> Tuple[int, int]:
        return time_to_minutes(self.start), time_to_minutes(self.end)


@dataclass
class ScheduleBlock:
    start_time: str
    end_time: str
    title: str
    kind: str = "task"
    task_id: Optional[str] = None
    is_flexible: bool = True
    priority: Optional[str] = None
    energy_level: Optional[str] = None
    reason: Optional[str] = None

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return time_to_minutes(self.end_time)

    @property
    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes


@dataclass
class SchedulePlan:
    blocks: List[ScheduleBlock] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    optimization_notes: str = ""
    is_fallback: bool = False
    unscheduled_task_ids: List[str] = field(default_factory=list)

    @property
    def total_scheduled_minutes(self) -> int:
        return sum(block.duration_minutes for block in self.blocks if block.kind == "task")

    @property
    def total_scheduled_hours(self) -> float:
        return round(self.total_scheduled_minutes / 60, 2)


def tasks_for_date(db: Session, user_id: UUID, day: date, *, today: Optional[date] = None) -> List[Task]:
    """Open tasks scheduled on ``day``, plus a few overdue ones when ``day`` is today."""
    today = today or date.today()
    tasks = (
        db.query(Task)
        .filter(
            Task.user_id == user_id,
            Task.scheduled_date == day,
            Task.status.in_(SCHEDULABLE_STATUSES),
        )
        .order_by(Task.created_at.asc())
        .all()
    )
    if day == today:
        overdue = (
            db.query(Task)
            .filter(
                Task.user_id == user_id,
                Task.scheduled_date < day,
                Task.status == "pending",
                Task.type != "daily_habit",
            )
            .order_by(Task.scheduled_date.desc(), Task.created_at.asc())
            .limit(MAX_OVERDUE_TASKS)
            .all()
        )
        tasks.extend(overdue)
    return tasks


def sort_for_packing(tasks: Sequence[Task]) -> List[Task]:
    """High > medium > low, then harder first, then longer first."""
    return sorted(
        tasks,
        key=lambda task: (
            PRIORITY_RANK.get(task.priority, 1),
            -(task.difficulty_level or 0),
            -(task.estimated_duration_min or 0),
            str(task.id),
        ),
    )


def fallback_plan(
    tasks: Sequence[Task],
    preferences: SchedulingPreferences,
    commitments: Sequence[Commitment] = (),
) -> SchedulePlan:
    """Pack tasks sequentially from the start of the work window in priority order.

    A short break follows every long task; commitments are stepped over; tasks
    that would run past the end of the window are left unscheduled.
    """
    work_start = time_to_minutes(preferences.work_start)
    work_end = time_to_minutes(preferences.work_end)
    busy = sorted(commitment.span for commitment in commitments)
    plan = SchedulePlan(is_fallback=True)

    if not tasks:
        plan.blocks = _commitment_blocks(commitments)
        plan.suggestions = ["No tasks planned for today. Take time for self-care or add a goal to work on."]
        plan.optimization_notes = "Nothing to schedule."
        return plan

    cursor = work_start
    ordered = sort_for_packing(tasks)
    for index, task in enumerate(ordered):
        duration = task.estimated_duration_min or 30
        start = _next_free_start(cursor, duration, busy)
        if start + duration > work_end:
            plan.unscheduled_task_ids.append(str(task.id))
            continue
        end = start + duration
        plan.blocks.append(
            ScheduleBlock(
                start_time=minutes_to_time(start),
                end_time=minutes_to_time(end),
                title=task.title,
                kind="task",
                task_id=str(task.id),
                is_flexible=task.priority != "high",
                priority=task.priority,
                energy_level=task.energy_level_required,
                reason=f"{task.priority.capitalize()} priority, placed in order",
            )
        )
        cursor = end
        has_more = index < len(ordered) - 1
        if duration >= LONG_TASK_MINUTES and has_more:
            break_end = end + SHORT_BREAK_MINUTES
            if break_end <= work_end and not _collides(end, break_end, busy):
                plan.blocks.append(
                    ScheduleBlock(
                        start_time=minutes_to_time(end),
                        end_time=minutes_to_time(break_end),
                        title="Short break",
                        kind="break",
                        reason="Recover after a long block",
                    )
                )
            cursor = break_end

    plan.blocks.extend(_commitment_blocks(commitments))
    plan.blocks.sort(key=lambda block: block.start_minutes)

    scheduled = len(tasks) - len(plan.unscheduled_task_ids)
    plan.suggestions = _fallback_suggestions(preferences, scheduled, len(plan.unscheduled_task_ids))
    plan.optimization_notes = (
        f"Deterministic plan: {scheduled} task(s) packed from {minutes_to_time(work_start)} by priority."
    )
    return plan


def validate_plan(
    plan: SchedulePlan,
    tasks: Sequence[Task],
    preferences: SchedulingPreferences,
    commitments: Sequence[Commitment] = (),
) -> None:
    """Raise MalformedGenerationResult if the plan breaks any scheduling rule."""
    known = {str(task.id) for task in tasks}
    work_start = time_to_minutes(preferences.work_start)
    work_end = time_to_minutes(preferences.work_end)
    seen: set[str] = set()

    for block in plan.blocks:
        if block.duration_minutes <= 0:
            raise MalformedGenerationResult(f"Block {block.title!r} has no duration.")
        if block.kind == "commitment":
            continue
        if block.start_minutes < work_start or block.end_minutes > work_end:
            raise MalformedGenerationResult(f"Block {block.title!r} falls outside the work window.")
        if block.kind == "task":
            if block.task_id not in known:
                raise MalformedGenerationResult(f"Block references unknown task {block.task_id!r}.")
            if block.task_id in seen:
                raise MalformedGenerationResult(f"Task {block.task_id!r} is scheduled twice.")
            seen.add(block.task_id)

    ordered = sorted(plan.blocks, key=lambda block: block.start_minutes)
    for previous, current in zip(ordered, ordered[1:]):
        if current.start_minutes < previous.end_minutes:
            raise MalformedGenerationResult(
                f"Blocks {previous.title!r} and {current.title!r} overlap."
            )


class ScheduleSynthesizer:
    """Ask the reasoning service for a plan, validate it, and fall back to packing."""

    def __init__(self, reasoning, *, retry_policy: Optional[RetryPolicy] = None) -> None:
        self.reasoning = reasoning
        self.retry_policy = retry_policy or RetryPolicy()

    async def plan(
        self,
        tasks: Sequence[Task],
        preferences: SchedulingPreferences,
        day: date,
        commitments: Sequence[Commitment] = (),
    ) -> SchedulePlan:
        if not tasks:
            return fallback_plan(tasks, preferences, commitments)

        async def generate() -> SchedulePlan:
            candidate = await self._generate(tasks, preferences, day, commitments)
            validate_plan(candidate, tasks, preferences, commitments)
            return candidate

        def fallback() -> SchedulePlan:
            return fallback_plan(tasks, preferences, commitments)

        with trace("schedule.plan", metadata={"date": day.isoformat(), "tasks": len(tasks)}):
            plan, _ = await self.retry_policy.run_with_fallback(generate, fallback, label="schedule.plan")
        return plan

    async def _generate(
        self,
        tasks: Sequence[Task],
        preferences: SchedulingPreferences,
        day: date,
        commitments: Sequence[Commitment],
    ) -> SchedulePlan:
        peak_start, peak_end = energy_peak_window(
            preferences.energy_pattern, preferences.work_start, preferences.work_end
        )
        task_lines = [
            {
                "id": str(task.id),
                "title": task.title,
                "priority": task.priority,
                "duration_min": task.estimated_duration_min,
                "difficulty": task.difficulty_level,
                "energy": task.energy_level_required,
                "suggested_slot": task.suggested_time_slot,
            }
            for task in tasks
        ]
        busy = [
            {"title": c.title, "start": c.start.strftime("%H:%M"), "end": c.end.strftime("%H:%M")}
            for c in commitments
        ]
        prompt = (
            f"Date: {day.isoformat()} ({day.strftime('%A')})\n"
            f"Work window: {preferences.work_start.strftime('%H:%M')}-{preferences.work_end.strftime('%H:%M')}, "
            f"{available_hours(preferences.work_start, preferences.work_end, preferences.break_minutes)} hours "
            f"available after {preferences.break_minutes} minutes of breaks.\n"
            f"Energy peak: {minutes_to_time(peak_start)}-{minutes_to_time(peak_end)}. "
            f"Work style: {preferences.work_style or 'flexible_mix'}.\n"
            f"Fixed commitments: {json.dumps(busy)}\n"
            f"Tasks: {json.dumps(task_lines)}\n"
            "Put high-priority, high-difficulty tasks inside the energy peak, add short breaks between tasks, "
            "never overlap blocks, and stay inside the work window. Reference tasks by id."
        )
        payload = expect_object(
            await self.reasoning.complete_json(
                [
                    {"role": "system", "content": "You are an expert scheduler who plans realistic, humane days."},
                    {"role": "user", "content": prompt},
                ],
                tool=_SCHEDULE_TOOL,
                name="schedule.plan.call",
            ),
            "schedule",
        )
        raw_blocks = payload.get("blocks")
        if not isinstance(raw_blocks, list) or not raw_blocks:
            raise MalformedGenerationResult("Schedule payload has no blocks.")

        by_id = {str(task.id): task for task in tasks}
        blocks: List[ScheduleBlock] = []
        for raw in raw_blocks:
            if not isinstance(raw, dict):
                raise MalformedGenerationResult("Schedule block is not an object.")
            kind = "break" if raw.get("kind") == "break" else "task"
            task = by_id.get(str(raw.get("task_id"))) if kind == "task" else None
            try:
                start = minutes_to_time(time_to_minutes(str(raw.get("start_time"))))
                end = minutes_to_time(time_to_minutes(str(raw.get("end_time"))))
            except ValueError as exc:
                raise MalformedGenerationResult(f"Unparsable block time in {raw!r}.") from exc
            blocks.append(
                ScheduleBlock(
                    start_time=start,
                    end_time=end,
                    title=task.title if task else str(raw.get("title") or "Break"),
                    kind=kind,
                    task_id=str(raw.get("task_id")) if kind == "task" else None,
                    is_flexible=bool(raw.get("is_flexible", True)),
                    priority=task.priority if task else None,
                    energy_level=task.energy_level_required if task else None,
                    reason=raw.get("reason"),
                )
            )
        blocks.extend(_commitment_blocks(commitments))
        blocks.sort(key=lambda block: block.start_minutes)

        scheduled_ids = {block.task_id for block in blocks if block.kind == "task"}
        suggestions = [str(item) for item in payload.get("suggestions") or [] if item]
        return SchedulePlan(
            blocks=blocks,
            suggestions=suggestions,
            optimization_notes=str(payload.get("optimization_notes") or ""),
            is_fallback=False,
            unscheduled_task_ids=[task_id for task_id in by_id if task_id not in scheduled_ids],
        )

    async def synthesize(
        self,
        db: Session,
        user_id: UUID,
        day: date,
        preferences: SchedulingPreferences,
        commitments: Sequence[Commitment] = (),
        *,
        today: Optional[date] = None,
    ) -> Schedule:
        tasks = tasks_for_date(db, user_id, day, today=today)
        plan = await self.plan(tasks, preferences, day, commitments)
        schedule = save_schedule(db, user_id, day, plan)
        db.commit()
        db.refresh(schedule)
        return schedule


def save_schedule(db: Session, user_id: UUID, day: date, plan: SchedulePlan) -> Schedule:
    """Upsert the (user, day) schedule, replacing every field of an existing row.

    Flushes but does not commit.
    """
    values = {
        "blocks": [asdict(block) for block in plan.blocks],
        "total_scheduled_hours": plan.total_scheduled_hours,
        "suggestions": list(plan.suggestions),
        "optimization_notes": plan.optimization_notes,
        "is_fallback": plan.is_fallback,
        "generated_at": datetime.now(timezone.utc),
    }

    schedule = _find_schedule(db, user_id, day)
    if schedule is None:
        schedule = Schedule(user_id=user_id, schedule_date=day, **values)
        db.add(schedule)
        try:
            db.flush()
        except IntegrityError:
            # Lost a race with a concurrent insert for the same day.
            db.rollback()
            schedule = _find_schedule(db, user_id, day)
            if schedule is None:
                raise
            _apply(schedule, values)
    else:
        _apply(schedule, values)

    db.add(
        ActivityLog(
            user_id=user_id,
            event_type="schedule_generated",
            payload={
                "date": day.isoformat(),
                "blocks": len(plan.blocks),
                "total_scheduled_hours": plan.total_scheduled_hours,
                "fallback": plan.is_fallback,
            },
        )
    )
    db.flush()
    log_metric("schedule.generated", 1, {"fallback": plan.is_fallback, "blocks": len(plan.blocks)})
    return schedule


def _find_schedule(db: Session, user_id: UUID, day: date) -> Optional[Schedule]:
    return (
        db.query(Schedule)
        .filter(Schedule.user_id == user_id, Schedule.schedule_date == day)
        .one_or_none()
    )


def _apply(schedule: Schedule, values: Dict[str, Any]) -> None:
    for key, value in values.items():
        setattr(schedule, key, value)


def _commitment_blocks(commitments: Sequence[Commitment]) -> List[ScheduleBlock]:
    return [
        ScheduleBlock(
            start_time=minutes_to_time(time_to_minutes(c.start)),
            end_time=minutes_to_time(time_to_minutes(c.end)),
            title=c.title,
            kind="commitment",
            is_flexible=False,
        )
        for c in commitments
    ]


def _collides(start: int, end: int, busy: Sequence[Tuple[int, int]]) -> bool:
    return any(start < busy_end and busy_start < end for busy_start, busy_end in busy)


def _next_free_start(cursor: int, duration: int, busy: Sequence[Tuple[int, int]]) -> int:
    start = cursor
    moved = True
    while moved:
        moved = False
        for busy_start, busy_end in busy:
            if start < busy_end and busy_start < start + duration:
                start = busy_end
                moved = True
    return start


def _fallback_suggestions(preferences: SchedulingPreferences, scheduled: int, unscheduled: int) -> List[str]:
    peak_start, peak_end = energy_peak_window(
        preferences.energy_pattern, preferences.work_start, preferences.work_end
    )
    suggestions = [
        f"Your energy peak is {minutes_to_time(peak_start)}-{minutes_to_time(peak_end)}; protect it for the hardest work.",
        "Take the short breaks between longer tasks to stay fresh.",
    ]
    if unscheduled:
        suggestions.append(f"{unscheduled} task(s) did not fit today; consider rescheduling them.")
    if scheduled == 0:
        suggestions.append("Nothing fit in the work window; try shorter tasks or a longer window.")
    return suggestions
