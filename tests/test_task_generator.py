from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from blob.core.errors import ValidationError
from blob.db.models.task import Task
from blob.services.breakdown import default_breakdown
from blob.services.goal_decomposer import GoalSpec
from blob.services.task_generator import (
    SchedulingPreferences,
    TaskGenerator,
    coerce_difficulty,
    coerce_draft,
    coerce_duration,
    coerce_time_slot,
)
from factories import FakeReasoning, seed_goal, seed_user

TODAY = date(2026, 3, 2)
DATES = [TODAY + timedelta(days=offset) for offset in range(3)]
GOAL = GoalSpec(title="Run a 10k", description="Build up to a 10k race", category="fitness", priority="high")


def test_coerce_duration_defaults_bad_values() -> None:
    assert coerce_duration("45") == 45
    assert coerce_duration("a while") == 30
    assert coerce_duration(0) == 30
    assert coerce_duration(-15) == 30
    assert coerce_duration(True) == 30
    assert coerce_duration(None, default=25) == 25


def test_coerce_difficulty_rounds_and_clamps() -> None:
    assert coerce_difficulty(7.6) == 5
    assert coerce_difficulty(0) == 1
    assert coerce_difficulty(3.4) == 3
    assert coerce_difficulty("hard") == 2


def test_coerce_time_slot() -> None:
    assert coerce_time_slot("Evening") == "evening"
    assert coerce_time_slot("7:05") == "07:05"
    assert coerce_time_slot("25:00") == "morning"


def test_coerce_draft_repairs_fields() -> None:
    draft = coerce_draft(
        {
            "title": "  Interval run ",
            "type": "sprint",
            "priority": "URGENT",
            "estimated_duration": "forty",
            "difficulty_level": 9,
            "energy_level_required": "HIGH",
        }
    )

    assert draft.title == "Interval run"
    assert draft.type == "one_time"
    assert draft.priority == "medium"
    assert draft.estimated_duration_min == 30
    assert draft.difficulty_level == 5
    assert draft.energy_level_required == "high"
    assert draft.success_criteria == "Complete the task"


def test_coerce_draft_requires_a_title() -> None:
    with pytest.raises(ValidationError):
        coerce_draft({"description": "no title"})


@pytest.mark.asyncio
async def test_generated_tasks_are_coerced_and_habits_added() -> None:
    reasoning = FakeReasoning(
        {
            "tasks.generate.call": {
                "tasks": [
                    {"title": "Tempo run", "type": "one_time", "priority": "high", "estimated_duration": 40},
                    {"description": "missing title"},
                ]
            }
        }
    )
    generator = TaskGenerator(reasoning, retry_policy=reasoning.retry_policy)
    breakdown = default_breakdown(GOAL.title, GOAL.category, today=TODAY)

    batch = await generator.draft_tasks(GOAL, breakdown, SchedulingPreferences(), DATES)

    assert batch.used_fallback is False
    assert batch.drafts[0].title == "Tempo run"
    assert batch.drafts[0].estimated_duration_min == 40
    habits = [draft for draft in batch.drafts if draft.type == "daily_habit"]
    assert [h.title for h in habits] == breakdown.daily_habits


@pytest.mark.asyncio
async def test_unavailable_service_uses_fallback_drafts() -> None:
    reasoning = FakeReasoning(available=False)
    generator = TaskGenerator(reasoning, retry_policy=reasoning.retry_policy)
    breakdown = default_breakdown(GOAL.title, GOAL.category, today=TODAY)

    batch = await generator.draft_tasks(GOAL, breakdown, SchedulingPreferences(energy_pattern="evening"), DATES)

    assert batch.used_fallback is True
    assert [draft.type for draft in batch.drafts] == ["weekly_task", "milestone", "daily_habit", "daily_habit"]
    assert all(draft.source == "fallback" for draft in batch.drafts)
    assert batch.drafts[0].suggested_time_slot == "evening"
    assert batch.drafts[0].estimated_duration_min == 45


@pytest.mark.asyncio
async def test_persist_expands_habits_and_replaces_open_generated_tasks(db) -> None:
    user_id = seed_user(db)
    goal = seed_goal(db, user_id)
    reasoning = FakeReasoning(available=False)
    generator = TaskGenerator(reasoning, retry_policy=reasoning.retry_policy)
    breakdown = default_breakdown(goal.title, goal.category, today=TODAY)
    batch = await generator.draft_tasks(GoalSpec.from_goal(goal), breakdown, SchedulingPreferences(), DATES)

    rows = generator.persist(db, user_id=user_id, goal_id=goal.id, batch=batch)
    db.commit()

    assert len(rows) == 2 + 2 * len(DATES)
    habit_rows = [row for row in rows if row.type == "daily_habit"]
    assert {row.scheduled_date for row in habit_rows} == set(DATES)
    assert all(row.is_recurring and row.recurrence_pattern == "daily" for row in habit_rows)

    done = rows[0]
    done.status = "completed"
    done.completed_at = datetime.now(timezone.utc)
    db.commit()

    generator.persist(db, user_id=user_id, goal_id=goal.id, batch=batch)
    db.commit()

    total = db.query(Task).filter(Task.related_goal_id == goal.id).count()
    assert total == 1 + len(rows)
    assert db.get(Task, done.id).status == "completed"
