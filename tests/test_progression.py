from __future__ import annotations

from datetime import date, timedelta
from uuid import uuid4

import pytest

from blob.core.errors import NotFoundError, ValidationError
from blob.db.models.activity_log import ActivityLog
from blob.db.models.goal import Goal
from blob.db.models.user import User
from blob.services.goal_service import reset_progress
from blob.services.progression import (
    ProgressionTracker,
    can_transition,
    compute_task_xp,
    level_for_xp,
    progress_increment,
)
from factories import seed_goal, seed_task, seed_user

TODAY = date(2026, 3, 2)


def test_xp_formula() -> None:
    assert compute_task_xp("high", 3) == 40
    assert compute_task_xp("medium", 2) == 30
    assert compute_task_xp("low", 1) == 20


def test_level_formula() -> None:
    assert level_for_xp(0) == 1
    assert level_for_xp(99) == 1
    assert level_for_xp(100) == 2
    assert level_for_xp(250) == 3


def test_progress_increment_is_capped_and_rewards_health_habits() -> None:
    assert progress_increment("medium", 2) == 11
    assert progress_increment("high", 5) == 15
    assert progress_increment("low", 1, goal_category="health", task_type="daily_habit") == 10
    assert progress_increment("low", 1, goal_category="career", task_type="daily_habit") == 7


def test_state_machine() -> None:
    assert can_transition("pending", "completed")
    assert can_transition("rescheduled", "pending")
    assert not can_transition("in_progress", "rescheduled")
    assert not can_transition("completed", "pending")
    assert not can_transition("skipped", "completed")


def test_completion_awards_xp_streak_and_ledger(db) -> None:
    user_id = seed_user(db)
    task = seed_task(db, user_id, priority="high", difficulty_level=3)

    outcome = ProgressionTracker().complete_task(db, user_id, task.id, completed_on=TODAY)

    assert outcome.xp_awarded == 40
    assert outcome.duplicate is False
    assert outcome.task.status == "completed"
    assert outcome.task.completed_at is not None
    assert outcome.xp_total == 40
    assert outcome.current_streak == 1
    ledger = db.query(ActivityLog).filter(ActivityLog.event_type == "task_completed").all()
    assert [entry.xp_delta for entry in ledger] == [40]


def test_double_completion_awards_xp_once(db) -> None:
    user_id = seed_user(db)
    task = seed_task(db, user_id, priority="medium", difficulty_level=2)
    tracker = ProgressionTracker()

    first = tracker.complete_task(db, user_id, task.id, completed_on=TODAY)
    second = tracker.complete_task(db, user_id, task.id, completed_on=TODAY)

    assert first.xp_awarded == 30
    assert second.duplicate is True
    assert second.xp_awarded == 0
    assert db.get(User, user_id).xp_total == 30
    assert db.query(ActivityLog).filter(ActivityLog.event_type == "task_completed").count() == 1


def test_goal_reaches_one_hundred_once_with_single_bonus(db) -> None:
    user_id = seed_user(db)
    goal = seed_goal(db, user_id, category="health", progress=95)
    habit = seed_task(db, user_id, related_goal_id=goal.id, type="daily_habit", priority="low", difficulty_level=1)
    extra = seed_task(db, user_id, related_goal_id=goal.id, priority="low", difficulty_level=1)
    tracker = ProgressionTracker()

    outcome = tracker.complete_task(db, user_id, habit.id, completed_on=TODAY)
    again = tracker.complete_task(db, user_id, extra.id, completed_on=TODAY)

    db.expire_all()
    stored = db.get(Goal, goal.id)
    assert stored.progress == 100
    assert stored.is_completed is True
    assert outcome.goal.completed is True
    assert outcome.goal.bonus_xp == 100
    assert outcome.xp_awarded == 120
    assert outcome.level == 2
    assert outcome.leveled_up is True
    assert again.goal.completed is False
    assert again.xp_awarded == 20
    assert db.get(User, user_id).xp_total == 140
    assert db.query(ActivityLog).filter(ActivityLog.event_type == "goal_completed").count() == 1


def test_advance_goal_clamps_progress(db) -> None:
    user_id = seed_user(db)
    goal = seed_goal(db, user_id, progress=95)

    result = ProgressionTracker().advance_goal(db, user_id, goal.id, 10)

    assert result.progress == 100
    assert result.completed is True
    with pytest.raises(ValidationError):
        ProgressionTracker().advance_goal(db, user_id, goal.id, -5)


def test_completions_from_two_sessions_do_not_lose_xp(file_session_factory) -> None:
    setup = file_session_factory()
    user_id = seed_user(setup)
    first_id = seed_task(setup, user_id, priority="medium", difficulty_level=2).id
    second_id = seed_task(setup, user_id, priority="high", difficulty_level=1).id
    setup.close()

    session_a = file_session_factory()
    session_b = file_session_factory()
    try:
        # Both sessions hold a stale copy of the user before either completion lands.
        assert session_a.get(User, user_id).xp_total == 0
        assert session_b.get(User, user_id).xp_total == 0
        tracker = ProgressionTracker()
        tracker.complete_task(session_a, user_id, first_id, completed_on=TODAY)
        outcome = tracker.complete_task(session_b, user_id, second_id, completed_on=TODAY)
    finally:
        session_a.close()
        session_b.close()

    check = file_session_factory()
    try:
        assert check.get(User, user_id).xp_total == 60
        assert outcome.xp_total == 60
        xp_entries = check.query(ActivityLog).filter(ActivityLog.xp_delta > 0).all()
        assert sum(entry.xp_delta for entry in xp_entries) == 60
    finally:
        check.close()


def test_completions_from_two_sessions_share_one_goal(file_session_factory) -> None:
    setup = file_session_factory()
    user_id = seed_user(setup)
    goal_id = seed_goal(setup, user_id, progress=80).id
    first_id = seed_task(setup, user_id, related_goal_id=goal_id, priority="high", difficulty_level=5).id
    second_id = seed_task(setup, user_id, related_goal_id=goal_id, priority="high", difficulty_level=5).id
    setup.close()

    session_a = file_session_factory()
    session_b = file_session_factory()
    try:
        assert session_a.get(Goal, goal_id).progress == 80
        assert session_b.get(Goal, goal_id).progress == 80
        tracker = ProgressionTracker()
        first = tracker.complete_task(session_a, user_id, first_id, completed_on=TODAY)
        second = tracker.complete_task(session_b, user_id, second_id, completed_on=TODAY)
    finally:
        session_a.close()
        session_b.close()

    check = file_session_factory()
    try:
        goal = check.get(Goal, goal_id)
        assert goal.progress == 100
        assert goal.is_completed is True
        assert first.goal.progress == 95
        assert [first.goal.completed, second.goal.completed] == [False, True]
        assert check.query(ActivityLog).filter(ActivityLog.event_type == "goal_completed").count() == 1
        assert check.query(ActivityLog).filter(ActivityLog.event_type == "goal_progressed").count() == 2
        # Two 50 XP tasks plus a single 100 XP goal bonus.
        assert check.get(User, user_id).xp_total == 200
    finally:
        check.close()


def test_reset_goal_does_not_pay_the_completion_bonus_twice(db) -> None:
    user_id = seed_user(db)
    goal = seed_goal(db, user_id, progress=95)
    finisher = seed_task(db, user_id, related_goal_id=goal.id, priority="low", difficulty_level=1)
    tracker = ProgressionTracker()

    first = tracker.complete_task(db, user_id, finisher.id, completed_on=TODAY)
    reset_progress(db, user_id, goal.id)
    second = tracker.advance_goal(db, user_id, goal.id, 100)

    db.expire_all()
    stored = db.get(Goal, goal.id)
    assert first.goal.bonus_xp == 100
    assert second.completed is True
    assert second.bonus_xp == 0
    assert stored.is_completed is True
    assert stored.completion_bonus_awarded_at is not None
    assert db.query(ActivityLog).filter(ActivityLog.event_type == "goal_completed").count() == 1
    assert db.get(User, user_id).xp_total == first.xp_awarded


def test_progress_on_completed_goal_is_not_recorded(db) -> None:
    user_id = seed_user(db)
    goal = seed_goal(db, user_id, progress=95)
    tracker = ProgressionTracker()

    tracker.advance_goal(db, user_id, goal.id, 10)
    tracker.advance_goal(db, user_id, goal.id, 10)

    entries = db.query(ActivityLog).filter(ActivityLog.event_type == "goal_progressed").all()
    assert [entry.payload["progress"] for entry in entries] == [100]


def test_streak_counts_consecutive_days_and_resets_after_gap(db) -> None:
    user_id = seed_user(db)
    tasks = [seed_task(db, user_id, title=f"Task {i}") for i in range(4)]
    tracker = ProgressionTracker()

    tracker.complete_task(db, user_id, tasks[0].id, completed_on=TODAY)
    tracker.complete_task(db, user_id, tasks[1].id, completed_on=TODAY + timedelta(days=1))
    same_day = tracker.complete_task(db, user_id, tasks[2].id, completed_on=TODAY + timedelta(days=1))
    after_gap = tracker.complete_task(db, user_id, tasks[3].id, completed_on=TODAY + timedelta(days=4))

    assert same_day.current_streak == 2
    assert after_gap.current_streak == 1
    assert db.get(User, user_id).longest_streak == 2


def test_status_changes_follow_the_state_machine(db) -> None:
    user_id = seed_user(db)
    task = seed_task(db, user_id)
    tracker = ProgressionTracker()

    assert tracker.change_status(db, user_id, task.id, "in_progress").status == "in_progress"
    with pytest.raises(ValidationError):
        tracker.change_status(db, user_id, task.id, "pending")
    with pytest.raises(ValidationError):
        tracker.change_status(db, user_id, task.id, "completed")
    assert tracker.change_status(db, user_id, task.id, "skipped").status == "skipped"


def test_rescheduled_task_moves_and_can_still_be_completed(db) -> None:
    user_id = seed_user(db)
    task = seed_task(db, user_id, scheduled_date=TODAY)
    tracker = ProgressionTracker()

    moved = tracker.reschedule(db, user_id, task.id, TODAY + timedelta(days=2), time_slot="afternoon")

    assert moved.status == "rescheduled"
    assert moved.scheduled_date == TODAY + timedelta(days=2)
    assert moved.suggested_time_slot == "afternoon"
    assert tracker.complete_task(db, user_id, task.id, completed_on=TODAY).xp_awarded == 30


def test_tasks_are_scoped_to_their_owner(db) -> None:
    owner = seed_user(db)
    task = seed_task(db, owner)

    with pytest.raises(NotFoundError):
        ProgressionTracker().complete_task(db, uuid4(), task.id, completed_on=TODAY)
