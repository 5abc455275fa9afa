from __future__ import annotations

from datetime import date
from uuid import uuid4

from apscheduler.schedulers.background import BackgroundScheduler

from blob.core.config import settings
from blob.db.models.schedule import Schedule
from blob.services.job_runner import run_refresh_job
from blob.services.orchestrator import Orchestrator
from blob.worker.scheduler_main import _register_jobs
from factories import FakeReasoning, seed_goal, seed_user

TODAY = date(2026, 3, 2)


def test_refresh_job_processes_users_with_active_goals(db) -> None:
    active = seed_user(db)
    seed_goal(db, active)
    finished = seed_user(db)
    seed_goal(db, finished, is_completed=True, progress=100)
    orchestrator = Orchestrator(reasoning=FakeReasoning(available=False), settings=settings)

    result = run_refresh_job(db, orchestrator, today=TODAY, days=2)

    assert result.users_processed == 1
    assert result.tasks_generated > 0
    assert result.schedules_written == 2
    assert result.failed_user_ids == []
    assert db.query(Schedule).filter(Schedule.user_id == finished).count() == 0


def test_refresh_job_skips_failing_users(db) -> None:
    active = seed_user(db)
    seed_goal(db, active)
    missing = uuid4()
    orchestrator = Orchestrator(reasoning=FakeReasoning(available=False), settings=settings)

    result = run_refresh_job(db, orchestrator, user_ids=[missing, active], today=TODAY, days=1)

    assert result.failed_user_ids == [missing]
    assert result.users_processed == 1


def test_daily_refresh_job_is_registered() -> None:
    scheduler = BackgroundScheduler(timezone=settings.scheduler_timezone)

    _register_jobs(scheduler)

    job = scheduler.get_job("daily_plan_refresh")
    assert job is not None
    assert job.max_instances == 1
