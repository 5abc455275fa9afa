"""Batch job runner for the periodic plan refresh."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from blob.core.context import bind_context
from blob.db.models.goal import Goal
from blob.services.orchestrator import Orchestrator


logger = logging.getLogger(__name__)


@dataclass
class JobRunResult:
    users_processed: int
    tasks_generated: int
    schedules_written: int
    failed_user_ids: List[UUID] = field(default_factory=list)


def _active_user_ids(db: Session) -> List[UUID]:
    rows = (
        db.query(Goal.user_id)
        .filter(Goal.is_completed.is_(False))
        .distinct()
        .all()
    )
    return [row[0] for row in rows]


async def run_refresh_for_all_users(
    db: Session,
    orchestrator: Orchestrator,
    *,
    user_ids: Optional[Iterable[UUID]] = None,
    today: Optional[date] = None,
    days: Optional[int] = None,
) -> JobRunResult:
    """Re-run plan initialization for every user with an active goal.

    Users are processed one at a time on the shared session; a failing user is
    logged and skipped.
    """
    ids = _active_user_ids(db) if user_ids is None else list(dict.fromkeys(user_ids))
    result = JobRunResult(users_processed=0, tasks_generated=0, schedules_written=0)
    for uid in ids:
        with bind_context(user_id=uid, stage="refresh"):
            try:
                summary = await orchestrator.initialize(db, uid, today=today, days=days)
            except Exception:
                db.rollback()
                logger.exception("Plan refresh failed for user %s", uid)
                result.failed_user_ids.append(uid)
                continue
        result.users_processed += 1
        result.tasks_generated += summary.tasks_generated
        result.schedules_written += len(summary.schedule_ids)
    logger.info(
        "Plan refresh complete: users=%s, tasks=%s, schedules=%s, failed=%s",
        result.users_processed,
        result.tasks_generated,
        result.schedules_written,
        len(result.failed_user_ids),
    )
    return result


def run_refresh_job(db: Session, orchestrator: Orchestrator, **kwargs) -> JobRunResult:
    """Synchronous entry point for schedulers running outside an event loop."""
    return asyncio.run(run_refresh_for_all_users(db, orchestrator, **kwargs))
