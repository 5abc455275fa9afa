"""Dedicated APScheduler worker process."""
from __future__ import annotations

import logging
import signal
import threading

from apscheduler.schedulers.background import BackgroundScheduler

from blob.core.config import settings
from blob.core.logging import configure_logging
from blob.db.session import SessionLocal
from blob.observability.client import flush_opik, init_opik
from blob.services.job_runner import run_refresh_job
from blob.services.orchestrator import Orchestrator
from blob.services.reasoning import ReasoningClient


logger = logging.getLogger(__name__)


def main() -> None:
    configure_logging(log_level=settings.log_level, debug=settings.debug)
    init_opik()
    logger.info("Scheduler worker starting (enabled=%s)", settings.scheduler_enabled)

    scheduler = BackgroundScheduler(timezone=settings.scheduler_timezone)

    if settings.scheduler_enabled:
        _register_jobs(scheduler)
        scheduler.start()
        if settings.jobs_run_on_startup:
            logger.info("Running plan refresh once on startup")
            _run_refresh_job()
    else:
        logger.warning("Scheduler disabled via config; worker will idle")

    stop_event = threading.Event()

    def shutdown(signum, frame):  # pragma: no cover - signal handler
        logger.info("Scheduler worker shutting down (signal=%s)", signum)
        if scheduler.running:
            scheduler.shutdown(wait=False)
        stop_event.set()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        stop_event.wait()
    except KeyboardInterrupt:  # pragma: no cover - manual stop
        shutdown(signal.SIGINT, None)


def _register_jobs(scheduler: BackgroundScheduler) -> None:
    scheduler.add_job(
        _run_refresh_job,
        trigger="cron",
        hour=settings.refresh_job_hour,
        minute=settings.refresh_job_minute,
        id="daily_plan_refresh",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.info(
        "Registered daily plan refresh (time=%02d:%02d %s)",
        settings.refresh_job_hour,
        settings.refresh_job_minute,
        settings.scheduler_timezone,
    )


def _run_refresh_job() -> None:
    session = SessionLocal()
    orchestrator = Orchestrator(reasoning=ReasoningClient.from_settings(settings), settings=settings)
    try:
        run_refresh_job(session, orchestrator)
    except Exception:  # pragma: no cover - scheduler thread guard
        logger.exception("Plan refresh job failed")
    finally:
        session.close()
        flush_opik()


if __name__ == "__main__":  # pragma: no cover - manual launch
    main()
