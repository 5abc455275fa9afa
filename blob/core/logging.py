"""Centralized logging configuration."""
from __future__ import annotations

import logging
from logging.config import dictConfig

from blob.core.context import get_request_id, get_stage, get_user_id

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(request_id)s | %(user_id)s | %(stage)s | %(message)s"

# Chatty third-party loggers; the reasoning client logs its own summaries.
QUIET_LOGGERS = ("httpx", "httpcore", "openai", "apscheduler.executors.default")


class PipelineContextFilter(logging.Filter):
    """Stamp request id, user id and pipeline stage onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - minimal logic
        record.request_id = get_request_id() or "-"
        record.user_id = get_user_id() or "-"
        record.stage = get_stage() or "-"
        return True


def configure_logging(*, log_level: str = "INFO", debug: bool = False) -> None:
    """Configure application logging once per process.

    With ``debug`` set, SQL statements are logged as well.
    """
    if getattr(configure_logging, "_configured", False):
        return

    loggers = {name: {"level": "WARNING"} for name in QUIET_LOGGERS}
    loggers["sqlalchemy.engine"] = {"level": "INFO" if debug else "WARNING"}

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"pipeline": {"format": LOG_FORMAT}},
            "filters": {"pipeline_context": {"()": "blob.core.logging.PipelineContextFilter"}},
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "pipeline",
                    "level": log_level,
                    "filters": ["pipeline_context"],
                }
            },
            "loggers": loggers,
            "root": {"handlers": ["console"], "level": log_level},
        }
    )

    logging.getLogger(__name__).debug("Logging configured at %s (debug=%s)", log_level, debug)
    setattr(configure_logging, "_configured", True)
