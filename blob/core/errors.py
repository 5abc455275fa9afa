"""Domain error taxonomy and its HTTP mapping."""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """Base class for errors raised by the planning pipeline."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "pipeline_error"

    def __init__(self, message: str, **details) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ReasoningUnavailable(PipelineError):
    """The reasoning service is unconfigured, unreachable, or timed out."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "reasoning_unavailable"


class MalformedGenerationResult(ReasoningUnavailable):
    """The reasoning service answered, but the payload did not fit the expected shape.

    Subclasses ReasoningUnavailable so that fallback-eligible callers can treat both alike.
    """

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "malformed_generation"


class ValidationError(PipelineError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"


class NotFoundError(PipelineError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class PersistenceError(PipelineError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "persistence_error"


class DuplicateCompletionError(PipelineError):
    """Raised internally when a task or goal is completed a second time."""

    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_completion"


async def _pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    if exc.status_code >= 500:
        logger.warning("%s on %s: %s", exc.code, request.url.path, exc.message)
    body = {
        "detail": exc.message,
        "code": exc.code,
        "request_id": request_id,
    }
    if isinstance(exc, (ReasoningUnavailable, PersistenceError)):
        body["retryable"] = True
    return JSONResponse(status_code=exc.status_code, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PipelineError, _pipeline_error_handler)
