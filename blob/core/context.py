"""Context variables carried through requests, pipeline stages and jobs."""
from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, List, Optional, Tuple

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_ctx_var: ContextVar[str | None] = ContextVar("user_id", default=None)
stage_ctx_var: ContextVar[str | None] = ContextVar("pipeline_stage", default=None)


def get_request_id() -> str | None:
    return request_id_ctx_var.get()


def get_user_id() -> str | None:
    return user_id_ctx_var.get()


def get_stage() -> str | None:
    """Name of the pipeline stage currently running (onboarding, initialize, ...)."""
    return stage_ctx_var.get()


@contextmanager
def bind_context(
    *,
    request_id: Optional[str] = None,
    user_id: Optional[object] = None,
    stage: Optional[str] = None,
) -> Iterator[None]:
    """Bind the given values for the duration of the block; ``None`` leaves a value untouched."""
    tokens: List[Tuple[ContextVar, object]] = []
    if request_id is not None:
        tokens.append((request_id_ctx_var, request_id_ctx_var.set(request_id)))
    if user_id is not None:
        tokens.append((user_id_ctx_var, user_id_ctx_var.set(str(user_id))))
    if stage is not None:
        tokens.append((stage_ctx_var, stage_ctx_var.set(stage)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)
