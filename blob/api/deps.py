"""Dependency providers for pipeline components."""
from __future__ import annotations

import asyncio
from typing import Coroutine, TypeVar

from fastapi import Depends

from blob.core.config import settings
from blob.services.goal_decomposer import GoalDecomposer
from blob.services.orchestrator import Orchestrator
from blob.services.reasoning import ReasoningClient

T = TypeVar("T")


def get_reasoning_client():
    """Reasoning client used by request handlers; override in tests with a fake.

    Built per request: its HTTP client binds to the loop of the request that
    first uses it.
    """
    return ReasoningClient.from_settings(settings)


def get_orchestrator(reasoning=Depends(get_reasoning_client)) -> Orchestrator:
    return Orchestrator(reasoning=reasoning, settings=settings)


def get_decomposer(reasoning=Depends(get_reasoning_client)) -> GoalDecomposer:
    return GoalDecomposer(reasoning, retry_policy=getattr(reasoning, "retry_policy", None))


def run_pipeline(pipeline: Coroutine[object, object, T]) -> T:
    """Run a pipeline coroutine from a sync handler.

    Sync handlers execute in the server threadpool, so the blocking session
    calls inside the pipeline never stall the server's event loop.
    """
    return asyncio.run(pipeline)
