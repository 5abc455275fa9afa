"""Shared retry and fallback policy for reasoning-service calls."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Tuple, Type, TypeVar

import openai
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from blob.core.config import Settings
from blob.core.errors import ReasoningUnavailable
from blob.observability.metrics import log_metric

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.InternalServerError,
    asyncio.TimeoutError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to retry a reasoning call, how long to back off, and what may fall back."""

    max_attempts: int = 3
    backoff_min_seconds: float = 1.0
    backoff_max_seconds: float = 20.0
    retry_on: Tuple[Type[BaseException], ...] = field(default=TRANSIENT_ERRORS)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, settings.reasoning_max_attempts),
            backoff_min_seconds=settings.reasoning_backoff_min_seconds,
            backoff_max_seconds=settings.reasoning_backoff_max_seconds,
        )

    def retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=self.backoff_min_seconds, max=self.backoff_max_seconds),
            retry=retry_if_exception_type(self.retry_on),
            before_sleep=before_sleep_log(logger, logging.INFO),
            reraise=True,
        )

    @staticmethod
    def is_fallback_eligible(exc: BaseException) -> bool:
        # MalformedGenerationResult subclasses ReasoningUnavailable.
        return isinstance(exc, ReasoningUnavailable)

    async def run_with_fallback(
        self,
        operation: Callable[[], Awaitable[T]],
        fallback: Callable[[], T],
        *,
        label: str,
    ) -> Tuple[T, bool]:
        """Run ``operation``; on a fallback-eligible failure return ``fallback()`` instead.

        Returns the result and whether the fallback was used.
        """
        try:
            return await operation(), False
        except Exception as exc:
            if not self.is_fallback_eligible(exc):
                raise
            logger.warning("%s falling back to deterministic output: %s", label, exc)
            log_metric(f"{label}.fallback.used", 1, {"reason": type(exc).__name__})
            return fallback(), True
