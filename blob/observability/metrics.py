"""Lightweight metrics helpers."""
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from blob.observability import tracing

logger = logging.getLogger(__name__)


def log_metric(name: str, value: float | int, metadata: Optional[Dict[str, Any]] = None) -> None:
    """Log a metric to Opik if it is enabled."""
    payload: Dict[str, Any] = {"value": value}
    if metadata:
        payload.update(metadata)

    try:
        with tracing.trace(f"metric:{name}", metadata=payload):
            pass
    except Exception as exc:  # pragma: no cover - third-party failure
        logger.debug("Unable to record metric %s: %s", name, exc)


@contextmanager
def timed(name: str, metadata: Optional[Dict[str, Any]] = None) -> Iterator[Dict[str, Any]]:
    """Record the wall-clock latency of the block as ``<name>.latency_ms``.

    The yielded dict can be filled with extra metadata (e.g. ``fallback=True``)
    before the block exits.
    """
    extra: Dict[str, Any] = dict(metadata or {})
    started = time.perf_counter()
    try:
        yield extra
    finally:
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        log_metric(f"{name}.latency_ms", elapsed_ms, metadata=extra)
