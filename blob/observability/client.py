"""Process-wide Opik client used for pipeline traces and metrics."""
from __future__ import annotations

import logging
from threading import Lock
from typing import Optional

from blob.core.config import settings

try:
    from opik import Opik
except ImportError:  # pragma: no cover
    Opik = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)

_client: Optional["Opik"] = None
_client_lock = Lock()
_init_attempted = False


def init_opik() -> Optional["Opik"]:
    """Create the Opik client on first use; later calls return the cached result.

    Tracing stays off when the SDK is missing, ``OPIK_ENABLED`` is false, no
    API key is configured, or the client cannot be constructed.
    """
    global _client, _init_attempted

    if Opik is None:
        return None

    with _client_lock:
        if _client is not None or _init_attempted:
            return _client
        _init_attempted = True

        if not settings.opik_enabled:
            logger.debug("Opik disabled; pipeline traces stay local.")
            return None
        if not settings.opik_api_key:
            logger.warning("OPIK_ENABLED is set without OPIK_API_KEY; pipeline tracing is off.")
            return None

        try:
            _client = Opik(project_name=settings.opik_project, api_key=settings.opik_api_key)
        except Exception as exc:  # pragma: no cover - third-party init
            logger.warning("Could not start Opik (%s); pipeline tracing is off.", exc)
            return None

    logger.info("Opik tracing enabled for project %s.", settings.opik_project)
    return _client


def get_opik_client() -> Optional["Opik"]:
    if _client is not None:
        return _client
    return init_opik()


def flush_opik() -> None:
    """Push buffered traces before the process exits or a batch job finishes."""
    if _client is None:
        return
    try:
        _client.flush()
    except Exception as exc:  # pragma: no cover - third-party failure
        logger.debug("Opik flush failed: %s", exc)


def reset_opik() -> None:
    """Forget the cached client so the next call re-reads settings."""
    global _client, _init_attempted
    with _client_lock:
        _client = None
        _init_attempted = False
