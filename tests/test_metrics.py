"""Tests for metrics helpers and the trace context manager."""
from __future__ import annotations

from typing import Any, Dict

import pytest

from blob.core.context import bind_context
from blob.observability import metrics
from blob.observability import tracing


class _DummyTrace:
    def __init__(self, name: str, metadata: Dict[str, Any]):
        self.name = name
        self.metadata = metadata
        self.error_info: Dict[str, Any] | None = None
        self.ended = False

    def update(self, error_info=None, **kwargs) -> None:
        self.error_info = error_info

    def end(self) -> None:
        self.ended = True


class _DummyClient:
    def __init__(self):
        self.traces: list[_DummyTrace] = []

    def trace(self, name: str, metadata: Dict[str, Any] | None = None):
        trace = _DummyTrace(name, metadata or {})
        self.traces.append(trace)
        return trace


@pytest.fixture()
def dummy_client(monkeypatch) -> _DummyClient:
    client = _DummyClient()
    monkeypatch.setattr(tracing, "get_opik_client", lambda: client)
    return client


def test_log_metric_records_value_and_pipeline_context(dummy_client) -> None:
    with bind_context(user_id="user-7", stage="completion"):
        metrics.log_metric("progress.xp_awarded", 40, metadata={"goal_completed": False})

    (recorded,) = dummy_client.traces
    assert recorded.name == "metric:progress.xp_awarded"
    assert recorded.metadata["value"] == 40
    assert recorded.metadata["goal_completed"] is False
    assert recorded.metadata["user_id"] == "user-7"
    assert recorded.metadata["stage"] == "completion"
    assert recorded.ended is True


def test_timed_reports_latency_with_late_metadata(dummy_client) -> None:
    with metrics.timed("reasoning.call", {"model": "gpt-4o"}) as extra:
        extra["fallback"] = True

    (recorded,) = dummy_client.traces
    assert recorded.name == "metric:reasoning.call.latency_ms"
    assert recorded.metadata["value"] >= 0
    assert recorded.metadata["model"] == "gpt-4o"
    assert recorded.metadata["fallback"] is True


def test_trace_records_errors_and_reraises(dummy_client) -> None:
    with pytest.raises(RuntimeError):
        with tracing.trace("schedule.synthesize", metadata={"date": "2026-03-02"}):
            raise RuntimeError("packing failed")

    (recorded,) = dummy_client.traces
    assert recorded.error_info == {"message": "packing failed", "type": "RuntimeError"}
    assert recorded.ended is True
    assert "stage" not in recorded.metadata


def test_trace_is_a_no_op_without_client(monkeypatch) -> None:
    monkeypatch.setattr(tracing, "get_opik_client", lambda: None)

    with tracing.trace("goal.decompose") as span:
        assert span is None
