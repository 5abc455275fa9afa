from __future__ import annotations

from uuid import uuid4

import pytest

from blob.observability import client as client_module


class _DummyTrace:
    def __init__(self, name=None, metadata=None, **kwargs):
        self.name = name
        self.metadata = metadata or {}
        self.ended = False

    def update(self, metadata=None, **kwargs):
        if metadata:
            self.metadata = metadata

    def end(self):
        self.ended = True


class _DummyOpik:
    def __init__(self, *args, **kwargs):
        self.kwargs = kwargs
        self.traces = []

    def trace(self, **kwargs):
        trace = _DummyTrace(name=kwargs.get("name"), metadata=kwargs.get("metadata"))
        self.traces.append(trace)
        return trace


@pytest.fixture()
def dummy_opik(monkeypatch):
    monkeypatch.setattr(client_module, "Opik", _DummyOpik)
    monkeypatch.setattr(client_module.settings, "opik_enabled", True)
    monkeypatch.setattr(client_module.settings, "opik_api_key", "test-key")
    client_module.reset_opik()
    yield
    client_module.reset_opik()


def test_requests_are_traced_when_opik_is_enabled(dummy_opik, client):
    test_client, _ = client

    resp = test_client.post(
        "/onboarding",
        json={"user_id": str(uuid4()), "text": "too short"},
        headers={"X-Request-Id": "trace-me"},
    )

    assert resp.status_code == 200
    assert resp.json()["status"] == "need_more_input"
    opik = client_module.get_opik_client()
    assert isinstance(opik, _DummyOpik)
    names = [trace.name for trace in opik.traces]
    assert "onboarding.submit" in names
    submit = next(trace for trace in opik.traces if trace.name == "onboarding.submit")
    assert submit.metadata["request_id"] == "trace-me"
    assert all(trace.ended for trace in opik.traces)
