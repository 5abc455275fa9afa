"""Tests ensuring observability wiring is safe by default."""
from __future__ import annotations

import importlib


def _reload_with_env(monkeypatch, **env):
    for key, value in env.items():
        if value is None:
            monkeypatch.delenv(key, raising=False)
        else:
            monkeypatch.setenv(key, value)

    import blob.core.config as core_config
    import blob.observability.client as client_module

    importlib.reload(core_config)
    return importlib.reload(client_module)


def test_app_starts_without_opik(monkeypatch) -> None:
    client_module = _reload_with_env(monkeypatch, OPIK_ENABLED="false", OPIK_API_KEY=None)
    import blob.main as main_module

    reloaded = importlib.reload(main_module)

    assert client_module.init_opik() is None
    paths = {route.path for route in reloaded.app.routes}
    assert {"/health", "/onboarding", "/goals", "/tasks/{task_id}/complete", "/system/initialize"} <= paths


def test_enabled_opik_without_api_key_stays_off(monkeypatch) -> None:
    client_module = _reload_with_env(monkeypatch, OPIK_ENABLED="true", OPIK_API_KEY=None)

    assert client_module.init_opik() is None
    assert client_module.get_opik_client() is None
    client_module.flush_opik()
    client_module.reset_opik()
