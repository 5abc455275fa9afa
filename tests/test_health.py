from uuid import uuid4

from fastapi.testclient import TestClient


def _get_client() -> TestClient:
    from blob.main import app

    return TestClient(app)


def test_health_endpoint_returns_ok() -> None:
    response = _get_client().get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers.get("X-Request-Id")


def test_request_id_echoed_from_header() -> None:
    response = _get_client().get("/health", headers={"X-Request-Id": "health-check-1"})

    assert response.headers.get("X-Request-Id") == "health-check-1"


def test_pipeline_errors_carry_the_request_id(client) -> None:
    test_client, _ = client

    response = test_client.get(
        "/schedules/2026-03-02",
        params={"user_id": str(uuid4())},
        headers={"X-Request-Id": "missing-schedule"},
    )

    assert response.status_code == 404
    body = response.json()
    assert body["code"] == "not_found"
    assert body["request_id"] == "missing-schedule"
    assert response.headers.get("X-Request-Id") == "missing-schedule"
