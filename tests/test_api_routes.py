from __future__ import annotations

import threading
from datetime import date, timedelta
from uuid import UUID, uuid4

from blob.api.deps import get_orchestrator, run_pipeline
from blob.db.models.task import Task
from blob.services.orchestrator import InitializationSummary
from factories import extraction_payload

ONBOARDING_TEXT = "I want to run a half marathon and learn enough Spanish to chat on my trip."


def _create_user(test_client, **profile) -> str:
    resp = test_client.post("/users", json=profile)
    assert resp.status_code == 201
    return resp.json()["id"]


def _create_goal(test_client, user_id: str, **fields) -> dict:
    payload = {"user_id": user_id, "title": "Run a 10k", "description": "Build up slowly", "category": "fitness"}
    payload.update(fields)
    resp = test_client.post("/goals", json=payload)
    assert resp.status_code == 201
    return resp.json()


def test_user_profile_round_trip(client):
    test_client, _ = client
    user_id = _create_user(
        test_client, display_name="Sam", energy_pattern="morning", work_start_time="08:00", work_end_time="16:30"
    )

    resp = test_client.get(f"/users/{user_id}")
    assert resp.status_code == 200
    body = resp.json()
    assert body["display_name"] == "Sam"
    assert body["work_start_time"].startswith("08:00")
    assert body["available_hours"] == 7.5
    assert body["level"] == 1

    patched = test_client.patch(f"/users/{user_id}", json={"break_duration_min": 30})
    assert patched.status_code == 200
    assert patched.json()["available_hours"] == 8.0


def test_invalid_work_window_is_rejected(client):
    test_client, _ = client
    user_id = _create_user(test_client)

    resp = test_client.patch(f"/users/{user_id}", json={"work_start_time": "18:00"})

    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_error"


def test_unknown_user_is_not_found(client):
    test_client, _ = client

    resp = test_client.get(f"/users/{uuid4()}", headers={"X-Request-Id": "req-404"})

    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"
    assert resp.json()["request_id"] == "req-404"


def test_goal_lifecycle(client):
    test_client, session_factory = client
    user_id = _create_user(test_client)
    goal = _create_goal(test_client, user_id)

    assert goal["progress"] == 0
    assert goal["source"] == "manual"
    assert goal["breakdown"]["kind"] == "fallback"

    updated = test_client.patch(f"/goals/{goal['id']}", json={"user_id": user_id, "title": "Run a half marathon"})
    assert updated.status_code == 200
    assert "Run a half marathon" in updated.json()["breakdown"]["weekly_tasks"][0]

    listed = test_client.get("/goals", params={"user_id": user_id})
    assert [item["id"] for item in listed.json()] == [goal["id"]]

    overview = test_client.get("/goals/overview", params={"user_id": user_id}).json()
    assert overview == {"total": 1, "completed": 0, "active": 1, "average_progress": 0.0}

    init = test_client.post("/system/initialize", json={"user_id": user_id, "days": 1})
    assert init.status_code == 200
    assert init.json()["tasks_generated"] > 0

    deleted = test_client.delete(f"/goals/{goal['id']}", params={"user_id": user_id})
    assert deleted.status_code == 204
    assert test_client.get(f"/goals/{goal['id']}", params={"user_id": user_id}).status_code == 404

    session = session_factory()
    try:
        remaining = session.query(Task).filter(Task.user_id == UUID(user_id)).all()
        assert remaining
        assert all(task.related_goal_id is None for task in remaining)
    finally:
        session.close()


def test_goal_requires_existing_user_and_valid_category(client):
    test_client, _ = client

    missing = test_client.post("/goals", json={"user_id": str(uuid4()), "title": "Learn piano"})
    assert missing.status_code == 404

    user_id = _create_user(test_client)
    bad = test_client.post("/goals", json={"user_id": user_id, "title": "Learn piano", "category": "hobbies"})
    assert bad.status_code == 422


def test_initialize_then_complete_tasks(client):
    test_client, _ = client
    user_id = _create_user(test_client)
    _create_goal(test_client, user_id, priority="high")
    today = date.today().isoformat()

    init = test_client.post("/system/initialize", json={"user_id": user_id})
    assert init.status_code == 200
    body = init.json()
    assert body["status"] == "ready"
    assert len(body["schedule_dates"]) == 3
    assert body["next_actions"]

    tasks = test_client.get("/tasks", params={"user_id": user_id, "date": today}).json()
    assert tasks
    task_id = tasks[0]["id"]

    done = test_client.post(f"/tasks/{task_id}/complete", json={"user_id": user_id})
    assert done.status_code == 200
    first = done.json()
    assert first["xp_awarded"] > 0
    assert first["duplicate"] is False
    assert first["goal_progress"] > 0
    assert first["task"]["status"] == "completed"

    again = test_client.post(f"/tasks/{task_id}/complete", json={"user_id": user_id}).json()
    assert again["duplicate"] is True
    assert again["xp_awarded"] == 0
    assert again["xp_total"] == first["xp_total"]

    stats = test_client.get("/tasks/stats", params={"user_id": user_id, "date": today}).json()
    assert stats["completed"] == 1
    assert stats["total"] == len(tasks)


def test_task_status_and_reschedule(client):
    test_client, _ = client
    user_id = _create_user(test_client)
    _create_goal(test_client, user_id)
    test_client.post("/system/initialize", json={"user_id": user_id, "days": 1})
    first, second = test_client.get("/tasks", params={"user_id": user_id}).json()[:2]

    started = test_client.patch(f"/tasks/{first['id']}/status", json={"user_id": user_id, "status": "in_progress"})
    assert started.status_code == 200
    assert started.json()["status"] == "in_progress"

    invalid = test_client.patch(f"/tasks/{first['id']}/status", json={"user_id": user_id, "status": "pending"})
    assert invalid.status_code == 422

    new_date = (date.today() + timedelta(days=2)).isoformat()
    moved = test_client.post(f"/tasks/{second['id']}/reschedule", json={"user_id": user_id, "new_date": new_date})
    assert moved.status_code == 200
    assert moved.json()["status"] == "rescheduled"
    assert moved.json()["scheduled_date"] == new_date


def test_schedule_read_and_regenerate(client):
    test_client, _ = client
    user_id = _create_user(test_client)
    _create_goal(test_client, user_id)
    today = date.today().isoformat()

    assert test_client.get(f"/schedules/{today}", params={"user_id": user_id}).status_code == 404

    test_client.post("/system/initialize", json={"user_id": user_id, "days": 1})
    stored = test_client.get(f"/schedules/{today}", params={"user_id": user_id})
    assert stored.status_code == 200
    assert stored.json()["is_fallback"] is True

    regenerated = test_client.post(
        f"/schedules/{today}/regenerate",
        json={"user_id": user_id, "commitments": [{"title": "Dentist", "start": "09:00", "end": "10:00"}]},
    )
    assert regenerated.status_code == 200
    body = regenerated.json()
    assert body["id"] == stored.json()["id"]
    kinds = {block["kind"]: block for block in body["blocks"]}
    assert kinds["commitment"]["start_time"] == "09:00"
    task_starts = [block["start_time"] for block in body["blocks"] if block["kind"] == "task"]
    assert min(task_starts) >= "10:00"


def test_onboarding_short_text(client):
    test_client, _ = client

    resp = test_client.post("/onboarding", json={"user_id": str(uuid4()), "text": "get fit"})

    assert resp.status_code == 200
    assert resp.json()["status"] == "need_more_input"
    assert resp.json()["goals"] == []


def test_onboarding_end_to_end(client, fake_reasoning):
    test_client, _ = client
    fake_reasoning.responses["onboarding.extract"] = extraction_payload(goal_count=2)
    user_id = str(uuid4())

    resp = test_client.post(
        "/onboarding",
        json={"user_id": user_id, "text": ONBOARDING_TEXT, "profile": {"energy_pattern": "morning"}},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "completed"
    assert len(body["goals"]) == 2
    assert body["initialization"]["status"] == "ready"
    assert test_client.get(f"/users/{user_id}").json()["energy_pattern"] == "morning"

    repeat = test_client.post("/onboarding", json={"user_id": user_id, "text": ONBOARDING_TEXT})
    assert repeat.status_code == 422


def test_onboarding_retry_after_outage(client, fake_reasoning):
    test_client, _ = client
    user_id = str(uuid4())
    fake_reasoning.available = False

    failed = test_client.post("/onboarding", json={"user_id": user_id, "text": ONBOARDING_TEXT})
    assert failed.status_code == 200
    assert failed.json()["status"] == "needs_manual_setup"

    fake_reasoning.available = True
    fake_reasoning.responses["onboarding.extract"] = extraction_payload(goal_count=2)
    retried = test_client.post("/onboarding/retry", json={"user_id": user_id})

    assert retried.status_code == 200
    assert retried.json()["status"] == "completed"


def test_onboarding_retry_without_conversation_is_not_found(client):
    test_client, _ = client

    resp = test_client.post("/onboarding/retry", json={"user_id": str(uuid4())})

    assert resp.status_code == 404


def test_pipeline_routes_keep_blocking_work_off_the_server_loop(client):
    test_client, _ = client
    threads = {}

    class _RecordingOrchestrator:
        async def initialize(self, db, user_id, **kwargs):
            threads["pipeline"] = threading.get_ident()
            return InitializationSummary(status="needs_goals")

    async def recording_orchestrator():
        # Async dependencies run on the server's event loop.
        threads["server_loop"] = threading.get_ident()
        return _RecordingOrchestrator()

    test_client.app.dependency_overrides[get_orchestrator] = recording_orchestrator

    resp = test_client.post("/system/initialize", json={"user_id": str(uuid4())})

    assert resp.status_code == 200
    assert resp.json()["status"] == "needs_goals"
    assert threads["pipeline"] != threads["server_loop"]


def test_run_pipeline_drives_a_coroutine_to_completion():
    async def pipeline():
        return "done"

    assert run_pipeline(pipeline()) == "done"
