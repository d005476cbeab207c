"""
Tests for the HTTP API.

Every test runs against an in-memory store and a rules-only assistant
bridge (see conftest.py).
"""
from unittest.mock import AsyncMock, MagicMock

import asyncpg
from fastapi.testclient import TestClient

import database
from agents.assistant_bridge import get_assistant_bridge, reset_assistant_bridge
from api import server
from api.server import app
from storage import FallbackTaskStore, PostgresTaskStore, StorageUnavailableError, get_task_store


def submit(client, body):
    response = client.post("/api/tasks", json=body)
    assert response.status_code == 201, response.text
    return response.json()["data"]


# ---------------------------------------------------------------------------
# Health & routing
# ---------------------------------------------------------------------------

def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "OK"
    assert data["storage"] == "memory"
    assert data["assistant"] == "rules-only"
    assert "timestamp" in data


def test_response_time_header(client):
    response = client.get("/api/health")
    assert "x-response-time-ms" in response.headers


def test_unknown_route(client):
    response = client.get("/api/unknown")
    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "message": "Route not found",
        "path": "/api/unknown",
        "method": "GET",
    }


# ---------------------------------------------------------------------------
# Task submission
# ---------------------------------------------------------------------------

def test_create_task(client, valid_task_body):
    response = client.post("/api/tasks", json=valid_task_body)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Task request submitted successfully"
    assert body["data"]["taskCategory"] == "travel_planning"
    assert body["data"]["taskType"] == "other"
    assert body["data"]["status"] == "pending"
    assert set(body["data"]) == {"id", "name", "email", "taskType", "taskCategory", "status", "createdAt"}


def test_created_task_is_retrievable(client, valid_task_body):
    created = submit(client, valid_task_body)

    response = client.get(f"/api/tasks/{created['id']}")

    assert response.status_code == 200
    task = response.json()["data"]
    assert task["email"] == "jane.doe@example.com"
    assert task["priority"] == "high"
    assert task["communicationMethod"] == "video_call"
    assert task["conversationData"] == {"name": "Jane Doe", "servicePreSelected": False}
    assert task["ipAddress"] == "testclient"


def test_create_task_records_forwarded_address(client, valid_task_body):
    response = client.post(
        "/api/tasks",
        json=valid_task_body,
        headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
    )
    task_id = response.json()["data"]["id"]
    assert client.get(f"/api/tasks/{task_id}").json()["data"]["ipAddress"] == "203.0.113.7"


def test_create_task_with_legacy_fields(client):
    created = submit(client, {
        "name": "Sam Lee",
        "email": "sam@example.com",
        "taskType": "meeting",
        "message": "Set up a weekly sync with the design team",
        "schedule": "Mondays at 10am",
    })

    task = client.get(f"/api/tasks/{created['id']}").json()["data"]
    assert task["taskType"] == "meeting"
    assert task["taskCategory"] == "meeting"
    assert task["description"] == "Set up a weekly sync with the design team"
    assert task["deadline"] == "Mondays at 10am"
    assert task["priority"] == "medium"


def test_create_task_missing_name(client, valid_task_body):
    del valid_task_body["name"]

    response = client.post("/api/tasks", json=valid_task_body)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Validation failed"
    assert "name" in [error["field"] for error in body["errors"]]


def test_create_task_invalid_email(client, valid_task_body):
    valid_task_body["email"] = "not-an-email"

    response = client.post("/api/tasks", json=valid_task_body)

    assert response.status_code == 400
    errors = response.json()["errors"]
    assert {"field": "email", "message": "Please provide a valid email address"} in errors


def test_create_task_invalid_category(client, valid_task_body):
    valid_task_body["taskCategory"] = "dog_walking"
    response = client.post("/api/tasks", json=valid_task_body)
    assert response.status_code == 400


def test_create_task_without_description(client, valid_task_body):
    del valid_task_body["description"]
    response = client.post("/api/tasks", json=valid_task_body)
    assert response.status_code == 400


def test_create_task_calls_submission_hook(client, valid_task_body, monkeypatch):
    hook = AsyncMock(return_value=True)
    monkeypatch.setattr(server, "on_task_submitted", hook)

    created = submit(client, valid_task_body)

    hook.assert_awaited_once()
    assert hook.await_args.args[0].id == created["id"]


def test_hook_failure_does_not_fail_submission(client, valid_task_body, monkeypatch):
    monkeypatch.setattr(server, "on_task_submitted", AsyncMock(side_effect=RuntimeError("smtp down")))
    submit(client, valid_task_body)


def test_database_outage_mid_run_is_served_from_memory(valid_task_body, monkeypatch):
    async def refused(*args, **kwargs):
        raise OSError("connection refused")

    async def pool_closed(*args, **kwargs):
        raise asyncpg.InterfaceError("pool is closed")

    monkeypatch.setattr(database, "insert_task", refused)
    monkeypatch.setattr(database, "fetch_task", refused)
    monkeypatch.setattr(database, "fetch_tasks", pool_closed)
    monkeypatch.setattr(database, "update_task_status", refused)

    store = FallbackTaskStore(PostgresTaskStore())
    app.dependency_overrides[get_task_store] = lambda: store
    try:
        client = TestClient(app)
        created = client.post("/api/tasks", json=valid_task_body)
        listed = client.get("/api/tasks")
        task_id = created.json()["data"]["id"]
        fetched = client.get(f"/api/tasks/{task_id}")
        updated = client.patch(f"/api/tasks/{task_id}/status", json={"status": "completed"})
    finally:
        app.dependency_overrides.clear()

    assert created.status_code == 201
    assert listed.status_code == 200
    assert [task["id"] for task in listed.json()["data"]] == [task_id]
    assert fetched.status_code == 200
    assert updated.status_code == 200
    assert updated.json()["data"]["status"] == "completed"


def test_store_without_fallback_reports_503(valid_task_body):
    broken = MagicMock()
    broken.create = AsyncMock(side_effect=StorageUnavailableError("connection refused"))
    app.dependency_overrides[get_task_store] = lambda: broken
    try:
        response = TestClient(app).post("/api/tasks", json=valid_task_body)
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 503
    assert response.json()["success"] is False


def test_unexpected_error_is_500(valid_task_body):
    broken = MagicMock()
    broken.create = AsyncMock(side_effect=RuntimeError("boom"))
    app.dependency_overrides[get_task_store] = lambda: broken
    try:
        response = TestClient(app, raise_server_exceptions=False).post("/api/tasks", json=valid_task_body)
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Something went wrong!"


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

def test_list_tasks_paginates_newest_first(client, valid_task_body):
    ids = [submit(client, {**valid_task_body, "name": f"Client {i}"})["id"] for i in range(3)]

    response = client.get("/api/tasks", params={"limit": 2})

    assert response.status_code == 200
    body = response.json()
    assert body["pagination"] == {"current": 1, "pages": 2, "total": 3}
    assert [task["id"] for task in body["data"]] == [ids[2], ids[1]]

    second = client.get("/api/tasks", params={"limit": 2, "page": 2}).json()
    assert [task["id"] for task in second["data"]] == [ids[0]]


def test_list_tasks_hides_audit_fields(client, valid_task_body):
    submit(client, valid_task_body)
    task = client.get("/api/tasks").json()["data"][0]
    assert "conversationData" not in task
    assert "ipAddress" not in task
    assert "userAgent" not in task


def test_list_tasks_filters(client, valid_task_body):
    travel = submit(client, valid_task_body)
    meeting = submit(client, {
        "name": "Sam Lee",
        "email": "sam@example.com",
        "taskType": "meeting",
        "message": "Set up a weekly sync with the design team",
    })
    client.patch(f"/api/tasks/{meeting['id']}/status", json={"status": "in-progress"})

    by_status = client.get("/api/tasks", params={"status": "in-progress"}).json()
    assert [t["id"] for t in by_status["data"]] == [meeting["id"]]

    by_type = client.get("/api/tasks", params={"taskType": "travel_planning"}).json()
    assert [t["id"] for t in by_type["data"]] == [travel["id"]]


def test_list_tasks_empty(client):
    body = client.get("/api/tasks").json()
    assert body["data"] == []
    assert body["pagination"]["total"] == 0


def test_list_tasks_rejects_bad_paging(client):
    assert client.get("/api/tasks", params={"page": 0}).status_code == 400
    assert client.get("/api/tasks", params={"limit": 101}).status_code == 400
    assert client.get("/api/tasks", params={"status": "archived"}).status_code == 400


def test_get_unknown_task(client):
    response = client.get("/api/tasks/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Task request not found"}


# ---------------------------------------------------------------------------
# Status updates
# ---------------------------------------------------------------------------

def test_update_status(client, valid_task_body):
    created = submit(client, valid_task_body)

    response = client.patch(f"/api/tasks/{created['id']}/status", json={"status": "completed"})

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Task status updated successfully"
    assert body["data"]["status"] == "completed"
    assert client.get(f"/api/tasks/{created['id']}").json()["data"]["status"] == "completed"


def test_update_status_rejects_unknown_value(client, valid_task_body):
    created = submit(client, valid_task_body)

    response = client.patch(f"/api/tasks/{created['id']}/status", json={"status": "bogus"})

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid status value"
    assert client.get(f"/api/tasks/{created['id']}").json()["data"]["status"] == "pending"


def test_update_status_rejects_on_hold(client, valid_task_body):
    created = submit(client, valid_task_body)
    response = client.patch(f"/api/tasks/{created['id']}/status", json={"status": "on-hold"})
    assert response.status_code == 400


def test_update_status_unknown_task(client):
    response = client.patch("/api/tasks/missing/status", json={"status": "completed"})
    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------

def test_chat_turn(client):
    response = client.post("/api/ai/chat", json={
        "message": "Hi, my name is Jane Doe",
        "conversationHistory": [],
        "conversationData": {},
    })

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["collectedData"]["name"] == "Jane Doe"
    assert data["missingFields"] == ["email"]
    assert data["needsMoreInfo"] is True
    assert data["ready"] is False
    assert data["source"] == "rules"


def test_chat_round_trips_collected_data(client):
    first = client.post("/api/ai/chat", json={"message": "Hi, my name is Jane Doe"}).json()["data"]

    second = client.post("/api/ai/chat", json={
        "message": "jane@example.com",
        "conversationHistory": [
            {"role": "user", "content": "Hi, my name is Jane Doe"},
            {"role": "assistant", "content": first["message"]},
        ],
        "conversationData": first["collectedData"],
    }).json()["data"]

    assert second["collectedData"]["name"] == "Jane Doe"
    assert second["collectedData"]["email"] == "jane@example.com"
    assert second["missingFields"] == ["taskCategory"]


def test_chat_accepts_null_conversation(client):
    response = client.post("/api/ai/chat", json={
        "message": "hello",
        "conversationHistory": None,
        "conversationData": None,
    })
    assert response.status_code == 200


def test_chat_accepts_structured_conversation_values(client):
    response = client.post("/api/ai/chat", json={
        "message": "hello",
        "conversationData": {
            "name": "Jane Doe",
            "budget": {"min": 500, "max": 1000},
            "additionalDetails": {"seat": "aisle"},
        },
    })

    assert response.status_code == 200
    collected = response.json()["data"]["collectedData"]
    assert collected["name"] == "Jane Doe"
    assert collected["budget"] == '{"min": 500, "max": 1000}'
    assert collected["additionalDetails"] == '{"seat": "aisle"}'


def test_chat_rejects_empty_message(client):
    for message in ["", "   "]:
        response = client.post("/api/ai/chat", json={"message": message})
        assert response.status_code == 400
        assert response.json()["success"] is False


def test_chat_rejects_long_history(client):
    history = [{"role": "user", "content": "hi"}] * 21
    response = client.post("/api/ai/chat", json={"message": "hello", "conversationHistory": history})
    assert response.status_code == 400


def test_chat_survives_bridge_failure(valid_task_body):
    bridge = MagicMock()
    bridge.respond = AsyncMock(side_effect=RuntimeError("provider exploded"))
    app.dependency_overrides[get_assistant_bridge] = lambda: bridge
    try:
        response = TestClient(app).post("/api/ai/chat", json={"message": "Hi, my name is Jane Doe"})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["source"] == "rules"
    assert data["collectedData"]["name"] == "Jane Doe"


def test_startup_without_database_uses_memory(monkeypatch):
    monkeypatch.setattr(database.config, "DATABASE_URL", "")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("ASSISTANT_MODEL", raising=False)
    reset_assistant_bridge()
    try:
        with TestClient(app) as client:
            health = client.get("/api/health").json()
    finally:
        reset_assistant_bridge()

    assert health["storage"] == "memory"
    assert health["assistant"] == "rules-only"
