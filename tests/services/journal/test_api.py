from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from services.journal.app import create_app
from services.journal.config import JournalSettings
from services.journal.storage import BackendLink


def _ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@pytest.fixture
def app(client_factory):
    link = BackendLink(client_factory, base_delay=0, max_delay=0)
    return create_app(JournalSettings(app_env="production"), link=link)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def degraded_client(down_redis):
    link = BackendLink(lambda: down_redis, base_delay=60, max_delay=60)
    app = create_app(JournalSettings(app_env="production"), link=link)
    with TestClient(app) as client:
        yield client


def test_create_update_delete_scenario(client):
    resp = client.post("/api/journals/u1", json={"title": "Day 1", "content": "Hello"})
    assert resp.status_code == 201
    body = resp.json()
    assert body["message"] == "Journal entry created"
    entry = body["entry"]
    assert entry["mood"] == "neutral"
    assert entry["tags"] == []
    assert entry["owner"] == "u1"
    assert entry["createdAt"] == entry["updatedAt"]

    resp = client.put(f"/api/journals/u1/{entry['id']}", json={"content": "Hello world"})
    assert resp.status_code == 200
    updated = resp.json()["entry"]
    assert updated["title"] == "Day 1"
    assert updated["content"] == "Hello world"
    assert _ts(updated["updatedAt"]) > _ts(updated["createdAt"])

    resp = client.delete(f"/api/journals/u1/{entry['id']}")
    assert resp.status_code == 200
    assert resp.json() == {"message": "Journal entry deleted"}

    resp = client.get(f"/api/journals/u1/{entry['id']}")
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Entry not found"}
    assert client.get("/api/journals/u1").json() == {"owner": "u1", "entries": []}


def test_get_returns_entry(client):
    entry = client.post(
        "/api/journals/u1",
        json={"title": "t", "content": "c", "mood": "happy", "tags": ["a"]},
    ).json()["entry"]

    resp = client.get(f"/api/journals/u1/{entry['id']}")
    assert resp.status_code == 200
    assert resp.json() == entry


def test_list_returns_summaries_newest_first(client):
    first = client.post("/api/journals/u1", json={"title": "one", "content": "c"}).json()["entry"]
    second = client.post("/api/journals/u1", json={"title": "two", "content": "c"}).json()["entry"]
    client.put(f"/api/journals/u1/{first['id']}", json={"title": "one again"})

    resp = client.get("/api/journals/u1")
    assert resp.status_code == 200
    body = resp.json()
    assert body["owner"] == "u1"
    assert [e["id"] for e in body["entries"]] == [first["id"], second["id"]]
    assert set(body["entries"][0]) == {"id", "title", "mood", "createdAt", "updatedAt"}
    assert body["entries"][0]["title"] == "one again"


@pytest.mark.parametrize(
    "payload",
    [{"content": "Hello"}, {"title": "Day 1"}, {"title": "", "content": "Hello"}, {}],
)
def test_create_requires_title_and_content(client, payload):
    resp = client.post("/api/journals/u1", json=payload)
    assert resp.status_code == 400
    assert resp.json() == {"detail": "Title and content are required"}


def test_malformed_body_is_bad_request(client):
    resp = client.post("/api/journals/u1", json={"title": "t", "content": "c", "tags": "oops"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid request body"

    resp = client.post(
        "/api/journals/u1", content=b"{not json", headers={"Content-Type": "application/json"}
    )
    assert resp.status_code == 400


def test_update_missing_entry_is_404(client):
    resp = client.put("/api/journals/u1/nope", json={"title": "x"})
    assert resp.status_code == 404


def test_delete_missing_entry_is_ok(client):
    resp = client.delete("/api/journals/u1/nope")
    assert resp.status_code == 200


def test_reconcile_endpoint_reports(client):
    client.post("/api/journals/u1", json={"title": "t", "content": "c"})

    resp = client.post("/api/journals/u1/reconcile")
    assert resp.status_code == 200
    report = resp.json()["report"]
    assert report["owner"] == "u1"
    assert report["indexed"] == 1
    assert report["added"] == [] and report["removed"] == []


def test_probes_when_connected(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["checks"] == {"redis": "connected"}
    assert "timestamp" in body

    resp = client.get("/ready")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ready"}

    assert client.get("/live").json() == {"status": "alive"}


def test_degraded_mode_keeps_serving(degraded_client):
    resp = degraded_client.get("/health")
    assert resp.status_code == 503
    assert resp.json()["status"] == "degraded"

    resp = degraded_client.get("/ready")
    assert resp.status_code == 503
    assert resp.json() == {"status": "not ready", "reason": "Redis not connected"}

    assert degraded_client.get("/live").status_code == 200

    resp = degraded_client.get("/api/journals/u1")
    assert resp.status_code == 500
    assert resp.json() == {"detail": "Failed to retrieve journal entries"}

    resp = degraded_client.post("/api/journals/u1", json={"title": "t", "content": "c"})
    assert resp.status_code == 500
    assert resp.json() == {"detail": "Failed to create journal entry"}

    assert degraded_client.get("/api/journals/u1/x").status_code == 500
    assert degraded_client.put("/api/journals/u1/x", json={"title": "t"}).status_code == 500
    assert degraded_client.delete("/api/journals/u1/x").status_code == 500


def test_metrics_exposes_backend_counters(client):
    client.get("/api/journals/u1")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "journal_backend_ops_total" in resp.text
    assert "journal_backend_state" in resp.text
    assert "journal_requests_total" in resp.text


@pytest.mark.parametrize(
    "app_env, expose", [("production", False), ("development", True)]
)
def test_unexpected_errors_hide_detail_outside_development(client_factory, app_env, expose):
    link = BackendLink(client_factory, base_delay=0, max_delay=0)
    app = create_app(JournalSettings(app_env=app_env), link=link)

    async def boom(owner):
        raise RuntimeError("index corrupted")

    app.state.store.list = boom
    with TestClient(app, raise_server_exceptions=False) as client:
        resp = client.get("/api/journals/u1")

    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "Internal server error"
    assert ("message" in body) is expose
    if expose:
        assert body["message"] == "index corrupted"
