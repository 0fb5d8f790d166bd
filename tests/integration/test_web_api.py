"""HTTP API tests using FastAPI's TestClient."""

import pytest
from fastapi.testclient import TestClient

from feedscout.config.settings import Settings, settings
from feedscout.services import ServiceContainer
from feedscout.web.app import create_app
from tests.helpers import StubExecutor, make_agent

pytestmark = pytest.mark.integration

AUTH = {"Authorization": "Bearer s3cret"}


@pytest.fixture
def container(tmp_path):
    config = Settings(queue_rate_limit=60000, llm_max_requests_per_minute=1000)
    return ServiceContainer.from_settings(
        config, database_path=tmp_path / "api.db", executor=StubExecutor(total_results=2)
    )


@pytest.fixture
def client(container, monkeypatch):
    monkeypatch.setattr(settings, "cron_secret", "s3cret")
    with TestClient(create_app(container)) as test_client:
        yield test_client
    container.store.close()


def test_stats_empty(client):
    response = client.get("/api/queue/stats")

    assert response.status_code == 200
    body = response.json()
    assert body["stats"] == {"pending": 0, "processing": 0, "completed": 0, "failed": 0, "total": 0}
    assert body["llm_queue"]["queue_length"] == 0
    assert body["llm_queue"]["can_make_request"] is True


def test_process_requires_secret(client):
    assert client.post("/api/jobs/process").status_code == 401
    assert client.post("/api/jobs/process", headers={"Authorization": "Bearer wrong"}).status_code == 401
    assert client.get("/api/cron/daily-search").status_code == 401
    assert client.post("/api/queue/cleanup").status_code == 401


def test_secret_not_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "cron_secret", None)

    assert client.post("/api/jobs/process", headers=AUTH).status_code == 401


def test_daily_search_then_items(client, container):
    container.store.upsert_agent(make_agent(1))
    container.store.upsert_agent(make_agent(2))

    response = client.get("/api/cron/daily-search", headers=AUTH)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["enqueued"] == 2
    assert body["processed"] == 2
    assert body["queue_stats"]["completed"] == 2

    items = client.get("/api/queue/items", params={"status": "completed"}).json()["items"]
    assert {i["agent_id"] for i in items} == {"agent-1", "agent-2"}
    assert all(i["results_count"] == 2 for i in items)

    assert client.get("/api/queue/items", params={"status": "pending"}).json()["items"] == []
    # Unknown status values are ignored rather than rejected.
    assert len(client.get("/api/queue/items", params={"status": "bogus"}).json()["items"]) == 2
    assert client.get("/api/queue/items", params={"user_id": "nobody"}).json()["items"] == []


def test_daily_search_without_agents(client):
    body = client.get("/api/cron/daily-search", headers=AUTH).json()

    assert body["success"] is True
    assert body["message"] == "No active agents to process"
    assert body["enqueued"] == 0


def test_process_pending(client, container):
    container.store.upsert_agent(make_agent(1))
    container.store.insert_jobs([container.store.get_agent("agent-1")])

    body = client.post("/api/jobs/process", headers=AUTH).json()

    assert body == {"message": "Queue processed", "processed": 1, "completed": 1, "failed": 0}


def test_cleanup(client):
    response = client.post("/api/queue/cleanup", params={"days": 7}, headers=AUTH)

    assert response.status_code == 200
    assert response.json() == {"deleted": 0}
