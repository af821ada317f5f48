from __future__ import annotations

import asyncio
import hashlib
import hmac
import json

import pytest
from fastapi.testclient import TestClient

from portfolio_sync import main
from portfolio_sync.config.settings import settings

SECRET = "s3cret"


@pytest.fixture
def scheduled(monkeypatch) -> list[str]:
    calls: list[str] = []

    async def fake_run_sync_task(full_name: str) -> None:
        calls.append(full_name)

    monkeypatch.setattr(settings, "WEBHOOK_SECRET", SECRET)
    monkeypatch.setattr(settings, "WEBHOOK_BRANCHES", "main,master")
    monkeypatch.setattr(main, "run_sync_task", fake_run_sync_task)
    return calls


def post(event: str, payload: dict, *, secret: str = SECRET):
    body = json.dumps(payload).encode()
    signature = "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    client = TestClient(main.app)
    return client.post(
        "/webhook",
        content=body,
        headers={
            "X-GitHub-Event": event,
            "X-Hub-Signature-256": signature,
            "Content-Type": "application/json",
        },
    )


def push(ref: str, default_branch: str = "main") -> dict:
    return {
        "ref": ref,
        "repository": {"full_name": "gderamchi/ray-tracer", "default_branch": default_branch},
    }


def test_invalid_signature_is_rejected(scheduled) -> None:
    response = post("push", push("refs/heads/main"), secret="wrong")

    assert response.status_code == 401
    assert scheduled == []


def test_missing_secret_is_service_unavailable(scheduled, monkeypatch) -> None:
    monkeypatch.setattr(settings, "WEBHOOK_SECRET", None)

    response = post("push", push("refs/heads/main"))

    assert response.status_code == 503
    assert scheduled == []


def test_push_to_tracked_branch_starts_sync(scheduled) -> None:
    response = post("push", push("refs/heads/main"))

    assert response.status_code == 200
    assert response.json()["status"] == "started"
    assert response.json()["repository"] == "gderamchi/ray-tracer"
    assert scheduled == ["gderamchi/ray-tracer"]


def test_push_to_feature_branch_is_ignored(scheduled) -> None:
    response = post("push", push("refs/heads/feature/x"))

    assert response.json()["status"] == "ignored"
    assert scheduled == []


def test_push_to_custom_default_branch_starts_sync(scheduled) -> None:
    response = post("push", push("refs/heads/trunk", default_branch="trunk"))

    assert response.json()["status"] == "started"
    assert scheduled == ["gderamchi/ray-tracer"]


def test_repository_events(scheduled) -> None:
    repository = {"full_name": "gderamchi/new-tool"}

    created = post("repository", {"action": "created", "repository": repository})
    deleted = post("repository", {"action": "deleted", "repository": repository})

    assert created.json()["status"] == "started"
    assert deleted.json()["status"] == "ignored"
    assert scheduled == ["gderamchi/new-tool"]


def test_ping_and_unknown_events(scheduled) -> None:
    assert post("ping", {"zen": "Keep it logically awesome."}).json() == {"status": "ok", "message": "pong"}
    assert post("issues", {"repository": {"full_name": "a/b"}}).json()["status"] == "ignored"
    assert scheduled == []


def test_health_reports_secret_configuration(scheduled) -> None:
    response = TestClient(main.app).get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["secret_configured"] is True


def test_run_sync_task_records_stats(monkeypatch) -> None:
    seen = {}

    async def fake_incremental(full_name, *, orchestrator=None, owner=None):
        seen["orchestrator"] = orchestrator
        return {"repository": full_name, "action": "updated", "success": True}

    async def failing_incremental(full_name, *, orchestrator=None, owner=None):
        raise RuntimeError("GitHub unreachable")

    monkeypatch.setattr(main, "orchestrator_factory", lambda: "orchestrator")
    monkeypatch.setattr(main, "last_stats", {})
    monkeypatch.setattr(main, "sync_lock", asyncio.Lock())

    monkeypatch.setattr(main, "run_incremental_sync", fake_incremental)
    asyncio.run(main.run_sync_task("gderamchi/ray-tracer"))
    assert main.last_stats["incremental"]["action"] == "updated"
    assert seen["orchestrator"] == "orchestrator"

    monkeypatch.setattr(main, "run_incremental_sync", failing_incremental)
    asyncio.run(main.run_sync_task("gderamchi/ray-tracer"))
    assert main.last_stats["incremental"] == {
        "repository": "gderamchi/ray-tracer",
        "success": False,
        "error": "GitHub unreachable",
    }
