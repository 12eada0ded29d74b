from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

import jwt
import pytest
import redis
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

import apps.tasks_api.main as api_main
from apps.tasks_api.deps import broker_dep
from apps.tasks_api.main import app
from apps.tasks_api.routers.projects import activity_dep
from docs_platform.clients.activity_log import ActivityLogClient
from docs_platform.common.config import get_settings
from docs_platform.common.errors import BrokerUnavailableError
from docs_platform.queue.broker import QueueBroker
from docs_platform.queue.dispatcher import Q_BUILD_TASK, Q_CLONE_REPO, Q_DELETE_REPO, Q_SYNC_REPO

SECRET = "tasks-api-test-secret-0123456789abcdef0123"


class _RecordingActivity(ActivityLogClient):
    def __init__(self) -> None:
        super().__init__(base_url="http://logging:8080", enabled=False)
        self.events: list[dict] = []

    def log_activity(self, log_type, message, *, level=None, user_id=None, project_id=None):
        self.events.append({"type": log_type, "user_id": user_id, "project_id": project_id})
        return True


@pytest.fixture()
def auth_settings():
    s = get_settings()
    keys = ["app_env", "auth_mode", "service_api_keys", "jwt_secret", "jwt_audience", "jwt_issuer"]
    snapshot = {k: getattr(s, k) for k in keys}
    try:
        s.app_env = "dev"
        s.auth_mode = "jwt"
        s.jwt_secret = SECRET
        s.jwt_audience = None
        s.jwt_issuer = None
        s.service_api_keys = "svc-key"
        yield s
    finally:
        for k, v in snapshot.items():
            setattr(s, k, v)


@pytest.fixture()
def activity() -> _RecordingActivity:
    return _RecordingActivity()


@pytest.fixture()
def client(auth_settings, broker, activity):
    app.dependency_overrides[broker_dep] = lambda: broker
    app.dependency_overrides[activity_dep] = lambda: activity
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _auth(role: str, user_id: int = 17) -> dict[str, str]:
    now = datetime.now(UTC)
    token = jwt.encode(
        {
            "user_id": user_id,
            "username": f"{role}-user",
            "role": role,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=5)).timestamp()),
        },
        SECRET,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


def test_health(client) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_clone_requires_auth(client) -> None:
    r = client.post("/v1/projects/1/repo/clone", json={"repoUrl": "https://git/1"})
    assert r.status_code == 401
    assert r.json()["detail"]["code"] == "unauthorized"


def test_viewer_cannot_enqueue(client, fake_redis) -> None:
    r = client.post("/v1/projects/1/repo/sync", headers=_auth("viewer"))
    assert r.status_code == 403
    assert r.json()["detail"]["code"] == "forbidden"
    assert fake_redis.bodies(Q_SYNC_REPO) == []


def test_editor_enqueues_clone(client, fake_redis, activity) -> None:
    r = client.post(
        "/v1/projects/5/repo/clone",
        json={"repoUrl": "https://git.local/docs.git"},
        headers=_auth("editor", user_id=21),
    )
    assert r.status_code == 202
    data = r.json()
    assert data["type"] == "clone_repo"
    assert data["queue"] == Q_CLONE_REPO
    assert data["project_id"] == 5

    [body] = fake_redis.bodies(Q_CLONE_REPO)
    env = json.loads(body)
    assert env["id"] == data["task_id"]
    assert env["payload"] == {"projectId": 5, "repoUrl": "https://git.local/docs.git"}
    assert activity.events == [
        {"type": "api_clone_repo_requested", "user_id": 21, "project_id": 5}
    ]


def test_clone_validates_body(client) -> None:
    r = client.post("/v1/projects/5/repo/clone", json={}, headers=_auth("editor"))
    assert r.status_code == 422


def test_language_copies_enqueued(client, fake_redis) -> None:
    r = client.post(
        "/v1/projects/5/repo/language-copies",
        json={"languages": ["es", "fr"]},
        headers=_auth("editor"),
    )
    assert r.status_code == 202
    [body] = fake_redis.bodies("create_language_copies")
    assert json.loads(body)["payload"] == {"projectId": 5, "languages": ["es", "fr"]}


def test_build_enqueued_with_build_type(client, fake_redis) -> None:
    r = client.post("/v1/projects/3/builds", json={"buildType": "export"}, headers=_auth("admin"))
    assert r.status_code == 202
    [body] = fake_redis.bodies(Q_BUILD_TASK)
    assert json.loads(body)["payload"] == {"projectId": 3, "buildType": "export"}


def test_build_rejects_unknown_build_type(client, fake_redis) -> None:
    r = client.post("/v1/projects/3/builds", json={"buildType": "deploy"}, headers=_auth("editor"))
    assert r.status_code == 422
    assert fake_redis.bodies(Q_BUILD_TASK) == []


def test_delete_requires_admin(client, fake_redis) -> None:
    r = client.delete("/v1/projects/9/repo", headers=_auth("editor"))
    assert r.status_code == 403

    r = client.delete("/v1/projects/9/repo", headers=_auth("admin"))
    assert r.status_code == 202
    assert len(fake_redis.bodies(Q_DELETE_REPO)) == 1


def test_service_key_can_enqueue(client, fake_redis) -> None:
    r = client.post("/v1/projects/4/repo/sync", headers={"X-API-Key": "svc-key"})
    assert r.status_code == 202
    assert len(fake_redis.bodies(Q_SYNC_REPO)) == 1


def test_broker_failure_returns_503(client, fake_redis) -> None:
    fake_redis.fail_on["xadd"] = redis.ConnectionError("Connection refused")
    r = client.post("/v1/projects/4/repo/sync", headers=_auth("editor"))
    assert r.status_code == 503
    assert r.json()["detail"]["code"] == "broker_unavailable"


def test_broker_unavailable_on_connect_returns_503(auth_settings, activity, monkeypatch) -> None:
    def _down(cls, *args, **kwargs):
        raise BrokerUnavailableError("Не удалось подключиться к Redis")

    monkeypatch.setattr(QueueBroker, "connect", classmethod(_down))
    monkeypatch.setattr(app.state, "broker", None)
    app.dependency_overrides[activity_dep] = lambda: activity
    try:
        r = TestClient(app).post("/v1/projects/4/repo/sync", headers=_auth("editor"))
    finally:
        app.dependency_overrides.clear()
    assert r.status_code == 503
    assert r.json()["detail"]["code"] == "broker_unavailable"


def test_metrics_endpoint(client) -> None:
    client.get("/health")
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "docs_requests_total" in r.text


def test_request_metrics_use_route_template(client) -> None:
    def _count(route: str) -> float:
        value = REGISTRY.get_sample_value(
            "docs_requests_total",
            {"service": "tasks-api", "route": route, "method": "POST", "status": "202"},
        )
        return value or 0.0

    template = "/v1/projects/{project_id}/repo/sync"
    before = _count(template)

    for project_id in (101, 102):
        r = client.post(f"/v1/projects/{project_id}/repo/sync", headers={"X-API-Key": "svc-key"})
        assert r.status_code == 202

    assert _count(template) == before + 2
    assert _count("/v1/projects/101/repo/sync") == 0.0


def test_main_serves_on_configured_host_and_port(monkeypatch) -> None:
    s = get_settings()
    monkeypatch.setattr(s, "api_host", "127.0.0.1")
    monkeypatch.setattr(s, "api_port", 18080)
    served: dict = {}
    monkeypatch.setattr(api_main.uvicorn, "run", lambda app, **kw: served.update(app=app, **kw))

    api_main.main()

    assert served["app"] is app
    assert (served["host"], served["port"]) == ("127.0.0.1", 18080)
