from __future__ import annotations

import json
import logging

from docs_platform.common.config import Settings, parse_csv
from docs_platform.common.ids import default_consumer_name, new_event_id, sync_task_id
from docs_platform.common.logging import JsonFormatter


def test_parse_csv_drops_blanks_and_keeps_order() -> None:
    assert parse_csv(" sync_repo, ,build_task,") == ["sync_repo", "build_task"]
    assert parse_csv(None) == []


def test_settings_defaults(monkeypatch) -> None:
    for key in ("JWT_SECRET", "SYNC_INTERVAL_SEC", "INTERNAL_HTTP_TIMEOUT_SEC", "WORKER_QUEUES"):
        monkeypatch.delenv(key, raising=False)
    s = Settings(_env_file=None)
    assert s.sync_interval_sec == 3600
    assert s.internal_http_timeout_sec == 60.0
    assert parse_csv(s.worker_queues) == [
        "clone_repo",
        "create_language_copies",
        "sync_repo",
        "delete_repo",
        "build_task",
    ]


def test_settings_file_override(monkeypatch, tmp_path) -> None:
    secret_file = tmp_path / "jwt_secret"
    secret_file.write_text("from-docker-secret\n", encoding="utf-8")
    keys_file = tmp_path / "service_keys"
    keys_file.write_text("k1\nk2\n", encoding="utf-8")
    monkeypatch.setenv("JWT_SECRET_FILE", str(secret_file))
    monkeypatch.setenv("SERVICE_API_KEYS_FILE", str(keys_file))

    s = Settings(_env_file=None)

    assert s.jwt_secret == "from-docker-secret"
    assert s.service_api_keys == "k1,k2"


def test_sync_task_id_format() -> None:
    assert sync_task_id(7, 1700000000) == "sync-7-1700000000"


def test_event_ids_are_unique_and_prefixed() -> None:
    a, b = new_event_id("clone"), new_event_id("clone")
    assert a != b
    assert a.startswith("clone_")


def test_consumer_name_uses_hostname(monkeypatch) -> None:
    monkeypatch.setenv("HOSTNAME", "worker-7f9c")
    assert default_consumer_name() == "worker-worker-7f9c"


def test_json_formatter_includes_payload() -> None:
    record = logging.LogRecord(
        name="docs-platform",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="task_received",
        args=(),
        exc_info=None,
    )
    record.payload = {"queue": "sync_repo", "task_id": "t1"}

    out = json.loads(JsonFormatter().format(record))

    assert out["msg"] == "task_received"
    assert out["level"] == "INFO"
    assert out["payload"] == {"queue": "sync_repo", "task_id": "t1"}
