"""
Централизованная конфигурация проекта (ENV / .env).

Важно:
- настройки читаются из .env и переменных окружения
- типизированные значения через pydantic-settings
- любое поле можно переопределить файлом через <ALIAS>_FILE (docker secrets)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "your-secret-key"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Runtime
    # -------------------------------------------------------------------------
    app_env: str = Field(default="dev", alias="APP_ENV")
    service_name: str = Field(default="tasks-api", alias="SERVICE_NAME")
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=12030, alias="API_PORT")
    cors_allowed_origins: str = Field(default="*", alias="CORS_ALLOWED_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    metrics_port: int = Field(default=0, alias="METRICS_PORT")  # 0 = выключено

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------
    auth_mode: str = Field(default="jwt", alias="AUTH_MODE")  # jwt|none
    jwt_secret: str = Field(default=DEFAULT_JWT_SECRET, alias="JWT_SECRET")
    jwt_algorithms: str = Field(default="HS256", alias="JWT_ALGORITHMS")
    jwt_audience: str | None = Field(default=None, alias="JWT_AUDIENCE")
    jwt_issuer: str | None = Field(default=None, alias="JWT_ISSUER")
    jwt_clock_skew_sec: int = Field(default=30, alias="JWT_CLOCK_SKEW_SEC")
    jwt_role_claim: str = Field(default="role", alias="JWT_ROLE_CLAIM")
    service_api_keys: str = Field(default="", alias="SERVICE_API_KEYS")

    # -------------------------------------------------------------------------
    # Queue (Redis Streams)
    # -------------------------------------------------------------------------
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    queue_consumer_group: str = Field(default="g:worker", alias="QUEUE_CONSUMER_GROUP")
    queue_block_ms: int = Field(default=5000, alias="QUEUE_BLOCK_MS")
    queue_dlq_enabled: bool = Field(default=False, alias="QUEUE_DLQ_ENABLED")
    worker_queues: str = Field(
        default="clone_repo,create_language_copies,sync_repo,delete_repo,build_task",
        alias="WORKER_QUEUES",
    )
    worker_consumer_name: str | None = Field(default=None, alias="WORKER_CONSUMER_NAME")

    # -------------------------------------------------------------------------
    # Внутренние сервисы платформы
    # -------------------------------------------------------------------------
    project_service_url: str = Field(default="http://localhost:80", alias="PROJECT_SERVICE_URL")
    repository_service_url: str = Field(
        default="http://localhost:80", alias="REPOSITORY_SERVICE_URL"
    )
    build_service_url: str = Field(default="http://localhost:80", alias="BUILD_SERVICE_URL")
    logging_service_url: str = Field(default="http://localhost:80", alias="LOGGING_SERVICE_URL")
    internal_http_timeout_sec: float = Field(default=60.0, alias="INTERNAL_HTTP_TIMEOUT_SEC")
    activity_log_enabled: bool = Field(default=True, alias="ACTIVITY_LOG_ENABLED")
    activity_log_timeout_sec: float = Field(default=5.0, alias="ACTIVITY_LOG_TIMEOUT_SEC")

    # -------------------------------------------------------------------------
    # Scheduler
    # -------------------------------------------------------------------------
    scheduler_enabled: bool = Field(default=True, alias="SCHEDULER_ENABLED")
    sync_interval_sec: int = Field(default=3600, alias="SYNC_INTERVAL_SEC")
    scheduler_run_on_start: bool = Field(default=False, alias="SCHEDULER_RUN_ON_START")

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")  # json|text
    readiness_fail_fast_in_prod: bool = Field(default=True, alias="READINESS_FAIL_FAST_IN_PROD")

    def model_post_init(self, __context) -> None:
        _apply_file_overrides(self)


_CSV_ENV_FIELDS = {
    "SERVICE_API_KEYS",
    "WORKER_QUEUES",
    "JWT_ALGORITHMS",
}


def parse_csv(raw: str | None) -> list[str]:
    """
    Разбор CSV-строки из ENV в список без пустых элементов (порядок сохраняется).
    """
    return [v.strip() for v in (raw or "").split(",") if v.strip()]


def is_prod_env(app_env: str | None) -> bool:
    return (app_env or "").strip().lower() in {"prod", "production"}


def _normalize_file_value(env_key: str, raw: str) -> str:
    value = (raw or "").strip()
    if env_key in _CSV_ENV_FIELDS and "\n" in value and "," not in value:
        parts = [p.strip() for p in value.splitlines() if p.strip()]
        return ",".join(parts)
    return value


def _apply_file_overrides(settings: Settings) -> None:
    alias_to_field = {}
    for name, field in type(settings).model_fields.items():
        alias = field.alias or name
        alias_to_field[str(alias)] = name
        alias_to_field[str(name)] = name

    for key, path in os.environ.items():
        if not key.endswith("_FILE"):
            continue
        base = key[: -len("_FILE")]
        target = alias_to_field.get(base)
        if not target:
            continue
        file_path = (path or "").strip()
        if not file_path:
            continue
        try:
            raw = Path(file_path).read_text(encoding="utf-8")
        except OSError as e:
            logging.getLogger("docs-platform").error(
                "config_file_read_failed",
                extra={"payload": {"env_key": key, "path": file_path, "error": str(e)[:200]}},
            )
            raise RuntimeError(f"Failed to read {key} from {file_path}") from e
        value = _normalize_file_value(base, raw)
        setattr(settings, target, value)


_SETTINGS = Settings()


def get_settings() -> Settings:
    return _SETTINGS
