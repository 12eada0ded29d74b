"""
Runtime readiness checks for production rollout.
"""

from __future__ import annotations

from dataclasses import dataclass

from docs_platform.common.config import DEFAULT_JWT_SECRET, get_settings, is_prod_env, parse_csv
from docs_platform.common.logging import get_project_logger
from docs_platform.domain.enums import TaskType

log = get_project_logger()


@dataclass
class ReadinessIssue:
    severity: str  # error|warning
    code: str
    message: str


@dataclass
class ReadinessState:
    ready: bool
    issues: list[ReadinessIssue]


def _service_urls() -> dict[str, str]:
    s = get_settings()
    return {
        "PROJECT_SERVICE_URL": s.project_service_url,
        "REPOSITORY_SERVICE_URL": s.repository_service_url,
        "BUILD_SERVICE_URL": s.build_service_url,
        "LOGGING_SERVICE_URL": s.logging_service_url,
    }


def evaluate_readiness() -> ReadinessState:
    s = get_settings()
    issues: list[ReadinessIssue] = []
    is_prod = is_prod_env(s.app_env)
    auth_mode = (s.auth_mode or "").strip().lower()

    for key, url in _service_urls().items():
        if not (url or "").strip().lower().startswith(("http://", "https://")):
            issues.append(
                ReadinessIssue(
                    severity="error",
                    code="service_url_invalid",
                    message=f"{key} должен начинаться с http:// или https://",
                )
            )

    queues = parse_csv(s.worker_queues)
    if not queues:
        issues.append(
            ReadinessIssue(
                severity="error",
                code="worker_queues_empty",
                message="WORKER_QUEUES пустой, воркеру нечего слушать",
            )
        )
    known = {t.value for t in TaskType}
    unknown = [q for q in queues if q not in known]
    if unknown:
        issues.append(
            ReadinessIssue(
                severity="warning",
                code="worker_queues_unknown",
                message=f"WORKER_QUEUES содержит очереди без обработчика: {', '.join(unknown)}",
            )
        )

    if not (s.service_api_keys or "").strip():
        issues.append(
            ReadinessIssue(
                severity="warning",
                code="service_api_keys_empty",
                message="SERVICE_API_KEYS пустой, service-доступ к admin API не будет работать",
            )
        )

    if is_prod:
        if auth_mode == "none":
            issues.append(
                ReadinessIssue(
                    severity="error",
                    code="auth_none_in_prod",
                    message="AUTH_MODE=none запрещен в prod",
                )
            )
        if auth_mode == "jwt" and (s.jwt_secret or "").strip() in {"", DEFAULT_JWT_SECRET}:
            issues.append(
                ReadinessIssue(
                    severity="error",
                    code="jwt_secret_default",
                    message="JWT_SECRET не задан или равен значению по умолчанию",
                )
            )
        if "*" in (s.cors_allowed_origins or ""):
            issues.append(
                ReadinessIssue(
                    severity="error",
                    code="cors_wildcard_in_prod",
                    message="CORS wildcard '*' запрещен в prod",
                )
            )

    ready = all(i.severity != "error" for i in issues)
    return ReadinessState(ready=ready, issues=issues)


def enforce_startup_readiness(*, service_name: str) -> ReadinessState:
    s = get_settings()
    state = evaluate_readiness()
    errors = [i for i in state.issues if i.severity == "error"]

    if errors:
        log.error(
            "startup_readiness_failed",
            extra={
                "payload": {
                    "service": service_name,
                    "app_env": s.app_env,
                    "error_codes": [e.code for e in errors],
                }
            },
        )
    else:
        log.info(
            "startup_readiness_ok",
            extra={"payload": {"service": service_name, "app_env": s.app_env}},
        )

    should_fail_fast = is_prod_env(s.app_env) and bool(s.readiness_fail_fast_in_prod)
    if should_fail_fast and errors:
        msg = ", ".join(e.code for e in errors)
        raise RuntimeError(f"startup readiness failed for {service_name}: {msg}")
    return state
