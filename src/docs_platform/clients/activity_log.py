"""
Клиент logging-сервиса (журнал активности платформы).

Best-effort: ошибки не пробрасываются, только логируются.
"""

from __future__ import annotations

from typing import Any

from docs_platform.common.config import get_settings
from docs_platform.common.errors import ErrCode, ProviderError
from docs_platform.common.logging import get_project_logger
from docs_platform.domain.enums import ActivityLevel

from .base import InternalServiceClient

log = get_project_logger()


class ActivityLogClient(InternalServiceClient):
    target = "logging"
    err_code = ErrCode.LOGGING_SERVICE_ERROR

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout_sec: float | None = None,
        enabled: bool | None = None,
    ) -> None:
        s = get_settings()
        super().__init__(
            base_url=base_url or s.logging_service_url,
            timeout_sec=timeout_sec if timeout_sec is not None else s.activity_log_timeout_sec,
        )
        self.enabled = s.activity_log_enabled if enabled is None else bool(enabled)

    def log_activity(
        self,
        log_type: str,
        message: str,
        *,
        level: ActivityLevel = ActivityLevel.info,
        user_id: int | None = None,
        project_id: int | None = None,
    ) -> bool:
        """
        POST /logs, успех только при 201. Возвращает True, если запись принята.
        """
        if not self.enabled:
            return False

        payload: dict[str, Any] = {
            "type": log_type,
            "message": message,
            "level": level.value,
        }
        if user_id is not None:
            payload["userId"] = user_id
        if project_id is not None:
            payload["projectId"] = project_id

        try:
            self._request("POST", "/logs", payload=payload, ok_statuses=(201,))
        except ProviderError as e:
            log.warning(
                "activity_log_failed",
                extra={"payload": {"type": log_type, "err": e.message, **(e.details or {})}},
            )
            return False
        return True
