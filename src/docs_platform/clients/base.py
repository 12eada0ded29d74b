"""
Базовый HTTP-клиент внутренних сервисов платформы.

Контракт:
- JSON-тело, таймаут из настроек
- транспортная ошибка или неожиданный статус -> ProviderError с кодом сервиса
"""

from __future__ import annotations

from typing import Any

import requests

from docs_platform.common.config import get_settings
from docs_platform.common.errors import ErrCode, ProviderError
from docs_platform.common.logging import get_project_logger
from docs_platform.common.metrics import INTERNAL_HTTP_CALLS_TOTAL

log = get_project_logger()


class InternalServiceClient:
    target: str = "internal"
    err_code: str = ErrCode.UNKNOWN

    def __init__(self, *, base_url: str, timeout_sec: float | None = None) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self.timeout_sec = float(
            timeout_sec if timeout_sec is not None else get_settings().internal_http_timeout_sec
        )

    def _request(
        self,
        method: str,
        path: str,
        *,
        payload: dict[str, Any] | None = None,
        ok_statuses: tuple[int, ...] = (200,),
    ) -> requests.Response:
        if not self.base_url:
            raise ProviderError(self.err_code, f"URL сервиса {self.target} не настроен")

        url = f"{self.base_url}{path}"
        try:
            resp = requests.request(
                method=method.upper(),
                url=url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout_sec,
            )
        except requests.RequestException as e:
            INTERNAL_HTTP_CALLS_TOTAL.labels(
                target=self.target, method=method.upper(), result="transport_error"
            ).inc()
            raise ProviderError(
                self.err_code,
                f"Ошибка обращения к сервису {self.target}",
                details={"path": path, "err": str(e)[:200]},
            ) from e

        if resp.status_code not in ok_statuses:
            INTERNAL_HTTP_CALLS_TOTAL.labels(
                target=self.target, method=method.upper(), result="http_error"
            ).inc()
            raise ProviderError(
                self.err_code,
                f"Сервис {self.target} вернул статус {resp.status_code}",
                details={"path": path, "status": resp.status_code, "body": resp.text[:300]},
            )

        INTERNAL_HTTP_CALLS_TOTAL.labels(
            target=self.target, method=method.upper(), result="ok"
        ).inc()
        return resp
