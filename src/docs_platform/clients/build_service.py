"""
Клиент build-сервиса: build / export / preview сайта документации.
"""

from __future__ import annotations

from docs_platform.common.config import get_settings
from docs_platform.common.errors import ErrCode
from docs_platform.domain.enums import BuildType

from .base import InternalServiceClient


class BuildServiceClient(InternalServiceClient):
    target = "build"
    err_code = ErrCode.BUILD_SERVICE_ERROR

    def __init__(self, *, base_url: str | None = None, timeout_sec: float | None = None) -> None:
        super().__init__(
            base_url=base_url or get_settings().build_service_url,
            timeout_sec=timeout_sec,
        )

    def run(self, build_type: BuildType, project_id: int) -> None:
        # build-сервис отвечает 200 только после завершения команды
        self._request(
            "POST",
            f"/internal/{build_type.value}",
            payload={"projectId": project_id},
            ok_statuses=(200,),
        )
