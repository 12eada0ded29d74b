"""
Клиент project-сервиса: список проектов для планировщика.
"""

from __future__ import annotations

from pydantic import ValidationError as PydanticValidationError

from docs_platform.common.config import get_settings
from docs_platform.common.errors import ErrCode, ProviderError
from docs_platform.contracts.http_api import ProjectsPage

from .base import InternalServiceClient


class ProjectServiceClient(InternalServiceClient):
    target = "project"
    err_code = ErrCode.PROJECT_SERVICE_ERROR

    def __init__(self, *, base_url: str | None = None, timeout_sec: float | None = None) -> None:
        super().__init__(
            base_url=base_url or get_settings().project_service_url,
            timeout_sec=timeout_sec,
        )

    def list_projects(self) -> ProjectsPage:
        """
        GET /projects. Любой статус кроме 200 считается ошибкой.
        Принимается как объект {"projects": [...]} так и голый список.
        """
        resp = self._request("GET", "/projects", ok_statuses=(200,))
        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError(self.err_code, "Ответ project-сервиса не JSON") from e

        try:
            if isinstance(data, list):
                return ProjectsPage(projects=data, total=len(data), limit=len(data))
            return ProjectsPage.model_validate(data)
        except PydanticValidationError as e:
            raise ProviderError(
                self.err_code,
                "Ответ project-сервиса не соответствует контракту",
                details={"err": str(e)[:300]},
            ) from e
