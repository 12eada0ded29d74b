"""
Клиент repository-сервиса (операции над git-репозиторием проекта).
"""

from __future__ import annotations

from docs_platform.common.config import get_settings
from docs_platform.common.errors import ErrCode

from .base import InternalServiceClient

_OK = (200, 204)


class RepositoryServiceClient(InternalServiceClient):
    target = "repository"
    err_code = ErrCode.REPOSITORY_SERVICE_ERROR

    def __init__(self, *, base_url: str | None = None, timeout_sec: float | None = None) -> None:
        super().__init__(
            base_url=base_url or get_settings().repository_service_url,
            timeout_sec=timeout_sec,
        )

    def clone_repo(self, project_id: int, repo_url: str) -> None:
        self._request(
            "POST",
            "/internal/clone-repo",
            payload={"repoUrl": repo_url, "projectId": project_id},
            ok_statuses=_OK,
        )

    def create_language_copies(self, project_id: int, languages: list[str]) -> None:
        self._request(
            "POST",
            "/internal/create-language-copies",
            payload={"projectId": project_id, "languages": list(languages)},
            ok_statuses=_OK,
        )

    def sync_repo(self, project_id: int) -> None:
        self._request(
            "PUT",
            "/internal/sync-repo",
            payload={"projectId": project_id},
            ok_statuses=_OK,
        )

    def delete_repo(self, project_id: int) -> None:
        self._request(
            "DELETE",
            "/internal/delete-repo",
            payload={"projectId": project_id},
            ok_statuses=_OK,
        )
