"""
HTTP-контракты (pydantic).

- ответы project-сервиса (то, что читает планировщик)
- запросы/ответы tasks API
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from docs_platform.domain.enums import BuildType


class ProjectRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = ""
    repo_url: str = ""
    languages: list[str] = Field(default_factory=list)


class ProjectsPage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    projects: list[ProjectRef] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 0


class CloneRepoRequest(BaseModel):
    repo_url: str = Field(alias="repoUrl", min_length=1)


class LanguageCopiesRequest(BaseModel):
    languages: list[str] = Field(min_length=1)


class BuildRequest(BaseModel):
    build_type: BuildType = Field(alias="buildType")


class TaskEnqueuedResponse(BaseModel):
    task_id: str
    type: str
    queue: str
    project_id: int


class QueueHealthItem(BaseModel):
    queue: str
    group: str
    depth: int
    pending: int
    dlq_depth: int
    error: str | None = None


class QueueHealthResponse(BaseModel):
    queues: list[QueueHealthItem]
