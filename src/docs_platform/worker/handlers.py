"""
Обработчики задач воркера.

Каждый обработчик:
- разбирает payload в свой dataclass (ValidationError -> invalid, без внешних вызовов)
- делает ровно один вызов repository/build сервиса
- никогда не бросает исключения: итог возвращается как HandlerOutcome
- при успехе пишет событие в activity log (best-effort)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from docs_platform.clients.activity_log import ActivityLogClient
from docs_platform.clients.build_service import BuildServiceClient
from docs_platform.clients.repository_service import RepositoryServiceClient
from docs_platform.common.errors import ProviderError, ValidationError
from docs_platform.common.logging import get_worker_logger
from docs_platform.contracts.queue_events import (
    BuildTask,
    CloneRepoTask,
    CreateLanguageCopiesTask,
    DeleteRepoTask,
    SyncRepoTask,
    TaskEnvelope,
)
from docs_platform.domain.enums import BuildType, HandlerOutcome, TaskType

log = get_worker_logger()


@dataclass
class HandlerContext:
    repository: RepositoryServiceClient
    build: BuildServiceClient
    activity: ActivityLogClient

    @classmethod
    def from_settings(cls) -> HandlerContext:
        return cls(
            repository=RepositoryServiceClient(),
            build=BuildServiceClient(),
            activity=ActivityLogClient(),
        )


Handler = Callable[[TaskEnvelope, HandlerContext], HandlerOutcome]


def _invalid(envelope: TaskEnvelope, e: ValidationError) -> HandlerOutcome:
    log.error(
        "task_payload_invalid",
        extra={
            "payload": {
                "task_id": envelope.id,
                "type": envelope.type,
                "err": e.message,
                **(e.details or {}),
            }
        },
    )
    return HandlerOutcome.invalid


def _failed(envelope: TaskEnvelope, event: str, e: ProviderError, **fields: Any) -> HandlerOutcome:
    log.error(
        event,
        extra={
            "payload": {
                "task_id": envelope.id,
                "code": e.code,
                "err": e.message,
                **fields,
                **(e.details or {}),
            }
        },
    )
    return HandlerOutcome.failed


def handle_clone_repo(envelope: TaskEnvelope, ctx: HandlerContext) -> HandlerOutcome:
    try:
        task = CloneRepoTask.from_payload(envelope.payload)
    except ValidationError as e:
        return _invalid(envelope, e)

    try:
        ctx.repository.clone_repo(task.project_id, task.repo_url)
    except ProviderError as e:
        return _failed(envelope, "clone_repo_failed", e, project_id=task.project_id)

    log.info(
        "repo_cloned",
        extra={"payload": {"task_id": envelope.id, "project_id": task.project_id}},
    )
    ctx.activity.log_activity(
        "worker_repo_cloned",
        f"Repository cloned for project {task.project_id}",
        project_id=task.project_id,
    )
    return HandlerOutcome.success


def handle_create_language_copies(envelope: TaskEnvelope, ctx: HandlerContext) -> HandlerOutcome:
    try:
        task = CreateLanguageCopiesTask.from_payload(envelope.payload)
    except ValidationError as e:
        return _invalid(envelope, e)

    try:
        ctx.repository.create_language_copies(task.project_id, task.languages)
    except ProviderError as e:
        return _failed(envelope, "create_language_copies_failed", e, project_id=task.project_id)

    log.info(
        "language_copies_created",
        extra={
            "payload": {
                "task_id": envelope.id,
                "project_id": task.project_id,
                "languages": task.languages,
            }
        },
    )
    ctx.activity.log_activity(
        "worker_language_copies_created",
        f"Language copies created for project {task.project_id}",
        project_id=task.project_id,
    )
    return HandlerOutcome.success


def handle_sync_repo(envelope: TaskEnvelope, ctx: HandlerContext) -> HandlerOutcome:
    try:
        task = SyncRepoTask.from_payload(envelope.payload)
    except ValidationError as e:
        return _invalid(envelope, e)

    try:
        ctx.repository.sync_repo(task.project_id)
    except ProviderError as e:
        return _failed(envelope, "sync_repo_failed", e, project_id=task.project_id)

    log.info(
        "repo_synced",
        extra={"payload": {"task_id": envelope.id, "project_id": task.project_id}},
    )
    ctx.activity.log_activity(
        "worker_repo_synced",
        f"Repository synced for project {task.project_id}",
        project_id=task.project_id,
    )
    return HandlerOutcome.success


def handle_delete_repo(envelope: TaskEnvelope, ctx: HandlerContext) -> HandlerOutcome:
    try:
        task = DeleteRepoTask.from_payload(envelope.payload)
    except ValidationError as e:
        return _invalid(envelope, e)

    try:
        ctx.repository.delete_repo(task.project_id)
    except ProviderError as e:
        return _failed(envelope, "delete_repo_failed", e, project_id=task.project_id)

    log.info(
        "repo_deleted",
        extra={"payload": {"task_id": envelope.id, "project_id": task.project_id}},
    )
    ctx.activity.log_activity(
        "worker_repo_deleted",
        f"Repository deleted for project {task.project_id}",
        project_id=task.project_id,
    )
    return HandlerOutcome.success


def handle_build_task(envelope: TaskEnvelope, ctx: HandlerContext) -> HandlerOutcome:
    try:
        task = BuildTask.from_payload(envelope.payload)
    except ValidationError as e:
        return _invalid(envelope, e)

    try:
        build_type = BuildType(task.build_type)
    except ValueError:
        log.warning(
            "build_type_unknown",
            extra={
                "payload": {
                    "task_id": envelope.id,
                    "project_id": task.project_id,
                    "build_type": task.build_type[:50],
                }
            },
        )
        return HandlerOutcome.invalid

    try:
        ctx.build.run(build_type, task.project_id)
    except ProviderError as e:
        return _failed(
            envelope,
            "build_task_failed",
            e,
            project_id=task.project_id,
            build_type=build_type.value,
        )

    log.info(
        "build_task_completed",
        extra={
            "payload": {
                "task_id": envelope.id,
                "project_id": task.project_id,
                "build_type": build_type.value,
            }
        },
    )
    ctx.activity.log_activity(
        "worker_build_task_completed",
        f"Build task {build_type.value} completed for project {task.project_id}",
        project_id=task.project_id,
    )
    return HandlerOutcome.success


HANDLERS: dict[str, Handler] = {
    TaskType.clone_repo.value: handle_clone_repo,
    TaskType.create_language_copies.value: handle_create_language_copies,
    TaskType.sync_repo.value: handle_sync_repo,
    TaskType.delete_repo.value: handle_delete_repo,
    TaskType.build_task.value: handle_build_task,
}


def dispatch_task(envelope: TaskEnvelope, ctx: HandlerContext) -> HandlerOutcome:
    """
    Выбрать обработчик по envelope.type. Неизвестный тип -> unknown_type.
    """
    handler = HANDLERS.get(envelope.type)
    if handler is None:
        log.warning(
            "task_unknown_type",
            extra={"payload": {"task_id": envelope.id, "type": envelope.type[:100]}},
        )
        return HandlerOutcome.unknown_type
    return handler(envelope, ctx)
