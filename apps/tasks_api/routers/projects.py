"""
Постановка задач по проекту (репозиторий и сборка).

Все endpoints только публикуют задачу и отвечают 202; выполнение асинхронное.
"""

from __future__ import annotations

from collections.abc import Callable

import redis
from fastapi import APIRouter, Depends, HTTPException, status

from apps.tasks_api.deps import admin_dep, broker_dep, editor_dep
from docs_platform.clients.activity_log import ActivityLogClient
from docs_platform.common.errors import ErrCode
from docs_platform.common.logging import get_project_logger
from docs_platform.common.metrics import TASKS_ENQUEUED_TOTAL
from docs_platform.common.security import AuthContext
from docs_platform.contracts.http_api import (
    BuildRequest,
    CloneRepoRequest,
    LanguageCopiesRequest,
    TaskEnqueuedResponse,
)
from docs_platform.domain.enums import TaskType
from docs_platform.queue.broker import QueueBroker
from docs_platform.queue.dispatcher import (
    enqueue_build_task,
    enqueue_clone_repo,
    enqueue_create_language_copies,
    enqueue_delete_repo,
    enqueue_sync_repo,
    queue_for,
)

log = get_project_logger()
router = APIRouter()


def activity_dep() -> ActivityLogClient:
    return ActivityLogClient()


def _enqueue(
    task_type: TaskType,
    project_id: int,
    ctx: AuthContext,
    activity: ActivityLogClient,
    publish: Callable[[], str],
) -> TaskEnqueuedResponse:
    try:
        task_id = publish()
    except redis.RedisError as e:
        TASKS_ENQUEUED_TOTAL.labels(source="api", task_type=task_type.value, result="failed").inc()
        log.error(
            "task_enqueue_failed",
            extra={
                "payload": {
                    "type": task_type.value,
                    "project_id": project_id,
                    "err": str(e)[:200],
                }
            },
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": ErrCode.BROKER_UNAVAILABLE, "message": "Очередь задач недоступна"},
        ) from e

    TASKS_ENQUEUED_TOTAL.labels(source="api", task_type=task_type.value, result="ok").inc()
    activity.log_activity(
        f"api_{task_type.value}_requested",
        f"Task {task_type.value} requested by {ctx.subject}",
        user_id=ctx.user_id,
        project_id=project_id,
    )
    return TaskEnqueuedResponse(
        task_id=task_id,
        type=task_type.value,
        queue=queue_for(task_type),
        project_id=project_id,
    )


@router.post(
    "/projects/{project_id}/repo/clone",
    response_model=TaskEnqueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def clone_repo(
    project_id: int,
    req: CloneRepoRequest,
    ctx: AuthContext = Depends(editor_dep),
    broker: QueueBroker = Depends(broker_dep),
    activity: ActivityLogClient = Depends(activity_dep),
) -> TaskEnqueuedResponse:
    return _enqueue(
        TaskType.clone_repo,
        project_id,
        ctx,
        activity,
        lambda: enqueue_clone_repo(broker, project_id=project_id, repo_url=req.repo_url),
    )


@router.post(
    "/projects/{project_id}/repo/language-copies",
    response_model=TaskEnqueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def create_language_copies(
    project_id: int,
    req: LanguageCopiesRequest,
    ctx: AuthContext = Depends(editor_dep),
    broker: QueueBroker = Depends(broker_dep),
    activity: ActivityLogClient = Depends(activity_dep),
) -> TaskEnqueuedResponse:
    return _enqueue(
        TaskType.create_language_copies,
        project_id,
        ctx,
        activity,
        lambda: enqueue_create_language_copies(
            broker, project_id=project_id, languages=req.languages
        ),
    )


@router.post(
    "/projects/{project_id}/repo/sync",
    response_model=TaskEnqueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def sync_repo(
    project_id: int,
    ctx: AuthContext = Depends(editor_dep),
    broker: QueueBroker = Depends(broker_dep),
    activity: ActivityLogClient = Depends(activity_dep),
) -> TaskEnqueuedResponse:
    return _enqueue(
        TaskType.sync_repo,
        project_id,
        ctx,
        activity,
        lambda: enqueue_sync_repo(broker, project_id=project_id),
    )


@router.delete(
    "/projects/{project_id}/repo",
    response_model=TaskEnqueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def delete_repo(
    project_id: int,
    ctx: AuthContext = Depends(admin_dep),
    broker: QueueBroker = Depends(broker_dep),
    activity: ActivityLogClient = Depends(activity_dep),
) -> TaskEnqueuedResponse:
    return _enqueue(
        TaskType.delete_repo,
        project_id,
        ctx,
        activity,
        lambda: enqueue_delete_repo(broker, project_id=project_id),
    )


@router.post(
    "/projects/{project_id}/builds",
    response_model=TaskEnqueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def start_build(
    project_id: int,
    req: BuildRequest,
    ctx: AuthContext = Depends(editor_dep),
    broker: QueueBroker = Depends(broker_dep),
    activity: ActivityLogClient = Depends(activity_dep),
) -> TaskEnqueuedResponse:
    return _enqueue(
        TaskType.build_task,
        project_id,
        ctx,
        activity,
        lambda: enqueue_build_task(broker, project_id=project_id, build_type=req.build_type),
    )
