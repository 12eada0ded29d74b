"""
Диспетчер очередей (сторона продюсера).

Назначение:
- единые имена очередей (имя очереди == тип задачи)
- унифицированная упаковка задач в конверт {type, payload, id}
- функции enqueue_* для tasks API и планировщика
"""

from __future__ import annotations

from typing import Any

from docs_platform.common.ids import new_event_id
from docs_platform.common.logging import get_project_logger
from docs_platform.contracts.queue_events import TaskEnvelope
from docs_platform.domain.enums import BuildType, TaskType

from .broker import QueueBroker

log = get_project_logger()

# =============================================================================
# ИМЕНА ОЧЕРЕДЕЙ (Redis Streams)
# =============================================================================
Q_CLONE_REPO = TaskType.clone_repo.value
Q_CREATE_LANGUAGE_COPIES = TaskType.create_language_copies.value
Q_SYNC_REPO = TaskType.sync_repo.value
Q_DELETE_REPO = TaskType.delete_repo.value
Q_BUILD_TASK = TaskType.build_task.value

# Единый список для воркера и продюсеров
ALL_QUEUES: tuple[str, ...] = tuple(t.value for t in TaskType)

_ID_PREFIXES = {
    TaskType.clone_repo: "clone",
    TaskType.create_language_copies: "langs",
    TaskType.sync_repo: "sync",
    TaskType.delete_repo: "del",
    TaskType.build_task: "build",
}


def queue_for(task_type: TaskType) -> str:
    return task_type.value


def enqueue_task(
    broker: QueueBroker,
    task_type: TaskType,
    payload: dict[str, Any],
    *,
    task_id: str | None = None,
) -> str:
    """
    Опубликовать задачу в очередь её типа. Возвращает id конверта.
    Ошибки брокера (redis.RedisError) пробрасываются вызывающему.
    """
    envelope = TaskEnvelope(
        type=task_type.value,
        payload=payload,
        id=task_id or new_event_id(_ID_PREFIXES[task_type]),
    )
    queue = queue_for(task_type)
    entry_id = broker.publish(queue, envelope.to_json())
    log.info(
        f"enqueue_{task_type.value}",
        extra={"payload": {"queue": queue, "task_id": envelope.id, "entry_id": entry_id}},
    )
    return envelope.id


def enqueue_clone_repo(broker: QueueBroker, *, project_id: int, repo_url: str) -> str:
    return enqueue_task(
        broker, TaskType.clone_repo, {"projectId": project_id, "repoUrl": repo_url}
    )


def enqueue_create_language_copies(
    broker: QueueBroker, *, project_id: int, languages: list[str]
) -> str:
    return enqueue_task(
        broker,
        TaskType.create_language_copies,
        {"projectId": project_id, "languages": list(languages)},
    )


def enqueue_sync_repo(broker: QueueBroker, *, project_id: int, task_id: str | None = None) -> str:
    return enqueue_task(broker, TaskType.sync_repo, {"projectId": project_id}, task_id=task_id)


def enqueue_delete_repo(broker: QueueBroker, *, project_id: int) -> str:
    return enqueue_task(broker, TaskType.delete_repo, {"projectId": project_id})


def enqueue_build_task(broker: QueueBroker, *, project_id: int, build_type: BuildType) -> str:
    return enqueue_task(
        broker,
        TaskType.build_task,
        {"projectId": project_id, "buildType": build_type.value},
    )
