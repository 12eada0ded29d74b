"""
Sync repos job (один цикл планировщика).

Назначение:
- получить список проектов у project-сервиса
- опубликовать sync_repo для каждого проекта
- записать cron-событие в activity log

Ошибка листинга -> цикл пропускается целиком (ничего не публикуется).
Ошибка публикации одного проекта не прерывает остальные.
"""

from __future__ import annotations

from dataclasses import dataclass

import redis

from docs_platform.clients.activity_log import ActivityLogClient
from docs_platform.clients.project_service import ProjectServiceClient
from docs_platform.common.errors import ProviderError
from docs_platform.common.ids import sync_task_id
from docs_platform.common.logging import get_project_logger
from docs_platform.common.metrics import (
    SCHEDULER_CYCLES_TOTAL,
    SCHEDULER_LAST_CYCLE_PROJECTS,
    TASKS_ENQUEUED_TOTAL,
)
from docs_platform.common.time import unix_ts
from docs_platform.domain.enums import ActivityLevel, TaskType
from docs_platform.queue.broker import QueueBroker
from docs_platform.queue.dispatcher import enqueue_sync_repo

log = get_project_logger()


@dataclass
class SyncCycleResult:
    listed: int = 0
    published: int = 0
    failed: int = 0
    skipped: bool = False


def run_sync_cycle(
    *,
    broker: QueueBroker,
    projects: ProjectServiceClient,
    activity: ActivityLogClient,
    now_ts: int | None = None,
) -> SyncCycleResult:
    ts = unix_ts() if now_ts is None else int(now_ts)
    result = SyncCycleResult()

    try:
        page = projects.list_projects()
    except ProviderError as e:
        result.skipped = True
        SCHEDULER_CYCLES_TOTAL.labels(result="skipped").inc()
        log.error(
            "sync_cycle_list_failed",
            extra={"payload": {"code": e.code, "err": e.message, **(e.details or {})}},
        )
        return result

    result.listed = len(page.projects)
    SCHEDULER_LAST_CYCLE_PROJECTS.set(result.listed)

    for project in page.projects:
        try:
            enqueue_sync_repo(
                broker,
                project_id=project.id,
                task_id=sync_task_id(project.id, ts),
            )
        except redis.RedisError as e:
            result.failed += 1
            TASKS_ENQUEUED_TOTAL.labels(
                source="scheduler", task_type=TaskType.sync_repo.value, result="failed"
            ).inc()
            log.error(
                "sync_publish_failed",
                extra={"payload": {"project_id": project.id, "err": str(e)[:200]}},
            )
            continue
        result.published += 1
        TASKS_ENQUEUED_TOTAL.labels(
            source="scheduler", task_type=TaskType.sync_repo.value, result="ok"
        ).inc()

    SCHEDULER_CYCLES_TOTAL.labels(result="partial" if result.failed else "ok").inc()
    log.info(
        "sync_cycle_done",
        extra={
            "payload": {
                "listed": result.listed,
                "published": result.published,
                "failed": result.failed,
            }
        },
    )
    activity.log_activity(
        "cron_sync_repos",
        f"Scheduled sync for {result.published} of {result.listed} projects",
        level=ActivityLevel.cron,
    )
    return result
