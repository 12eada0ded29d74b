"""
Admin endpoints для эксплуатации.

Назначение:
- состояние очередей (глубина, pending, DLQ)
- readiness конфигурации
- доступ: service API key или роль admin
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from apps.tasks_api.deps import admin_dep, broker_dep
from docs_platform.common.config import get_settings, parse_csv
from docs_platform.contracts.http_api import QueueHealthItem, QueueHealthResponse
from docs_platform.queue.broker import QueueBroker
from docs_platform.queue.dispatcher import ALL_QUEUES
from docs_platform.services.readiness_service import evaluate_readiness

router = APIRouter()


class ReadinessIssueResponse(BaseModel):
    severity: str
    code: str
    message: str


class SystemReadinessResponse(BaseModel):
    ready: bool
    issues: list[ReadinessIssueResponse]


def monitored_queues() -> tuple[str, ...]:
    configured = parse_csv(get_settings().worker_queues)
    extra = [q for q in configured if q not in ALL_QUEUES]
    return ALL_QUEUES + tuple(extra)


@router.get(
    "/admin/queues/health",
    response_model=QueueHealthResponse,
    dependencies=[Depends(admin_dep)],
)
def admin_queues_health(broker: QueueBroker = Depends(broker_dep)) -> QueueHealthResponse:
    queues: list[QueueHealthItem] = []
    for queue in monitored_queues():
        err_parts: list[str] = []

        try:
            depth = broker.depth(queue)
        except Exception as e:
            depth = 0
            err_parts.append(f"depth:{str(e)[:160]}")

        try:
            pending = broker.pending(queue)
        except Exception as e:
            pending = 0
            err_parts.append(f"pending:{str(e)[:160]}")

        try:
            dlq_depth = broker.dlq_depth(queue)
        except Exception as e:
            dlq_depth = 0
            err_parts.append(f"dlq:{str(e)[:160]}")

        queues.append(
            QueueHealthItem(
                queue=queue,
                group=broker.group,
                depth=depth,
                pending=pending,
                dlq_depth=dlq_depth,
                error="; ".join(err_parts) if err_parts else None,
            )
        )
    return QueueHealthResponse(queues=queues)


@router.get(
    "/admin/system/readiness",
    response_model=SystemReadinessResponse,
    dependencies=[Depends(admin_dep)],
)
def admin_system_readiness() -> SystemReadinessResponse:
    state = evaluate_readiness()
    return SystemReadinessResponse(
        ready=state.ready,
        issues=[
            ReadinessIssueResponse(
                severity=i.severity,
                code=i.code,
                message=i.message,
            )
            for i in state.issues
        ],
    )
