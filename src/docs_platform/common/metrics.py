"""
Метрики Prometheus.

Назначение:
- экспорт /metrics в tasks API и (опционально) отдельный порт у воркера/планировщика
- общие счётчики и гистограммы для очередей, обработчиков и внутренних вызовов
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from fastapi import FastAPI, Request
from fastapi.responses import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    start_http_server,
)

from docs_platform.common.logging import get_project_logger

log = get_project_logger()

_LATENCY_BUCKETS_MS = (5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000, 60000)

# =============================================================================
# СЧЁТЧИКИ И МЕТРИКИ
# =============================================================================

REQUESTS_TOTAL = Counter(
    "docs_requests_total",
    "Общее количество HTTP запросов",
    ["service", "route", "method", "status"],
)

HTTP_REQUEST_LATENCY_MS = Histogram(
    "docs_http_request_latency_ms",
    "Задержка HTTP запроса (мс)",
    ["service", "route", "method"],
    buckets=_LATENCY_BUCKETS_MS,
)

# Обработка задач очередей: result=success|failed|invalid|unknown_type|rejected|error
QUEUE_TASKS_TOTAL = Counter(
    "docs_queue_tasks_total",
    "Количество обработанных задач очереди",
    ["service", "queue", "result"],
)

TASK_HANDLER_LATENCY_MS = Histogram(
    "docs_task_handler_latency_ms",
    "Время выполнения обработчика задачи (мс)",
    ["service", "task_type"],
    buckets=_LATENCY_BUCKETS_MS,
)

INTERNAL_HTTP_CALLS_TOTAL = Counter(
    "docs_internal_http_calls_total",
    "Вызовы внутренних сервисов платформы",
    ["target", "method", "result"],  # result=ok|http_error|transport_error
)

TASKS_ENQUEUED_TOTAL = Counter(
    "docs_tasks_enqueued_total",
    "Опубликованные задачи",
    ["source", "task_type", "result"],  # source=api|scheduler, result=ok|failed
)

SCHEDULER_CYCLES_TOTAL = Counter(
    "docs_scheduler_cycles_total",
    "Циклы синхронизации планировщика",
    ["result"],  # ok|partial|skipped
)

SCHEDULER_LAST_CYCLE_PROJECTS = Gauge(
    "docs_scheduler_last_cycle_projects",
    "Количество проектов в последнем цикле синхронизации",
)

QUEUE_DEPTH = Gauge(
    "docs_queue_depth",
    "Текущая глубина stream-очередей",
    ["queue"],
)

DLQ_DEPTH = Gauge(
    "docs_dlq_depth",
    "Текущая глубина DLQ stream-очередей",
    ["queue"],
)

QUEUE_PENDING = Gauge(
    "docs_queue_pending",
    "Текущее количество pending сообщений в consumer group",
    ["queue"],
)

METRICS_COLLECTION_ERRORS_TOTAL = Counter(
    "docs_metrics_collection_errors_total",
    "Ошибки сборки служебных метрик",
    ["source"],
)


@contextmanager
def track_handler_latency(service: str, task_type: str) -> Iterator[None]:
    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        TASK_HANDLER_LATENCY_MS.labels(service=service, task_type=task_type).observe(elapsed_ms)


def refresh_queue_metrics(broker, queues: tuple[str, ...] | list[str]) -> None:
    for queue in queues:
        try:
            QUEUE_DEPTH.labels(queue=queue).set(broker.depth(queue))
            DLQ_DEPTH.labels(queue=queue).set(broker.dlq_depth(queue))
            QUEUE_PENDING.labels(queue=queue).set(broker.pending(queue))
        except Exception:
            METRICS_COLLECTION_ERRORS_TOTAL.labels(source="queue_metrics").inc()


def maybe_start_metrics_server(port: int) -> bool:
    """
    Отдельный /metrics для фоновых процессов (воркер, планировщик).
    """
    if not port or port <= 0:
        return False
    start_http_server(int(port))
    log.info("metrics_server_started", extra={"payload": {"port": int(port)}})
    return True


# =============================================================================
# ENDPOINT /metrics
# =============================================================================
def _route_label(request: Request) -> str:
    # шаблон пути, а не сырой URL: project_id не должен плодить серии
    route = request.scope.get("route")
    path_format = getattr(route, "path_format", None)
    return path_format or "unmatched"


def setup_metrics_endpoint(
    app: FastAPI,
    *,
    service: str,
    queue_metrics: Callable[[], None] | None = None,
) -> None:
    """
    Регистрирует HTTP-middleware метрик и endpoint /metrics для Prometheus.
    """

    @app.middleware("http")
    async def http_metrics(request: Request, call_next):
        method = request.method
        started = time.perf_counter()

        response = await call_next(request)
        route = _route_label(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        status_code = str(response.status_code)

        REQUESTS_TOTAL.labels(
            service=service,
            route=route,
            method=method,
            status=status_code,
        ).inc()
        HTTP_REQUEST_LATENCY_MS.labels(
            service=service,
            route=route,
            method=method,
        ).observe(elapsed_ms)
        return response

    @app.get("/metrics")
    def metrics() -> Response:
        if queue_metrics is not None:
            queue_metrics()
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
