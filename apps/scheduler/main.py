"""
Scheduler.

Назначение:
- раз в SYNC_INTERVAL_SEC (по умолчанию каждый час, на границе часа как @hourly)
  запускать sync_repos_job: список проектов -> sync_repo в очередь
- SIGINT/SIGTERM прерывают ожидание следующего тика
"""

from __future__ import annotations

import signal
import sys
import threading
import time
from collections.abc import Callable

from docs_platform.clients.activity_log import ActivityLogClient
from docs_platform.clients.project_service import ProjectServiceClient
from docs_platform.common.config import get_settings
from docs_platform.common.errors import BrokerUnavailableError, QueueDeclareError
from docs_platform.common.logging import get_project_logger, setup_logging
from docs_platform.common.metrics import maybe_start_metrics_server
from docs_platform.jobs.sync_repos_job import run_sync_cycle
from docs_platform.queue.broker import QueueBroker
from docs_platform.queue.dispatcher import Q_SYNC_REPO
from docs_platform.services.readiness_service import enforce_startup_readiness

log = get_project_logger()


def next_tick_delay(now: float, interval_sec: int) -> float:
    """
    Секунды до следующей границы интервала (для 3600: до начала следующего часа).
    """
    interval = max(1, int(interval_sec))
    remainder = now % interval
    return float(interval - remainder)


def run_scheduler(
    *,
    stop: threading.Event,
    cycle: Callable[[], object],
    interval_sec: int,
    run_on_start: bool = False,
    clock: Callable[[], float] = time.time,
) -> int:
    """
    Цикл планировщика. Возвращает число выполненных циклов.
    """
    cycles = 0

    def _run_once() -> None:
        nonlocal cycles
        try:
            cycle()
        except Exception as e:
            log.exception("scheduler_cycle_error", extra={"payload": {"err": str(e)[:300]}})
        cycles += 1

    if run_on_start and not stop.is_set():
        _run_once()

    while not stop.is_set():
        delay = next_tick_delay(clock(), interval_sec)
        if stop.wait(delay):
            break
        _run_once()
    return cycles


def run() -> int:
    settings = get_settings()
    if not settings.scheduler_enabled:
        log.info("scheduler_disabled")
        return 0

    try:
        broker = QueueBroker.connect()
        broker.declare(Q_SYNC_REPO)
    except (BrokerUnavailableError, QueueDeclareError) as e:
        log.error(
            "scheduler_fatal",
            extra={"payload": {"code": e.code, "err": e.message, **(e.details or {})}},
        )
        return 1

    stop = threading.Event()

    def _handle(signum, _frame) -> None:
        log.info("scheduler_stop_requested", extra={"payload": {"signal": signum}})
        stop.set()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)

    projects = ProjectServiceClient()
    activity = ActivityLogClient()
    interval_sec = max(1, int(settings.sync_interval_sec))

    log.info(
        "scheduler_started",
        extra={
            "payload": {
                "interval_sec": interval_sec,
                "run_on_start": bool(settings.scheduler_run_on_start),
            }
        },
    )
    try:
        run_scheduler(
            stop=stop,
            cycle=lambda: run_sync_cycle(broker=broker, projects=projects, activity=activity),
            interval_sec=interval_sec,
            run_on_start=bool(settings.scheduler_run_on_start),
        )
    finally:
        broker.close()
    log.info("scheduler_stopped")
    return 0


def main() -> None:
    setup_logging()
    enforce_startup_readiness(service_name="scheduler")
    maybe_start_metrics_server(get_settings().metrics_port)
    sys.exit(run())


if __name__ == "__main__":
    main()
