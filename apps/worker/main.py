"""
Worker.

Алгоритм:
- подключаемся к Redis и объявляем все очереди из WORKER_QUEUES
- по одному потоку-consumer на очередь (consumer group QUEUE_CONSUMER_GROUP)
- задача -> обработчик -> вызов repository/build сервиса -> ack
- SIGINT/SIGTERM: перестаём читать, дообрабатываем текущие сообщения, выходим
- потеря соединения с брокером: выход с кодом 1 (рестарт делает оркестратор)
"""

from __future__ import annotations

import signal
import sys

from docs_platform.common.config import get_settings, parse_csv
from docs_platform.common.errors import BrokerUnavailableError, QueueDeclareError
from docs_platform.common.logging import get_project_logger, setup_logging
from docs_platform.common.metrics import maybe_start_metrics_server
from docs_platform.queue.broker import QueueBroker
from docs_platform.queue.dispatcher import ALL_QUEUES
from docs_platform.services.readiness_service import enforce_startup_readiness
from docs_platform.worker.handlers import HandlerContext
from docs_platform.worker.pool import WorkerPool

log = get_project_logger()


def _install_signal_handlers(pool: WorkerPool) -> None:
    def _handle(signum, _frame) -> None:
        log.info("worker_stop_requested", extra={"payload": {"signal": signum}})
        pool.stop()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def run() -> int:
    settings = get_settings()
    queues = parse_csv(settings.worker_queues) or list(ALL_QUEUES)

    try:
        broker = QueueBroker.connect()
    except BrokerUnavailableError as e:
        log.error("worker_fatal", extra={"payload": {"code": e.code, **(e.details or {})}})
        return 1

    try:
        pool = WorkerPool(broker, queues, HandlerContext.from_settings())
        try:
            pool.declare_queues()
        except QueueDeclareError as e:
            log.error(
                "worker_fatal",
                extra={"payload": {"code": e.code, "err": e.message, **(e.details or {})}},
            )
            return 1

        _install_signal_handlers(pool)
        pool.start()
        log.info(
            "worker_started",
            extra={
                "payload": {
                    "queues": queues,
                    "group": broker.group,
                    "consumer": broker.consumer,
                }
            },
        )
        pool.wait()
    finally:
        broker.close()

    if pool.fatal_error is not None:
        log.error("worker_fatal", extra={"payload": {"err": str(pool.fatal_error)[:300]}})
        return 1
    log.info("worker_stopped")
    return 0


def main() -> None:
    setup_logging()
    enforce_startup_readiness(service_name="worker")
    maybe_start_metrics_server(get_settings().metrics_port)
    sys.exit(run())


if __name__ == "__main__":
    main()
