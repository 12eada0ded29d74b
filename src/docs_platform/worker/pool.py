"""
Пул воркеров: один поток-consumer на очередь.

Алгоритм обработки сообщения:
- разбор конверта; не разобрался -> reject (без обработчика)
- task_received + activity task_processing
- dispatch по type
- ack независимо от итога обработчика

Потеря соединения с брокером (или любая другая ошибка, вышедшая из цикла
consumer'а) фатальна для всего пула: ошибка запоминается, остальные циклы
останавливаются, процесс завершается с кодом 1.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable

import redis

from docs_platform.common.errors import TaskDecodeError
from docs_platform.common.logging import get_worker_logger
from docs_platform.common.metrics import QUEUE_TASKS_TOTAL, track_handler_latency
from docs_platform.contracts.queue_events import TaskEnvelope
from docs_platform.domain.enums import ActivityLevel, HandlerOutcome
from docs_platform.queue.broker import Delivery, QueueBroker

from .handlers import HANDLERS, HandlerContext, dispatch_task

log = get_worker_logger()

SERVICE = "worker"


class WorkerPool:
    def __init__(
        self,
        broker: QueueBroker,
        queues: Iterable[str],
        ctx: HandlerContext,
        *,
        stop_event: threading.Event | None = None,
    ) -> None:
        self.broker = broker
        self.queues = tuple(queues)
        self.ctx = ctx
        self.stop_event = stop_event or threading.Event()
        self.fatal_error: BaseException | None = None
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    def declare_queues(self) -> None:
        """
        Объявить все очереди. QueueDeclareError пробрасывается (фатально для старта).
        """
        for queue in self.queues:
            self.broker.declare(queue)

    def start(self) -> None:
        for queue in self.queues:
            t = threading.Thread(
                target=self._consume_loop,
                args=(queue,),
                name=f"consumer-{queue}",
                daemon=True,
            )
            self._threads.append(t)
            t.start()
        log.info("worker_pool_started", extra={"payload": {"queues": list(self.queues)}})

    def stop(self) -> None:
        self.stop_event.set()

    def join(self, timeout: float | None = None) -> None:
        for t in self._threads:
            t.join(timeout)

    def wait(self, poll_sec: float = 1.0) -> None:
        """
        Блокирует до остановки пула (сигнал или фатальная ошибка) и дожидается потоков.
        """
        while not self.stop_event.wait(poll_sec):
            if not any(t.is_alive() for t in self._threads):
                break
        self.stop_event.set()
        self.join()
        log.info(
            "worker_pool_stopped",
            extra={"payload": {"fatal": self.fatal_error is not None}},
        )

    @property
    def alive(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    # -------------------------------------------------------------------------
    # Consumer loop
    # -------------------------------------------------------------------------
    def _consume_loop(self, queue: str) -> None:
        log.info("consumer_started", extra={"payload": {"queue": queue}})
        try:
            for delivery in self.broker.consume(queue, self.stop_event):
                # текущее сообщение дообрабатывается даже после stop
                self.process_delivery(delivery)
        except redis.RedisError as e:
            self._record_fatal(queue, e)
        except Exception as e:
            self._record_fatal(queue, e, exc_info=True)
        log.info("consumer_stopped", extra={"payload": {"queue": queue}})

    def _record_fatal(self, queue: str, e: BaseException, *, exc_info: bool = False) -> None:
        with self._lock:
            if self.fatal_error is None:
                self.fatal_error = e
        log.error(
            "consumer_fatal",
            extra={"payload": {"queue": queue, "err": str(e)[:300], "err_type": type(e).__name__}},
            exc_info=exc_info,
        )
        self.stop_event.set()

    def _reject(self, delivery: Delivery, message: str, details: dict | None = None) -> None:
        log.error(
            "task_decode_failed",
            extra={
                "payload": {
                    "queue": delivery.queue,
                    "entry_id": delivery.entry_id,
                    "err": message,
                    **(details or {}),
                }
            },
        )
        delivery.reject(message)
        QUEUE_TASKS_TOTAL.labels(service=SERVICE, queue=delivery.queue, result="rejected").inc()

    def process_delivery(self, delivery: Delivery) -> HandlerOutcome | None:
        """
        Обработать одну доставку. Возвращает итог обработчика или None для reject.
        Ошибки брокера (ack/reject) пробрасываются.
        """
        queue = delivery.queue
        if delivery.decode_error is not None:
            self._reject(delivery, delivery.decode_error)
            return None
        try:
            envelope = TaskEnvelope.from_json(delivery.body or "")
        except TaskDecodeError as e:
            self._reject(delivery, e.message, e.details)
            return None

        log.info(
            "task_received",
            extra={
                "payload": {
                    "queue": queue,
                    "task_id": envelope.id,
                    "type": envelope.type[:100],
                    "redelivered": delivery.redelivered,
                }
            },
        )
        self.ctx.activity.log_activity(
            "task_processing",
            f"Processing task {envelope.type} ({envelope.id})",
            level=ActivityLevel.info,
        )

        result: str
        try:
            task_label = envelope.type if envelope.type in HANDLERS else "unknown"
            with track_handler_latency(SERVICE, task_label):
                outcome = dispatch_task(envelope, self.ctx)
            result = outcome.value
        except Exception as e:
            outcome = HandlerOutcome.failed
            result = "error"
            log.exception(
                "task_handler_crashed",
                extra={
                    "payload": {"queue": queue, "task_id": envelope.id, "err": str(e)[:300]}
                },
            )

        delivery.ack()
        QUEUE_TASKS_TOTAL.labels(service=SERVICE, queue=queue, result=result).inc()
        return outcome
