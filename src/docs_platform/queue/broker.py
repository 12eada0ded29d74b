"""
Клиент брокера очередей (Redis Streams + consumer group).

Назначение:
- именованные durable-очереди: stream <queue> + группа воркеров
- publish / consume / ack / reject поверх XADD / XREADGROUP / XACK
- один экземпляр на процесс, передаётся планировщику, воркерам и API явно

Семантика:
- ack и reject оба убирают запись из stream (XACK + XDEL); reject не
  переотправляет сообщение, при QUEUE_DLQ_ENABLED тело паркуется в <queue>:dlq
- сообщения, взятые consumer'ом, но не подтверждённые (падение процесса между
  dispatch и ack), отдаются тому же consumer'у повторно при следующем старте
- клиент читает сырые байты; тело декодируется по записи, не-UTF-8 тело
  приходит как Delivery с decode_error и отклоняется воркером
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

import redis

from docs_platform.common.config import get_settings
from docs_platform.common.errors import BrokerUnavailableError, QueueDeclareError
from docs_platform.common.ids import default_consumer_name
from docs_platform.common.logging import get_project_logger

log = get_project_logger()

BODY_FIELD = "body"


def dlq_name(queue: str) -> str:
    return f"{queue}:dlq"


@dataclass
class Delivery:
    """
    Доставленное сообщение. Вызывающий обязан сделать ack() или reject().
    """

    queue: str
    entry_id: str
    body: str | None
    redelivered: bool = False
    decode_error: str | None = None
    raw_body: bytes | None = field(default=None, repr=False, compare=False)
    _broker: QueueBroker | None = field(default=None, repr=False, compare=False)

    def ack(self) -> None:
        if self._broker is not None:
            self._broker.ack(self.queue, self.entry_id)

    def reject(self, reason: str) -> None:
        if self._broker is not None:
            body = self.body if self.body is not None else self.raw_body
            self._broker.reject(self.queue, self.entry_id, body=body, reason=reason)


def _text(value: Any) -> str:
    # имена stream и id записей всегда ASCII
    if isinstance(value, bytes | bytearray):
        return bytes(value).decode("ascii", errors="replace")
    return str(value)


def _stream_entries(resp: Any, queue: str) -> list[tuple[str, dict[Any, Any] | None]]:
    # RESP2: [[stream, [(id, fields), ...]]]; RESP3: {stream: [[(id, fields), ...]]}
    if not resp:
        return []
    if isinstance(resp, dict):
        items: Any = []
        for stream, value in resp.items():
            if _text(stream) == queue:
                items = value or []
        if items and isinstance(items[0], list) and items[0] and isinstance(items[0][0], tuple | list):
            items = items[0]
        return [(_text(eid), fields) for eid, fields in items]
    out: list[tuple[str, dict[Any, Any] | None]] = []
    for stream, items in resp:
        if _text(stream) != queue:
            continue
        for eid, fields in items:
            out.append((_text(eid), fields))
    return out


def _decode_body(fields: dict[Any, Any] | None) -> tuple[str | None, bytes | None, str | None]:
    """
    Достать тело из полей записи: (body, raw_body, decode_error).
    """
    fields = fields or {}
    raw = fields.get(BODY_FIELD)
    if raw is None:
        raw = fields.get(BODY_FIELD.encode())
    if raw is None or isinstance(raw, str):
        return raw, None, None
    raw = bytes(raw)
    try:
        return raw.decode("utf-8"), raw, None
    except UnicodeDecodeError as e:
        return None, raw, f"Тело задачи не в UTF-8: {e.reason} at {e.start}"


class QueueBroker:
    def __init__(
        self,
        client: redis.Redis,
        *,
        group: str,
        consumer: str,
        block_ms: int = 5000,
        dlq_enabled: bool = False,
    ) -> None:
        self._client = client
        self.group = group
        self.consumer = consumer
        self.block_ms = max(1, int(block_ms))
        self.dlq_enabled = bool(dlq_enabled)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    @classmethod
    def connect(
        cls,
        url: str | None = None,
        *,
        group: str | None = None,
        consumer: str | None = None,
        block_ms: int | None = None,
        dlq_enabled: bool | None = None,
    ) -> QueueBroker:
        """
        Подключение к Redis с проверкой PING. Ошибка здесь фатальна для старта.
        """
        s = get_settings()
        target = url or s.redis_url
        try:
            client = redis.Redis.from_url(target, decode_responses=False, health_check_interval=30)
            client.ping()
        except redis.RedisError as e:
            raise BrokerUnavailableError(
                "Не удалось подключиться к Redis",
                {"err": str(e)[:200]},
            ) from e

        broker = cls(
            client,
            group=group or s.queue_consumer_group,
            consumer=consumer or s.worker_consumer_name or default_consumer_name(),
            block_ms=block_ms if block_ms is not None else s.queue_block_ms,
            dlq_enabled=s.queue_dlq_enabled if dlq_enabled is None else dlq_enabled,
        )
        log.info(
            "broker_connected",
            extra={"payload": {"group": broker.group, "consumer": broker.consumer}},
        )
        return broker

    def close(self) -> None:
        try:
            self._client.close()
        except redis.RedisError as e:
            log.warning("broker_close_failed", extra={"payload": {"err": str(e)[:200]}})

    # -------------------------------------------------------------------------
    # Queue operations
    # -------------------------------------------------------------------------
    def declare(self, queue: str) -> None:
        """
        Идемпотентно создать stream и группу воркеров.
        """
        try:
            self._client.xgroup_create(name=queue, groupname=self.group, id="0", mkstream=True)
        except redis.ResponseError as e:
            if "BUSYGROUP" in str(e):
                return
            raise QueueDeclareError(
                f"Не удалось объявить очередь {queue}", {"err": str(e)[:200]}
            ) from e
        except redis.RedisError as e:
            raise QueueDeclareError(
                f"Не удалось объявить очередь {queue}", {"err": str(e)[:200]}
            ) from e
        log.info("queue_declared", extra={"payload": {"queue": queue, "group": self.group}})

    def publish(self, queue: str, body: str) -> str:
        """
        Положить сообщение в очередь. Возвращает id записи в stream.
        """
        entry_id = self._client.xadd(queue, {BODY_FIELD: body})
        return _text(entry_id)

    def consume(self, queue: str, stop: threading.Event | None = None) -> Iterator[Delivery]:
        """
        Бесконечный поток доставок из очереди.

        Сначала дочитываем собственные pending-записи (backlog), затем блокирующе
        ждём новые. Цикл проверяет stop между чтениями: block_ms ограничивает
        задержку остановки.
        """
        backlog_cursor: str | None = "0"
        while stop is None or not stop.is_set():
            start_id = backlog_cursor if backlog_cursor is not None else ">"
            resp = self._client.xreadgroup(
                groupname=self.group,
                consumername=self.consumer,
                streams={queue: start_id},
                count=1,
                block=None if backlog_cursor is not None else self.block_ms,
            )
            entries = _stream_entries(resp, queue)
            if not entries:
                if backlog_cursor is not None:
                    backlog_cursor = None
                continue

            for entry_id, fields in entries:
                redelivered = backlog_cursor is not None
                if redelivered:
                    backlog_cursor = entry_id
                body, raw_body, decode_error = _decode_body(fields)
                yield Delivery(
                    queue=queue,
                    entry_id=entry_id,
                    body=body,
                    redelivered=redelivered,
                    decode_error=decode_error,
                    raw_body=raw_body,
                    _broker=self,
                )

    def ack(self, queue: str, entry_id: str) -> None:
        pipe = self._client.pipeline(transaction=True)
        pipe.xack(queue, self.group, entry_id)
        pipe.xdel(queue, entry_id)
        pipe.execute()

    def reject(self, queue: str, entry_id: str, *, body: str | bytes | None, reason: str) -> None:
        """
        Отклонить без повторной доставки.
        """
        pipe = self._client.pipeline(transaction=True)
        if self.dlq_enabled:
            pipe.xadd(
                dlq_name(queue),
                {BODY_FIELD: body or "", "reason": reason[:300], "source_id": entry_id},
            )
        pipe.xack(queue, self.group, entry_id)
        pipe.xdel(queue, entry_id)
        pipe.execute()
        log.warning(
            "task_rejected",
            extra={
                "payload": {
                    "queue": queue,
                    "entry_id": entry_id,
                    "reason": reason[:300],
                    "dlq": self.dlq_enabled,
                }
            },
        )

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------
    def depth(self, queue: str) -> int:
        return int(self._client.xlen(queue))

    def dlq_depth(self, queue: str) -> int:
        return int(self._client.xlen(dlq_name(queue)))

    def pending(self, queue: str) -> int:
        pending = self._client.xpending(queue, self.group)
        if isinstance(pending, dict):
            return int(pending.get("pending", 0))
        return 0
