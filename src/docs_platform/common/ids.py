"""
Генерация идентификаторов.

Назначение:
- id задач очереди (только для корреляции логов, не для дедупликации)
- consumer name для consumer group
"""

from __future__ import annotations

import os
import secrets
import socket
from datetime import UTC, datetime


def new_event_id(prefix: str = "evt") -> str:
    """
    Идентификатор события (лог/очереди/трассировка).
    Формат: <prefix>_<UTCYYYYMMDDHHMMSS>_<rand>
    """
    ts = datetime.now(UTC).strftime("%Y%m%d%H%M%S")
    rnd = secrets.token_hex(6)
    return f"{prefix}_{ts}_{rnd}"


def sync_task_id(project_id: int, unix_ts: int) -> str:
    """
    Id задачи sync_repo от планировщика: sync-<project_id>-<unix_ts>.
    Коллизии допустимы (два цикла в одну секунду).
    """
    return f"sync-{project_id}-{unix_ts}"


def default_consumer_name(prefix: str = "worker") -> str:
    """
    Имя consumer'а в группе. Должно переживать рестарт процесса,
    иначе pending-сообщения упавшего воркера никто не заберёт.
    """
    host = os.getenv("HOSTNAME") or socket.gethostname() or "local"
    return f"{prefix}-{host}"
