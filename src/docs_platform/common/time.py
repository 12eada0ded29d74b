"""
Утилиты времени.

Назначение:
- единый источник текущего времени (UTC)
- unix-секунды для id задач
"""

from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    """
    Текущее время в UTC (datetime).
    """
    return datetime.now(UTC)


def unix_ts(now: datetime | None = None) -> int:
    """
    Unix-время в секундах (int).
    """
    return int((now or utc_now()).timestamp())
