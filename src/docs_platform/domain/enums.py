"""
Доменные перечисления (enum).

Используются во всей системе:
- типы задач очереди
- типы сборки
- роли пользователей
- уровни записей activity log
"""

from __future__ import annotations

import enum


class TaskType(str, enum.Enum):
    """
    Тип задачи в конверте очереди. Имя очереди совпадает со значением.
    """

    clone_repo = "clone_repo"
    create_language_copies = "create_language_copies"
    sync_repo = "sync_repo"
    delete_repo = "delete_repo"
    build_task = "build_task"


class BuildType(str, enum.Enum):
    """
    Операция build-сервиса (задаёт endpoint /internal/<build_type>).
    """

    build = "build"
    export = "export"
    preview = "preview"


class Role(str, enum.Enum):
    """
    Роль пользователя. Порядок объявления = уровень прав.
    """

    viewer = "viewer"
    editor = "editor"
    admin = "admin"

    @property
    def rank(self) -> int:
        return list(Role).index(self)

    def allows(self, required: Role) -> bool:
        return self.rank >= required.rank


class ActivityLevel(str, enum.Enum):
    """
    Уровень записи в logging-сервисе.
    """

    info = "info"
    warning = "warning"
    error = "error"
    cron = "cron"


class HandlerOutcome(str, enum.Enum):
    """
    Итог обработки задачи обработчиком (для логов и метрик).
    """

    success = "success"
    failed = "failed"
    invalid = "invalid"
    unknown_type = "unknown_type"
