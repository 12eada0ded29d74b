"""
Контракты задач очереди.

Конверт на проводе: {"type": str, "payload": object, "id": str}.

Правила:
- payload нетипизирован на проводе; каждый тип задачи разбирается в свой
  dataclass и при несовпадении формы падает (ValidationError)
- id нужен только для корреляции логов, дедупликации нет
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from docs_platform.common.errors import TaskDecodeError, ValidationError


@dataclass
class TaskEnvelope:
    type: str
    payload: dict[str, Any] = field(default_factory=dict)
    id: str = ""

    def to_json(self) -> str:
        return json.dumps(
            {"type": self.type, "payload": self.payload, "id": self.id},
            ensure_ascii=False,
            separators=(",", ":"),
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> TaskEnvelope:
        """
        Разбор тела сообщения. Отсутствующие поля получают пустые значения,
        поля неверного типа и не-JSON дают TaskDecodeError (poison message).
        """
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise TaskDecodeError("Тело задачи не является JSON", {"err": str(e)[:200]}) from e
        except RecursionError as e:
            # json падает на глубокой вложенности раньше, чем разберёт тело
            raise TaskDecodeError("Тело задачи слишком глубоко вложено") from e

        if not isinstance(data, dict):
            raise TaskDecodeError("Тело задачи должно быть JSON-объектом")

        task_type = data.get("type", "")
        payload = data.get("payload")
        task_id = data.get("id", "")

        if not isinstance(task_type, str):
            raise TaskDecodeError("Поле type должно быть строкой")
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise TaskDecodeError("Поле payload должно быть объектом")
        if not isinstance(task_id, str):
            raise TaskDecodeError("Поле id должно быть строкой")

        return cls(type=task_type, payload=payload, id=task_id)


# =============================================================================
# Извлечение полей payload
# =============================================================================
def _require_int(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key)
    # bool это подкласс int, но projectId=true это мусор
    if isinstance(value, bool):
        raise ValidationError(f"{key} должен быть числом", {"field": key})
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise ValidationError(f"{key} должен быть целым числом", {"field": key})


def _require_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise ValidationError(f"{key} должен быть строкой", {"field": key})
    return value


def _require_str_list(payload: dict[str, Any], key: str) -> list[str]:
    value = payload.get(key)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"{key} должен быть списком строк", {"field": key})
    return list(value)


# =============================================================================
# Типизированные задачи
# =============================================================================
@dataclass(frozen=True)
class CloneRepoTask:
    project_id: int
    repo_url: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> CloneRepoTask:
        return cls(
            project_id=_require_int(payload, "projectId"),
            repo_url=_require_str(payload, "repoUrl"),
        )


@dataclass(frozen=True)
class CreateLanguageCopiesTask:
    project_id: int
    languages: list[str]

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> CreateLanguageCopiesTask:
        return cls(
            project_id=_require_int(payload, "projectId"),
            languages=_require_str_list(payload, "languages"),
        )


@dataclass(frozen=True)
class SyncRepoTask:
    project_id: int

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> SyncRepoTask:
        return cls(project_id=_require_int(payload, "projectId"))


@dataclass(frozen=True)
class DeleteRepoTask:
    project_id: int

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> DeleteRepoTask:
        return cls(project_id=_require_int(payload, "projectId"))


@dataclass(frozen=True)
class BuildTask:
    project_id: int
    # сырое значение: неизвестный buildType отбрасывается обработчиком отдельно
    build_type: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> BuildTask:
        return cls(
            project_id=_require_int(payload, "projectId"),
            build_type=_require_str(payload, "buildType"),
        )

