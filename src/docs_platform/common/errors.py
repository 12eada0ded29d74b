"""
Единые ошибки и коды ошибок.

Назначение:
- предсказуемые коды для HTTP/очередей/внутренних вызовов
- единый стиль исключений по проекту
"""

from __future__ import annotations

from dataclasses import dataclass


class ErrCode:
    # Общие
    UNKNOWN = "unknown"
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"

    # Очереди
    TASK_DECODE = "task_decode"
    BROKER_UNAVAILABLE = "broker_unavailable"
    QUEUE_DECLARE = "queue_declare"

    # Внутренние сервисы
    PROJECT_SERVICE_ERROR = "project_service_error"
    REPOSITORY_SERVICE_ERROR = "repository_service_error"
    BUILD_SERVICE_ERROR = "build_service_error"
    LOGGING_SERVICE_ERROR = "logging_service_error"


@dataclass
class AppError(Exception):
    """
    Базовая ошибка приложения.
    - code: стабильный код ошибки
    - message: безопасное сообщение
    - details: доп. данные (без секретов)
    """

    code: str
    message: str
    details: dict | None = None

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.message}"


class ValidationError(AppError):
    def __init__(self, message: str = "Ошибка валидации", details: dict | None = None) -> None:
        super().__init__(ErrCode.VALIDATION, message, details)


class TaskDecodeError(AppError):
    def __init__(self, message: str = "Не удалось разобрать задачу", details: dict | None = None) -> None:
        super().__init__(ErrCode.TASK_DECODE, message, details)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Не авторизован", details: dict | None = None) -> None:
        super().__init__(ErrCode.UNAUTHORIZED, message, details)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Недостаточно прав", details: dict | None = None) -> None:
        super().__init__(ErrCode.FORBIDDEN, message, details)


class BrokerUnavailableError(AppError):
    def __init__(self, message: str = "Брокер очередей недоступен", details: dict | None = None) -> None:
        super().__init__(ErrCode.BROKER_UNAVAILABLE, message, details)


class QueueDeclareError(AppError):
    def __init__(self, message: str = "Не удалось объявить очередь", details: dict | None = None) -> None:
        super().__init__(ErrCode.QUEUE_DECLARE, message, details)


class ProviderError(AppError):
    def __init__(self, code: str, message: str, details: dict | None = None) -> None:
        super().__init__(code, message, details)
