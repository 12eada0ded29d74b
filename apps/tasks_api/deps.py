"""
FastAPI Depends.

Сюда выносим:
- проверку авторизации (Bearer JWT / X-API-Key) и роли
- брокер очередей процесса (app.state.broker)
"""

from __future__ import annotations

import threading

from fastapi import Depends, Header, HTTPException, Request, status

from docs_platform.common.errors import BrokerUnavailableError, ForbiddenError, UnauthorizedError
from docs_platform.common.logging import get_project_logger
from docs_platform.common.security import AuthContext, require_auth, require_role
from docs_platform.domain.enums import Role
from docs_platform.queue.broker import QueueBroker

log = get_project_logger()

_BROKER_LOCK = threading.Lock()


def _request_meta(request: Request | None) -> tuple[str, str, str | None]:
    if request is None:
        return "unknown", "UNKNOWN", None
    endpoint = request.url.path
    method = request.method
    client_ip = request.client.host if request.client else None
    return endpoint, method, client_ip


def _audit_allow(
    *,
    request: Request | None,
    ctx: AuthContext,
    reason: str,
) -> None:
    endpoint, method, client_ip = _request_meta(request)
    log.info(
        "security_audit_allow",
        extra={
            "payload": {
                "endpoint": endpoint,
                "method": method,
                "subject": ctx.subject,
                "auth_type": ctx.auth_type,
                "role": ctx.role.value,
                "reason": reason,
                "client_ip": client_ip,
            }
        },
    )


def _audit_deny(
    *,
    request: Request | None,
    status_code: int,
    reason: str,
    error_code: str,
    auth_type: str | None = None,
    subject: str | None = None,
) -> None:
    endpoint, method, client_ip = _request_meta(request)
    log.warning(
        "security_audit_deny",
        extra={
            "payload": {
                "endpoint": endpoint,
                "method": method,
                "status_code": status_code,
                "reason": reason,
                "error_code": error_code,
                "auth_type": auth_type or "unknown",
                "subject": subject or "unknown",
                "client_ip": client_ip,
            }
        },
    )


def auth_dep(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> AuthContext:
    """
    Проверка авторизации для HTTP.
    """
    try:
        return require_auth(authorization=authorization, x_api_key=x_api_key)
    except UnauthorizedError as e:
        _audit_deny(
            request=request,
            status_code=status.HTTP_401_UNAUTHORIZED,
            reason=e.message,
            error_code=e.code,
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": e.code, "message": e.message},
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def _role_dep(required: Role):
    def dep(request: Request, ctx: AuthContext = Depends(auth_dep)) -> AuthContext:
        try:
            require_role(ctx, required)
        except ForbiddenError as e:
            _audit_deny(
                request=request,
                status_code=status.HTTP_403_FORBIDDEN,
                reason=f"role_below_{required.value}",
                error_code=e.code,
                auth_type=ctx.auth_type,
                subject=ctx.subject,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"code": e.code, "message": e.message},
            ) from e
        _audit_allow(request=request, ctx=ctx, reason=f"role_{required.value}")
        return ctx

    return dep


editor_dep = _role_dep(Role.editor)
admin_dep = _role_dep(Role.admin)


def broker_dep(request: Request) -> QueueBroker:
    """
    Брокер процесса. Подключается лениво при первом запросе, чтобы API
    стартовал без Redis; ошибка подключения -> 503.
    """
    broker = getattr(request.app.state, "broker", None)
    if broker is not None:
        return broker
    with _BROKER_LOCK:
        broker = getattr(request.app.state, "broker", None)
        if broker is None:
            try:
                broker = QueueBroker.connect()
            except BrokerUnavailableError as e:
                log.error("broker_unavailable", extra={"payload": e.details or {}})
                raise HTTPException(
                    status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                    detail={"code": e.code, "message": e.message},
                ) from e
            request.app.state.broker = broker
    return broker
