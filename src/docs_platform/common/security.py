"""
Утилиты безопасности и авторизации.

Поддерживаемые режимы (AUTH_MODE):
- jwt:  Bearer JWT (HS256, общий секрет с auth-сервисом) + fallback на service API key
- none: без авторизации (ТОЛЬКО dev)

Роль берётся из claim JWT_ROLE_CLAIM ("viewer" | "editor" | "admin").
Старые токены несут только числовой role_id: 1=admin, 2=editor, 3=viewer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import jwt

from docs_platform.domain.enums import Role

from .config import get_settings, is_prod_env, parse_csv
from .errors import ForbiddenError, UnauthorizedError

_LEGACY_ROLE_IDS: dict[int, Role] = {
    1: Role.admin,
    2: Role.editor,
    3: Role.viewer,
}


@dataclass(frozen=True)
class AuthContext:
    subject: str
    auth_type: str  # jwt | service_api_key | none
    role: Role = Role.viewer
    user_id: int | None = None
    claims: dict[str, Any] | None = None

    @property
    def is_service(self) -> bool:
        return self.auth_type == "service_api_key"


def _jwt_algorithms(raw: str) -> list[str]:
    return parse_csv(raw) or ["HS256"]


def _extract_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    prefix = "bearer "
    if authorization.lower().startswith(prefix):
        return authorization[len(prefix) :].strip()
    return None


def role_from_claims(claims: dict[str, Any], role_claim: str = "role") -> Role:
    """
    Роль из claims. Неизвестная или отсутствующая роль -> UnauthorizedError.
    """
    raw = claims.get(role_claim)
    if isinstance(raw, str) and raw.strip():
        try:
            return Role(raw.strip().lower())
        except ValueError as e:
            raise UnauthorizedError("Неизвестная роль в токене", {"role": raw[:50]}) from e

    role_id = claims.get("role_id")
    if isinstance(role_id, int) and not isinstance(role_id, bool):
        role = _LEGACY_ROLE_IDS.get(role_id)
        if role is not None:
            return role
    raise UnauthorizedError("Токен не содержит роль")


def _user_id_from_claims(claims: dict[str, Any]) -> int | None:
    value = claims.get("user_id")
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def _verify_jwt(token: str) -> dict[str, Any]:
    s = get_settings()
    audience = s.jwt_audience
    issuer = s.jwt_issuer
    leeway = int(s.jwt_clock_skew_sec or 0)

    kwargs: dict[str, Any] = {
        "algorithms": _jwt_algorithms(s.jwt_algorithms),
        "options": {"verify_aud": bool(audience)},
        "leeway": leeway,
    }
    if audience:
        kwargs["audience"] = audience
    if issuer:
        kwargs["issuer"] = issuer

    secret = (s.jwt_secret or "").strip()
    if not secret:
        raise UnauthorizedError("JWT не настроен: укажи JWT_SECRET")
    try:
        return jwt.decode(token, secret, **kwargs)
    except jwt.PyJWTError as e:
        raise UnauthorizedError("JWT не прошёл проверку", {"err": str(e)}) from e


def require_auth(*, authorization: str | None, x_api_key: str | None) -> AuthContext:
    """
    Универсальная проверка авторизации:
    - AUTH_MODE=none: без проверки (dev), контекст с ролью admin
    - AUTH_MODE=jwt: Bearer JWT, иначе service API key из SERVICE_API_KEYS
    """
    settings = get_settings()
    mode = (settings.auth_mode or "jwt").lower().strip()

    if mode == "none":
        if is_prod_env(settings.app_env):
            raise UnauthorizedError("AUTH_MODE=none запрещён в APP_ENV=prod")
        return AuthContext(subject="anonymous", auth_type="none", role=Role.admin)

    if mode != "jwt":
        raise UnauthorizedError("Неизвестный режим авторизации")

    token = _extract_bearer(authorization)
    if token:
        claims = _verify_jwt(token)
        role = role_from_claims(claims, settings.jwt_role_claim or "role")
        user_id = _user_id_from_claims(claims)
        subject = str(claims.get("username") or claims.get("sub") or user_id or "jwt_subject")
        return AuthContext(
            subject=subject,
            auth_type="jwt",
            role=role,
            user_id=user_id,
            claims=claims,
        )

    service_keys = set(parse_csv(settings.service_api_keys))
    if x_api_key and x_api_key in service_keys:
        return AuthContext(subject="service", auth_type="service_api_key", role=Role.admin)

    raise UnauthorizedError("Требуется Bearer JWT или service API key")


def require_role(ctx: AuthContext, required: Role) -> None:
    if not ctx.role.allows(required):
        raise ForbiddenError(
            "Недостаточно прав",
            {"required": required.value, "actual": ctx.role.value},
        )
