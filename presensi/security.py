from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from presensi.errors import ApiError, parse_enum
from presensi.models import UserRole
from presensi.settings import Settings

bearer_scheme = HTTPBearer(auto_error=False)

ADMIN_ROLES = frozenset({UserRole.SUPERADMIN, UserRole.SATKER_ADMIN})
SATKER_MANAGER_ROLES = frozenset({UserRole.SUPERADMIN, UserRole.SATKER_ADMIN, UserRole.SATKER_HEAD})


@dataclass(frozen=True)
class AuthContext:
    user_id: int
    satker_id: int
    role: UserRole

    @property
    def is_superadmin(self) -> bool:
        return self.role == UserRole.SUPERADMIN


def decode_access_token(token: str, settings: Settings) -> AuthContext:
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_exp": True},
        )
    except JWTError as exc:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token is invalid.") from exc

    try:
        user_id = int(payload["sub"])
        satker_id = int(payload["satker_id"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token claims are incomplete.") from exc

    try:
        role = parse_enum(UserRole, payload.get("role"), "role")
    except ApiError as exc:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token role is invalid.") from exc
    return AuthContext(user_id=user_id, satker_id=satker_id, role=role)


def require_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthContext:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Missing bearer token.")

    auth = decode_access_token(credentials.credentials, request.app.state.settings)
    request.state.actor = auth.role.value
    request.state.actor_id = str(auth.user_id)
    return auth


def require_roles(*roles: UserRole) -> Callable[..., AuthContext]:
    allowed = frozenset(roles)
    if not allowed:
        raise ValueError("require_roles needs at least one role")

    def _dependency(auth: AuthContext = Depends(require_user)) -> AuthContext:
        if auth.role not in allowed:
            raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")
        return auth

    return _dependency


def ensure_satker_access(auth: AuthContext, satker_id: int) -> None:
    if auth.is_superadmin:
        return
    if auth.role == UserRole.MEMBER or auth.satker_id != satker_id:
        raise ApiError(status_code=403, code="FORBIDDEN", message="No access to this satker.")
