"""FastAPI dependencies: bearer-token gate and role gates."""

from __future__ import annotations

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.errors import AuthError, PermissionDenied
from core.security import (
    AdminPrincipal,
    EngineerPrincipal,
    InvalidToken,
    Principal,
    decode_token,
)

_bearer = HTTPBearer(auto_error=False)


async def get_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> Principal:
    if credentials is None or not credentials.credentials:
        raise AuthError("Access token required")
    try:
        return decode_token(credentials.credentials)
    except InvalidToken:
        raise AuthError("Invalid or expired token", status_code=403)


async def require_admin(principal: Principal = Depends(get_principal)) -> AdminPrincipal:
    if not isinstance(principal, AdminPrincipal):
        raise PermissionDenied()
    return principal


async def require_engineer(principal: Principal = Depends(get_principal)) -> EngineerPrincipal:
    if not isinstance(principal, EngineerPrincipal):
        raise PermissionDenied()
    return principal


def ensure_substation_access(principal: Principal, substation_id: int) -> None:
    """Non-admin principals may only touch their own substation."""
    scope = principal.scope_substation_id
    if scope is not None and scope != substation_id:
        raise PermissionDenied("You can only manage records of your own substation")
