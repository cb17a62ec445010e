"""Credentials and session tokens.

Passwords are hashed with Argon2id; sessions are HS256 JWTs whose payload is
the serialized principal (id, role, substation scope).
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated, Literal, Union

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from config import settings

logger = logging.getLogger("logbook.security")

_hasher = PasswordHasher()


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return _hasher.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


# ---------------------------------------------------------------------------
# Principals: one kind per role, each with only the fields valid for it
# ---------------------------------------------------------------------------

class AdminPrincipal(BaseModel):
    role: Literal["admin"] = "admin"
    id: int
    username: str

    @property
    def scope_substation_id(self) -> int | None:
        return None


class EngineerPrincipal(BaseModel):
    role: Literal["engineer"] = "engineer"
    id: int
    username: str
    substation_id: int

    @property
    def scope_substation_id(self) -> int | None:
        return self.substation_id


class SubstationPrincipal(BaseModel):
    role: Literal["substation"] = "substation"
    id: int
    substation_code: str
    substation_id: int

    @property
    def scope_substation_id(self) -> int | None:
        return self.substation_id


Principal = Annotated[
    Union[AdminPrincipal, EngineerPrincipal, SubstationPrincipal],
    Field(discriminator="role"),
]

_principal_adapter: TypeAdapter[Principal] = TypeAdapter(Principal)


class InvalidToken(Exception):
    pass


def issue_token(principal: Principal, expires_hours: int | None = None) -> str:
    now = datetime.now(timezone.utc)
    payload = principal.model_dump()
    payload["iat"] = now
    payload["exp"] = now + timedelta(hours=expires_hours or settings.JWT_EXPIRES_HOURS)
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Principal:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError as exc:
        logger.debug("Token rejected: %s", exc)
        raise InvalidToken(str(exc)) from exc
    try:
        return _principal_adapter.validate_python(payload)
    except PydanticValidationError as exc:
        raise InvalidToken("Malformed token payload") from exc
