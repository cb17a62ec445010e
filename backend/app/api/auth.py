import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select, true
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import get_principal
from core.errors import AuthError, ValidationError
from core.security import (
    AdminPrincipal,
    EngineerPrincipal,
    Principal,
    SubstationPrincipal,
    issue_token,
    verify_password,
)
from models import Substation, User, UserRole, get_session, utcnow

logger = logging.getLogger("logbook.auth")

router = APIRouter(prefix="/api/auth", tags=["auth"])


# --- Schemas ---

class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""


class SubstationLoginRequest(BaseModel):
    substation_code: str = ""
    password: str = ""


# --- Endpoints ---

@router.post("/login")
async def login(data: LoginRequest, session: AsyncSession = Depends(get_session)):
    if not data.username or not data.password:
        raise ValidationError("Username and password are required")

    result = await session.execute(
        select(User).where(User.username == data.username, User.is_active == true())
    )
    user = result.scalar_one_or_none()
    if user is None or not verify_password(data.password, user.password_hash):
        logger.warning("Failed login for user '%s'", data.username)
        raise AuthError("Invalid credentials")

    user.last_login = utcnow()
    await session.commit()

    if user.role == UserRole.admin:
        principal = AdminPrincipal(id=user.id, username=user.username)
    else:
        principal = EngineerPrincipal(
            id=user.id, username=user.username, substation_id=user.substation_id
        )
    logger.info("User '%s' logged in (%s)", user.username, user.role.value)
    return {
        "success": True,
        "message": "Login successful",
        "token": issue_token(principal),
        "user": {
            "id": user.id,
            "username": user.username,
            "full_name": user.full_name,
            "email": user.email,
            "role": user.role.value,
            "substation_id": user.substation_id,
        },
    }


@router.post("/substation-login")
async def substation_login(
    data: SubstationLoginRequest, session: AsyncSession = Depends(get_session)
):
    if not data.substation_code or not data.password:
        raise ValidationError("Substation code and password are required")

    result = await session.execute(
        select(Substation).where(
            Substation.substation_code == data.substation_code,
            Substation.is_active == true(),
        )
    )
    substation = result.scalar_one_or_none()
    if substation is None or not verify_password(data.password, substation.password_hash):
        logger.warning("Failed login for substation '%s'", data.substation_code)
        raise AuthError("Invalid credentials")

    principal = SubstationPrincipal(
        id=substation.id,
        substation_code=substation.substation_code,
        substation_id=substation.id,
    )
    logger.info("Substation '%s' logged in", substation.substation_code)
    return {
        "success": True,
        "message": "Login successful",
        "token": issue_token(principal),
        "substation": {
            "id": substation.id,
            "substation_code": substation.substation_code,
            "substation_name": substation.substation_name,
            "substation_id": substation.id,
            "role": "substation",
        },
    }


@router.get("/verify")
async def verify(principal: Principal = Depends(get_principal)):
    return {"success": True, "user": principal.model_dump()}


@router.post("/logout")
async def logout(principal: Principal = Depends(get_principal)):
    # Tokens are stateless; the client discards its copy
    return {"success": True, "message": "Logged out successfully"}
