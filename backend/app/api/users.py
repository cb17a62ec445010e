import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import require_admin
from core.errors import ConflictError, NotFound, ValidationError
from core.security import AdminPrincipal, hash_password
from models import Substation, User, UserRole, get_session

logger = logging.getLogger("logbook.users")

router = APIRouter(prefix="/api/users", tags=["users"])


# --- Schemas ---

class UserCreate(BaseModel):
    username: str = ""
    password: str = ""
    full_name: str = ""
    email: str = ""
    role: UserRole | None = None
    phone: str | None = None
    employee_id: str | None = None
    substation_id: int | None = None


class UserUpdate(BaseModel):
    full_name: str
    email: str
    phone: str | None = None
    employee_id: str | None = None
    substation_id: int | None = None
    password: str | None = None


class UserOut(BaseModel):
    id: int
    username: str
    full_name: str
    email: str
    phone: str | None
    employee_id: str | None
    role: UserRole
    substation_id: int | None
    substation_name: str | None = None
    is_active: bool
    last_login: datetime | None
    created_at: datetime


async def _ensure_substation(session: AsyncSession, substation_id: int) -> None:
    if await session.get(Substation, substation_id) is None:
        raise NotFound("Substation not found")


# --- Endpoints ---

@router.get("")
async def list_users(
    admin: AdminPrincipal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    result = await session.execute(
        select(User, Substation.substation_name)
        .outerjoin(Substation, Substation.id == User.substation_id)
        .order_by(User.full_name)
    )
    users = [
        UserOut(
            id=u.id,
            username=u.username,
            full_name=u.full_name,
            email=u.email,
            phone=u.phone,
            employee_id=u.employee_id,
            role=u.role,
            substation_id=u.substation_id,
            substation_name=name,
            is_active=u.is_active,
            last_login=u.last_login,
            created_at=u.created_at,
        )
        for u, name in result.all()
    ]
    return {"success": True, "users": users}


@router.post("")
async def create_user(
    data: UserCreate,
    admin: AdminPrincipal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    if not (data.username and data.password and data.full_name and data.email and data.role):
        raise ValidationError("Username, password, full name, email, and role are required")

    substation_id = data.substation_id
    if data.role == UserRole.engineer:
        if not substation_id:
            raise ValidationError("Substation assignment is required for engineers")
        await _ensure_substation(session, substation_id)
    else:
        substation_id = None

    user = User(
        username=data.username,
        password_hash=hash_password(data.password),
        full_name=data.full_name,
        email=data.email,
        phone=data.phone,
        employee_id=data.employee_id or None,
        role=data.role,
        substation_id=substation_id,
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise ConflictError("Username, email, or employee ID already exists")

    logger.info("User '%s' (%s) created by admin #%d", user.username, user.role.value, admin.id)
    return {"success": True, "message": "User added successfully", "user_id": user.id}


@router.put("/{user_id}")
async def update_user(
    user_id: int,
    data: UserUpdate,
    admin: AdminPrincipal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    user = await session.get(User, user_id)
    if not user:
        raise NotFound("User not found")

    if user.role == UserRole.engineer:
        if not data.substation_id:
            raise ValidationError("Substation assignment is required for engineers")
        await _ensure_substation(session, data.substation_id)
        user.substation_id = data.substation_id

    user.full_name = data.full_name
    user.email = data.email
    user.phone = data.phone
    user.employee_id = data.employee_id or None
    if data.password:
        user.password_hash = hash_password(data.password)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise ConflictError("Username, email, or employee ID already exists")
    return {"success": True, "message": "User updated successfully"}


@router.patch("/{user_id}/toggle-status")
async def toggle_user_status(
    user_id: int,
    admin: AdminPrincipal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    user = await session.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    user.is_active = not user.is_active
    await session.commit()
    logger.info("User '%s' %s", user.username, "activated" if user.is_active else "deactivated")
    return {"success": True, "message": "User status updated", "is_active": user.is_active}
