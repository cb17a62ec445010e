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
from models import Substation, get_session

logger = logging.getLogger("logbook.substations")

router = APIRouter(prefix="/api/substations", tags=["substations"])


# --- Schemas ---

class SubstationCreate(BaseModel):
    substation_code: str = ""
    substation_name: str = ""
    password: str = ""
    location: str | None = None
    voltage_level: str | None = None
    installed_capacity: str | None = None
    contact_info: str | None = None


class SubstationUpdate(BaseModel):
    substation_name: str
    location: str | None = None
    voltage_level: str | None = None
    installed_capacity: str | None = None
    contact_info: str | None = None
    password: str | None = None


class SubstationOut(BaseModel):
    id: int
    substation_code: str
    substation_name: str
    location: str | None
    voltage_level: str | None
    installed_capacity: str | None
    contact_info: str | None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


async def _get_substation(session: AsyncSession, substation_id: int) -> Substation:
    substation = await session.get(Substation, substation_id)
    if not substation:
        raise NotFound("Substation not found")
    return substation


# --- Endpoints ---

@router.get("")
async def list_substations(
    admin: AdminPrincipal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    result = await session.execute(select(Substation).order_by(Substation.substation_name))
    return {
        "success": True,
        "substations": [SubstationOut.model_validate(s) for s in result.scalars().all()],
    }


@router.post("")
async def create_substation(
    data: SubstationCreate,
    admin: AdminPrincipal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    if not data.substation_code or not data.substation_name or not data.password:
        raise ValidationError("Substation code, name, and password are required")

    substation = Substation(
        **data.model_dump(exclude={"password"}),
        password_hash=hash_password(data.password),
    )
    session.add(substation)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise ConflictError("Substation code already exists")

    logger.info("Substation %s created by admin #%d", substation.substation_code, admin.id)
    return {
        "success": True,
        "message": "Substation added successfully",
        "substation_id": substation.id,
    }


@router.put("/{substation_id}")
async def update_substation(
    substation_id: int,
    data: SubstationUpdate,
    admin: AdminPrincipal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    substation = await _get_substation(session, substation_id)
    for field, value in data.model_dump(exclude={"password"}).items():
        setattr(substation, field, value)
    if data.password:
        substation.password_hash = hash_password(data.password)
    await session.commit()
    return {"success": True, "message": "Substation updated successfully"}


@router.patch("/{substation_id}/toggle-status")
async def toggle_substation_status(
    substation_id: int,
    admin: AdminPrincipal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    substation = await _get_substation(session, substation_id)
    substation.is_active = not substation.is_active
    await session.commit()
    logger.info(
        "Substation %s %s", substation.substation_code,
        "activated" if substation.is_active else "deactivated",
    )
    return {"success": True, "message": "Substation status updated", "is_active": substation.is_active}
