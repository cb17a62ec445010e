import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select, true
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import ensure_substation_access, get_principal
from core.errors import ConflictError, NotFound, ValidationError
from core.security import Principal
from models import Substation, Technician, get_session

logger = logging.getLogger("logbook.technicians")

router = APIRouter(prefix="/api/technicians", tags=["technicians"])


# --- Schemas ---

class TechnicianCreate(BaseModel):
    substation_id: int | None = None
    name: str = ""
    employee_id: str = ""
    contact_number: str | None = None
    email: str | None = None
    designation: str | None = None


class TechnicianUpdate(BaseModel):
    name: str
    contact_number: str | None = None
    email: str | None = None
    designation: str | None = None


class TechnicianOut(BaseModel):
    id: int
    substation_id: int
    name: str
    employee_id: str
    contact_number: str | None
    email: str | None
    designation: str | None
    is_active: bool

    model_config = {"from_attributes": True}


async def _get_technician(session: AsyncSession, principal: Principal, technician_id: int) -> Technician:
    technician = await session.get(Technician, technician_id)
    if not technician:
        raise NotFound("Technician not found")
    ensure_substation_access(principal, technician.substation_id)
    return technician


# --- Endpoints ---

@router.get("/{substation_id}")
async def list_technicians(
    substation_id: int,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
):
    result = await session.execute(
        select(Technician)
        .where(Technician.substation_id == substation_id, Technician.is_active == true())
        .order_by(Technician.name)
    )
    return {
        "success": True,
        "technicians": [TechnicianOut.model_validate(t) for t in result.scalars().all()],
    }


@router.post("")
async def create_technician(
    data: TechnicianCreate,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
):
    substation_id = data.substation_id or principal.scope_substation_id
    if not substation_id or not data.name or not data.employee_id:
        raise ValidationError("Substation, name, and employee ID are required")
    ensure_substation_access(principal, substation_id)
    if await session.get(Substation, substation_id) is None:
        raise NotFound("Substation not found")

    technician = Technician(**data.model_dump(exclude={"substation_id"}), substation_id=substation_id)
    session.add(technician)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise ConflictError("Employee ID already exists for this substation")

    logger.info("Technician %s added to substation %d", technician.employee_id, substation_id)
    return {
        "success": True,
        "message": "Technician added successfully",
        "technician_id": technician.id,
    }


@router.put("/{technician_id}")
async def update_technician(
    technician_id: int,
    data: TechnicianUpdate,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
):
    technician = await _get_technician(session, principal, technician_id)
    for field, value in data.model_dump().items():
        setattr(technician, field, value)
    await session.commit()
    return {"success": True, "message": "Technician updated successfully"}


@router.delete("/{technician_id}")
async def delete_technician(
    technician_id: int,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
):
    technician = await _get_technician(session, principal, technician_id)
    # Soft delete: past entries keep their technician links
    technician.is_active = False
    await session.commit()
    logger.info("Technician %s deactivated", technician.employee_id)
    return {"success": True, "message": "Technician deleted successfully"}
