"""Equipment types and event categories: global lookups, admin-managed, soft delete."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select, true
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import get_principal, require_admin
from core.errors import ConflictError, NotFound, ValidationError
from core.security import AdminPrincipal, Principal
from models import EquipmentType, EventCategory, get_session

logger = logging.getLogger("logbook.reference")

router = APIRouter(prefix="/api", tags=["reference"])


# --- Schemas ---

class EquipmentCreate(BaseModel):
    equipment_name: str = ""
    description: str | None = None


class CategoryCreate(BaseModel):
    category_name: str = ""
    description: str | None = None


class EquipmentOut(BaseModel):
    id: int
    equipment_name: str
    description: str | None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class CategoryOut(BaseModel):
    id: int
    category_name: str
    description: str | None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


# --- Equipment ---

@router.get("/equipment")
async def list_equipment(
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
):
    result = await session.execute(
        select(EquipmentType)
        .where(EquipmentType.is_active == true())
        .order_by(EquipmentType.equipment_name)
    )
    return {
        "success": True,
        "equipment": [EquipmentOut.model_validate(e) for e in result.scalars().all()],
    }


@router.post("/equipment")
async def create_equipment(
    data: EquipmentCreate,
    admin: AdminPrincipal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    if not data.equipment_name.strip():
        raise ValidationError("Equipment name is required")
    equipment = EquipmentType(
        equipment_name=data.equipment_name.strip(),
        description=data.description,
        created_by=admin.id,
    )
    session.add(equipment)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise ConflictError("Equipment type already exists")
    logger.info("Equipment type '%s' added", equipment.equipment_name)
    return {
        "success": True,
        "message": "Equipment type added successfully",
        "equipment_id": equipment.id,
    }


@router.delete("/equipment/{equipment_id}")
async def delete_equipment(
    equipment_id: int,
    admin: AdminPrincipal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    equipment = await session.get(EquipmentType, equipment_id)
    if not equipment:
        raise NotFound("Equipment type not found")
    equipment.is_active = False
    await session.commit()
    return {"success": True, "message": "Equipment type deleted successfully"}


# --- Categories ---

@router.get("/categories")
async def list_categories(
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
):
    result = await session.execute(
        select(EventCategory)
        .where(EventCategory.is_active == true())
        .order_by(EventCategory.category_name)
    )
    return {
        "success": True,
        "categories": [CategoryOut.model_validate(c) for c in result.scalars().all()],
    }


@router.post("/categories")
async def create_category(
    data: CategoryCreate,
    admin: AdminPrincipal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    if not data.category_name.strip():
        raise ValidationError("Category name is required")
    category = EventCategory(
        category_name=data.category_name.strip(),
        description=data.description,
        created_by=admin.id,
    )
    session.add(category)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise ConflictError("Category already exists")
    logger.info("Event category '%s' added", category.category_name)
    return {
        "success": True,
        "message": "Event category added successfully",
        "category_id": category.id,
    }


@router.delete("/categories/{category_id}")
async def delete_category(
    category_id: int,
    admin: AdminPrincipal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    category = await session.get(EventCategory, category_id)
    if not category:
        raise NotFound("Event category not found")
    category.is_active = False
    await session.commit()
    return {"success": True, "message": "Event category deleted successfully"}
