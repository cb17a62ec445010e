import asyncio
from datetime import date

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import get_principal
from core.errors import ValidationError
from core.security import Principal
from models import get_session
from services.exporter import (
    PDF_MEDIA_TYPE,
    XLSX_MEDIA_TYPE,
    ExportRequest,
    build_pdf,
    build_workbook,
    export_filename,
)
from services.reports import daily_summary, monthly_summary

router = APIRouter(prefix="/api/reports", tags=["reports"])


def _attachment(content: bytes, media_type: str, extension: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{export_filename(extension)}"'},
    )


@router.get("/daily-summary")
async def get_daily_summary(
    day: date | None = Query(None, alias="date"),
    substation_id: int | None = None,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
):
    result = await daily_summary(session, principal, day, substation_id)
    return {"success": True, **result.model_dump()}


@router.get("/monthly-summary")
async def get_monthly_summary(
    year: int | None = None,
    month: int | None = None,
    substation_id: int | None = None,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
):
    if month is not None and not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    result = await monthly_summary(session, principal, year, month, substation_id)
    return {"success": True, **result.model_dump()}


@router.post("/export-pdf")
async def export_pdf(data: ExportRequest, principal: Principal = Depends(get_principal)):
    content = await asyncio.to_thread(build_pdf, data.entries, data.report_title)
    return _attachment(content, PDF_MEDIA_TYPE, "pdf")


@router.post("/export-excel")
async def export_excel(data: ExportRequest, principal: Principal = Depends(get_principal)):
    content = await asyncio.to_thread(build_workbook, data.entries)
    return _attachment(content, XLSX_MEDIA_TYPE, "xlsx")
