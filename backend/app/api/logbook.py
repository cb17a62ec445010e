import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.datastructures import UploadFile

from core.auth import get_principal
from core.errors import ValidationError
from core.security import Principal
from models import get_session, get_session_factory
from services.attachments import save_attachment
from services.entry_lifecycle import (
    EntryData,
    create_entry,
    delete_entry,
    dispatch_notification,
    update_entry,
)
from services.entry_query import EntrySearchParams, get_entry, search_entries
from services.notifier import Mailer, get_mailer

logger = logging.getLogger("logbook.api")

router = APIRouter(prefix="/api/logbook", tags=["logbook"])


async def _read_entry_request(request: Request) -> tuple[EntryData, UploadFile | None]:
    """Entry fields from a multipart/urlencoded form (or JSON) plus the optional attachment."""
    attachment: UploadFile | None = None
    if request.headers.get("content-type", "").startswith("application/json"):
        payload = await request.json()
    else:
        form = await request.form()
        payload = {}
        for key in form.keys():
            if key == "attachment":
                continue
            values = form.getlist(key)
            name = key[:-2] if key.endswith("[]") else key
            payload[name] = values if len(values) > 1 or key.endswith("[]") else values[0]
        upload = form.get("attachment")
        if isinstance(upload, UploadFile) and upload.filename:
            attachment = upload

    if isinstance(payload.get("technician_ids"), list):
        payload["technician_ids"] = [v for v in payload["technician_ids"] if str(v).strip()]

    try:
        data = EntryData.model_validate(payload)
    except PydanticValidationError as exc:
        messages = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()))
            messages.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        raise ValidationError("; ".join(messages))
    return data, attachment


# --- Endpoints ---

@router.post("/entries")
async def create_logbook_entry(
    request: Request,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    mailer: Mailer = Depends(get_mailer),
):
    data, upload = await _read_entry_request(request)
    attachment_name = await save_attachment(upload) if upload else None

    entry = await create_entry(session, principal, data, attachment_name)

    if data.send_email_notification:
        background_tasks.add_task(dispatch_notification, session_factory, mailer, entry.id)

    return {
        "success": True,
        "message": "Logbook entry created successfully",
        "log_id": entry.id,
    }


@router.get("/entries")
async def list_logbook_entries(
    params: EntrySearchParams = Depends(),
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
):
    page = await search_entries(session, principal, params)
    return {
        "success": True,
        "entries": page.entries,
        "pagination": {
            "page": page.page,
            "limit": page.limit,
            "total": page.total,
            "total_pages": page.total_pages,
        },
    }


@router.get("/entries/{entry_id}")
async def get_logbook_entry(
    entry_id: int,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
):
    return {"success": True, "entry": await get_entry(session, principal, entry_id)}


@router.put("/entries/{entry_id}")
async def update_logbook_entry(
    entry_id: int,
    request: Request,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
):
    data, upload = await _read_entry_request(request)
    attachment_name = await save_attachment(upload) if upload else None

    await update_entry(session, principal, entry_id, data, attachment_name)
    return {"success": True, "message": "Logbook entry updated successfully"}


@router.delete("/entries/{entry_id}")
async def delete_logbook_entry(
    entry_id: int,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
):
    await delete_entry(session, principal, entry_id)
    return {"success": True, "message": "Logbook entry deleted successfully"}
