"""Logbook entry lifecycle: create, edit, delete, post-commit notification.

Entry, technician links and electrical parameters are written inside one
session transaction; any failure rolls back all of them. Edit and delete are
gated by the 24-hour window measured from created_at.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from pydantic import BaseModel, ValidationInfo, field_validator
from sqlalchemy import delete, select, true, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.errors import EditWindowExpired, NotFound, ValidationError
from core.security import EngineerPrincipal, Principal, SubstationPrincipal
from models import (
    ELECTRICAL_FIELDS,
    ElectricalParameters,
    EquipmentType,
    EventCategory,
    LogEntry,
    LogTechnician,
    PostedByType,
    Severity,
    Substation,
    Technician,
    User,
    UserRole,
    utcnow,
)
from services.attachments import remove_attachment
from services.edit_window import can_edit
from services.entry_query import load_entry

logger = logging.getLogger("logbook.entry_lifecycle")


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------

class EntryData(BaseModel):
    """Entry fields as submitted (multipart form or JSON).

    ``model_fields_set`` records which keys the client actually sent: an
    electrical field that is present but empty still counts as present.
    """

    entry_datetime: datetime
    severity: Severity = Severity.Normal
    message: str
    event_category_id: int | None = None
    equipment_id: int | None = None
    substation_id: int | None = None
    technician_ids: list[int] | None = None
    voltage_kv: float | None = None
    current_a: float | None = None
    power_mw: float | None = None
    frequency_hz: float | None = None
    power_factor: float | None = None
    energy_mwh: float | None = None
    send_email_notification: bool = False

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, value, info: ValidationInfo):
        # An empty message is reported by _message_required
        if info.field_name == "message":
            return value
        if isinstance(value, str) and value.strip() in ("", "null", "undefined"):
            return None
        return value

    @field_validator("technician_ids", mode="before")
    @classmethod
    def _parse_technician_ids(cls, value):
        # Forms send a JSON array ("[1,2]") or a comma list ("1,2")
        if isinstance(value, str):
            value = value.strip()
            if value in ("", "null", "undefined"):
                return None
            if value.startswith("["):
                return json.loads(value)
            return [int(v) for v in value.split(",") if v.strip()]
        return value

    @field_validator("entry_datetime")
    @classmethod
    def _naive_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @field_validator("message")
    @classmethod
    def _message_required(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Message is required")
        return value

    @field_validator("send_email_notification", mode="before")
    @classmethod
    def _parse_flag(cls, value):
        if value is None:
            return False
        return value

    @property
    def electrical_present(self) -> bool:
        return any(f in self.model_fields_set for f in ELECTRICAL_FIELDS)

    @property
    def has_readings(self) -> bool:
        return any(getattr(self, f) is not None for f in ELECTRICAL_FIELDS)

    @property
    def technicians_present(self) -> bool:
        return "technician_ids" in self.model_fields_set and self.technician_ids is not None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _resolve_poster(principal: Principal, data: EntryData) -> tuple[int, PostedByType, int | None]:
    """(substation_id, posted_by_type, posted_by_id) for the acting principal."""
    if isinstance(principal, SubstationPrincipal):
        return principal.substation_id, PostedByType.substation, None
    if isinstance(principal, EngineerPrincipal):
        return principal.substation_id, PostedByType.engineer, principal.id
    if data.substation_id is None:
        raise ValidationError("substation_id is required when posting as admin")
    return data.substation_id, PostedByType.technician, None


async def _ensure_substation(session: AsyncSession, substation_id: int) -> None:
    if await session.get(Substation, substation_id) is None:
        raise NotFound("Substation not found")


async def _ensure_reference(session: AsyncSession, model, ref_id: int | None, label: str) -> None:
    if ref_id is not None and await session.get(model, ref_id) is None:
        raise NotFound(f"{label} not found")


async def _ensure_lookups(session: AsyncSession, data: EntryData) -> None:
    await _ensure_reference(session, EventCategory, data.event_category_id, "Event category")
    await _ensure_reference(session, EquipmentType, data.equipment_id, "Equipment type")


async def _ensure_technicians(
    session: AsyncSession,
    substation_id: int,
    technician_ids: list[int],
    already_linked: set[int] | None = None,
) -> None:
    """Technicians must belong to the substation; new links must be active."""
    if not technician_ids:
        return
    result = await session.execute(
        select(Technician.id, Technician.is_active).where(
            Technician.id.in_(technician_ids),
            Technician.substation_id == substation_id,
        )
    )
    already_linked = already_linked or set()
    found = {
        tech_id for tech_id, is_active in result.all()
        if is_active or tech_id in already_linked
    }
    missing = sorted(set(technician_ids) - found)
    if missing:
        raise ValidationError(
            f"Unknown or inactive technicians for this substation: {', '.join(map(str, missing))}"
        )


async def _write_technicians(
    session: AsyncSession, log_id: int, technician_ids: list[int]
) -> None:
    for tech_id in dict.fromkeys(technician_ids):
        session.add(LogTechnician(log_id=log_id, technician_id=tech_id))
    await session.flush()


async def _write_parameters(session: AsyncSession, log_id: int, data: EntryData) -> None:
    if not data.has_readings:
        return
    session.add(
        ElectricalParameters(
            log_id=log_id,
            **{f: getattr(data, f) for f in ELECTRICAL_FIELDS},
        )
    )
    await session.flush()


async def _load_for_change(
    session: AsyncSession, principal: Principal, entry_id: int, action: str
) -> LogEntry:
    entry = await session.get(LogEntry, entry_id)
    scope = principal.scope_substation_id
    if entry is None or (scope is not None and entry.substation_id != scope):
        raise NotFound("Logbook entry not found")
    if not can_edit(entry.created_at):
        raise EditWindowExpired(f"Entries can only be {action} within 24 hours of creation")
    return entry


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

async def create_entry(
    session: AsyncSession,
    principal: Principal,
    data: EntryData,
    attachment_name: str | None = None,
) -> LogEntry:
    technician_ids = data.technician_ids or []

    try:
        substation_id, posted_by_type, posted_by_id = _resolve_poster(principal, data)
        await _ensure_substation(session, substation_id)
        await _ensure_lookups(session, data)
        await _ensure_technicians(session, substation_id, technician_ids)

        entry = LogEntry(
            substation_id=substation_id,
            entry_datetime=data.entry_datetime,
            event_category_id=data.event_category_id,
            equipment_id=data.equipment_id,
            severity=data.severity,
            message=data.message,
            attachment_path=attachment_name,
            posted_by_type=posted_by_type,
            posted_by_id=posted_by_id,
            send_email_notification=data.send_email_notification,
        )
        session.add(entry)
        await session.flush()

        await _write_technicians(session, entry.id, technician_ids)
        await _write_parameters(session, entry.id, data)
        await session.commit()
    except Exception:
        await session.rollback()
        remove_attachment(attachment_name)
        raise

    logger.info(
        "Entry #%d created: substation=%d severity=%s by %s (technicians=%d, readings=%s)",
        entry.id, substation_id, data.severity.value, posted_by_type.value,
        len(technician_ids), data.has_readings,
    )
    return entry


# ---------------------------------------------------------------------------
# Edit
# ---------------------------------------------------------------------------

async def update_entry(
    session: AsyncSession,
    principal: Principal,
    entry_id: int,
    data: EntryData,
    attachment_name: str | None = None,
) -> LogEntry:
    try:
        entry = await _load_for_change(session, principal, entry_id, "edited")
    except Exception:
        remove_attachment(attachment_name)
        raise

    replaced_attachment: str | None = None
    try:
        await _ensure_lookups(session, data)
        entry.entry_datetime = data.entry_datetime
        entry.event_category_id = data.event_category_id
        entry.equipment_id = data.equipment_id
        if "severity" in data.model_fields_set:
            entry.severity = data.severity
        entry.message = data.message
        if attachment_name:
            replaced_attachment = entry.attachment_path
            entry.attachment_path = attachment_name
        entry.is_edited = True
        entry.last_edited_at = utcnow()

        if data.technicians_present:
            linked = set((await session.execute(
                select(LogTechnician.technician_id).where(LogTechnician.log_id == entry.id)
            )).scalars())
            await _ensure_technicians(session, entry.substation_id, data.technician_ids, linked)
            await session.execute(delete(LogTechnician).where(LogTechnician.log_id == entry.id))
            await _write_technicians(session, entry.id, data.technician_ids)

        # Any electrical key in the request replaces the readings wholesale
        if data.electrical_present:
            await session.execute(
                delete(ElectricalParameters).where(ElectricalParameters.log_id == entry.id)
            )
            await _write_parameters(session, entry.id, data)

        await session.commit()
    except Exception:
        await session.rollback()
        remove_attachment(attachment_name)
        raise

    if replaced_attachment:
        remove_attachment(replaced_attachment)
    logger.info("Entry #%d updated by %s #%d", entry.id, principal.role, principal.id)
    return entry


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

async def delete_entry(session: AsyncSession, principal: Principal, entry_id: int) -> None:
    entry = await _load_for_change(session, principal, entry_id, "deleted")

    if entry.attachment_path:
        remove_attachment(entry.attachment_path)

    # Links, parameters and comments go through ON DELETE CASCADE
    await session.execute(delete(LogEntry).where(LogEntry.id == entry.id))
    await session.commit()
    logger.info("Entry #%d deleted by %s #%d", entry_id, principal.role, principal.id)


# ---------------------------------------------------------------------------
# Notification (runs after commit, outside the request transaction)
# ---------------------------------------------------------------------------

async def dispatch_notification(
    session_factory: async_sessionmaker[AsyncSession],
    mailer,
    entry_id: int,
) -> bool:
    """Email the substation's engineers about an entry. Never raises."""
    try:
        async with session_factory() as session:
            entry = await load_entry(session, entry_id)
            if entry is None:
                logger.warning("Notification skipped: entry #%d no longer exists", entry_id)
                return False

            result = await session.execute(
                select(User.email).where(
                    User.substation_id == entry.substation_id,
                    User.role == UserRole.engineer,
                    User.is_active == true(),
                )
            )
            recipients = [email for (email,) in result.all() if email]
            if not recipients:
                logger.info("Entry #%d: no engineer email for substation %d", entry_id, entry.substation_id)
                return False

            sent = False
            for address in recipients:
                if await mailer.send_entry_notification(entry, address):
                    sent = True

            if sent:
                await session.execute(
                    update(LogEntry)
                    .where(LogEntry.id == entry_id)
                    .values(email_sent=True, email_sent_at=utcnow())
                )
                await session.commit()
            return sent
    except Exception as exc:
        logger.error("Notification for entry #%d failed: %s", entry_id, exc, exc_info=True)
        return False
