from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select, update

from core.errors import EditWindowExpired, NotFound, ValidationError
from models import (
    Comment,
    ElectricalParameters,
    LogEntry,
    LogTechnician,
    PostedByType,
    Severity,
    Technician,
    utcnow,
)
from services import entry_lifecycle
from services.attachments import attachment_path
from services.edit_window import can_edit
from services.entry_lifecycle import EntryData, create_entry, delete_entry, update_entry


def entry_data(**overrides) -> EntryData:
    payload = {
        "entry_datetime": "2026-10-19T08:30:00",
        "severity": "Normal",
        "message": "Shift handover, all feeders normal",
    }
    payload.update(overrides)
    return EntryData.model_validate(payload)


async def count(session, model) -> int:
    return (await session.execute(select(func.count()).select_from(model))).scalar_one()


async def age_entry(session, entry_id: int, hours: float) -> None:
    await session.execute(
        update(LogEntry)
        .where(LogEntry.id == entry_id)
        .values(created_at=utcnow() - timedelta(hours=hours))
    )
    await session.commit()


def make_attachment(name: str) -> str:
    attachment_path(name).write_bytes(b"%PDF-1.4 test")
    return name


# --- EntryData parsing ---

def test_entry_data_parses_form_values():
    data = entry_data(
        technician_ids="[3, 4]",
        voltage_kv="220.5",
        current_a="",
        send_email_notification="true",
        event_category_id="null",
    )
    assert data.technician_ids == [3, 4]
    assert data.voltage_kv == 220.5
    assert data.current_a is None
    assert data.event_category_id is None
    assert data.send_email_notification is True
    assert data.electrical_present and data.has_readings


def test_entry_data_comma_separated_technicians_and_no_readings():
    data = entry_data(technician_ids="5, 6,")
    assert data.technician_ids == [5, 6]
    assert not data.electrical_present
    assert not data.has_readings


def test_entry_data_zero_is_a_reading():
    data = entry_data(power_mw=0)
    assert data.has_readings


def test_entry_data_rejects_blank_message():
    with pytest.raises(PydanticValidationError):
        entry_data(message="   ")


def test_entry_data_aware_datetime_becomes_naive_utc():
    data = entry_data(entry_datetime="2026-10-19T14:00:00+05:30")
    assert data.entry_datetime == datetime(2026, 10, 19, 8, 30)


# --- Create ---

async def test_create_entry_writes_links_and_readings(session, seed, principals):
    data = entry_data(
        technician_ids=[seed.tech_1, seed.tech_2, seed.tech_1],
        voltage_kv=220.0,
        frequency_hz=50.01,
    )
    entry = await create_entry(session, principals.eng_a, data)

    assert entry.substation_id == seed.sub_a
    assert entry.posted_by_type == PostedByType.engineer
    assert entry.posted_by_id == seed.eng_a
    links = (await session.execute(
        select(LogTechnician.technician_id).where(LogTechnician.log_id == entry.id)
    )).scalars().all()
    assert sorted(links) == sorted([seed.tech_1, seed.tech_2])
    params = (await session.execute(
        select(ElectricalParameters).where(ElectricalParameters.log_id == entry.id)
    )).scalar_one()
    assert params.voltage_kv == 220.0
    assert params.current_a is None


async def test_create_without_readings_writes_no_parameters_row(session, seed, principals):
    await create_entry(session, principals.station_a, entry_data())
    assert await count(session, ElectricalParameters) == 0


async def test_substation_account_posts_as_substation(session, seed, principals):
    entry = await create_entry(session, principals.station_a, entry_data(substation_id=seed.sub_b))
    assert entry.substation_id == seed.sub_a
    assert entry.posted_by_type == PostedByType.substation
    assert entry.posted_by_id is None


async def test_admin_must_name_a_substation(session, seed, principals):
    with pytest.raises(ValidationError):
        await create_entry(session, principals.admin, entry_data())

    entry = await create_entry(session, principals.admin, entry_data(substation_id=seed.sub_b))
    assert entry.substation_id == seed.sub_b
    assert entry.posted_by_type == PostedByType.technician
    assert entry.posted_by_id is None


async def test_admin_unknown_substation_is_not_found(session, seed, principals):
    with pytest.raises(NotFound):
        await create_entry(session, principals.admin, entry_data(substation_id=9999))


async def test_technician_from_another_substation_is_rejected(session, seed, principals):
    with pytest.raises(ValidationError):
        await create_entry(session, principals.eng_a, entry_data(technician_ids=[seed.tech_b]))
    assert await count(session, LogEntry) == 0


async def test_create_is_atomic_when_parameters_fail(session, seed, principals, monkeypatch):
    async def boom(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(entry_lifecycle, "_write_parameters", boom)
    name = make_attachment("attachment-atomic.pdf")

    with pytest.raises(RuntimeError):
        await create_entry(
            session, principals.eng_a,
            entry_data(technician_ids=[seed.tech_1], voltage_kv=11.0),
            attachment_name=name,
        )

    assert await count(session, LogEntry) == 0
    assert await count(session, LogTechnician) == 0
    assert await count(session, ElectricalParameters) == 0
    assert not attachment_path(name).exists()


# --- Edit ---

async def test_update_replaces_fields_and_marks_edited(session, seed, principals):
    entry = await create_entry(session, principals.eng_a, entry_data(technician_ids=[seed.tech_1]))
    entry_id = entry.id

    await update_entry(
        session, principals.eng_a, entry_id,
        entry_data(severity="Warning", message="Revised", technician_ids=[seed.tech_2]),
    )

    row = await session.get(LogEntry, entry_id)
    assert row.severity == Severity.Warning
    assert row.message == "Revised"
    assert row.is_edited is True
    assert row.last_edited_at is not None
    links = (await session.execute(
        select(LogTechnician.technician_id).where(LogTechnician.log_id == entry_id)
    )).scalars().all()
    assert links == [seed.tech_2]


async def test_update_without_technician_ids_keeps_links(session, seed, principals):
    entry = await create_entry(session, principals.eng_a, entry_data(technician_ids=[seed.tech_1]))
    await update_entry(session, principals.eng_a, entry.id, entry_data(message="No crew change"))
    assert await count(session, LogTechnician) == 1


async def test_update_with_empty_electrical_fields_removes_parameters(session, seed, principals):
    entry = await create_entry(session, principals.eng_a, entry_data(voltage_kv=220.0))
    assert await count(session, ElectricalParameters) == 1

    await update_entry(
        session, principals.eng_a, entry.id,
        entry_data(voltage_kv="", current_a=""),
    )
    assert await count(session, ElectricalParameters) == 0


async def test_update_without_electrical_fields_keeps_parameters(session, seed, principals):
    entry = await create_entry(session, principals.eng_a, entry_data(voltage_kv=220.0))
    await update_entry(session, principals.eng_a, entry.id, entry_data(message="Typo fixed"))
    params = (await session.execute(select(ElectricalParameters))).scalar_one()
    assert params.voltage_kv == 220.0


async def test_update_replaces_parameters_wholesale(session, seed, principals):
    entry = await create_entry(session, principals.eng_a, entry_data(voltage_kv=220.0, current_a=400.0))
    await update_entry(session, principals.eng_a, entry.id, entry_data(power_mw=75.0))
    params = (await session.execute(select(ElectricalParameters))).scalar_one()
    assert params.power_mw == 75.0
    assert params.voltage_kv is None
    assert params.current_a is None


async def test_update_after_window_is_rejected_and_row_unchanged(session, seed, principals):
    entry = await create_entry(session, principals.eng_a, entry_data(message="Original"))
    entry_id = entry.id
    await age_entry(session, entry_id, hours=25)
    session.expunge_all()

    with pytest.raises(EditWindowExpired):
        await update_entry(session, principals.eng_a, entry_id, entry_data(message="Too late"))

    session.expunge_all()
    row = await session.get(LogEntry, entry_id)
    assert row.message == "Original"
    assert row.is_edited is False


async def test_update_out_of_scope_is_not_found(session, seed, principals):
    entry = await create_entry(session, principals.eng_a, entry_data())
    with pytest.raises(NotFound):
        await update_entry(session, principals.eng_b, entry.id, entry_data(message="Not mine"))


async def test_update_with_new_attachment_removes_old_file(session, seed, principals):
    old = make_attachment("attachment-old.pdf")
    new = make_attachment("attachment-new.pdf")
    entry = await create_entry(session, principals.eng_a, entry_data(), attachment_name=old)

    await update_entry(session, principals.eng_a, entry.id, entry_data(), attachment_name=new)

    row = await session.get(LogEntry, entry.id)
    assert row.attachment_path == new
    assert not attachment_path(old).exists()
    assert attachment_path(new).exists()


# --- Delete ---

async def test_delete_cascades_and_removes_attachment(session, seed, principals):
    name = make_attachment("attachment-cascade.pdf")
    entry = await create_entry(
        session, principals.eng_a,
        entry_data(technician_ids=[seed.tech_1], voltage_kv=33.0),
        attachment_name=name,
    )
    session.add(Comment(log_id=entry.id, user_id=seed.eng_a, comment_text="Checked"))
    await session.commit()

    await delete_entry(session, principals.eng_a, entry.id)

    assert await count(session, LogEntry) == 0
    assert await count(session, LogTechnician) == 0
    assert await count(session, ElectricalParameters) == 0
    assert await count(session, Comment) == 0
    assert not attachment_path(name).exists()


async def test_delete_after_window_is_rejected(session, seed, principals):
    entry = await create_entry(session, principals.eng_a, entry_data())
    entry_id = entry.id
    await age_entry(session, entry_id, hours=24.5)
    session.expunge_all()

    with pytest.raises(EditWindowExpired):
        await delete_entry(session, principals.eng_a, entry_id)
    assert await count(session, LogEntry) == 1


async def test_delete_missing_attachment_file_still_deletes_row(session, seed, principals):
    entry = await create_entry(
        session, principals.eng_a, entry_data(), attachment_name="attachment-gone.pdf"
    )
    await delete_entry(session, principals.eng_a, entry.id)
    assert await count(session, LogEntry) == 0


# --- Edit window ---

def test_can_edit_boundaries():
    now = datetime(2026, 10, 19, 12, 0)
    assert can_edit(now - timedelta(hours=23, minutes=59), now)
    assert can_edit(now - timedelta(hours=24), now)
    assert not can_edit(now - timedelta(hours=24, seconds=1), now)


# --- Edit keeps what the client did not send ---

async def test_update_without_severity_keeps_stored_severity(session, seed, principals):
    entry = await create_entry(session, principals.eng_a, entry_data(severity="Critical"))

    await update_entry(
        session, principals.eng_a, entry.id,
        EntryData.model_validate({"entry_datetime": "2026-10-19T09:00:00", "message": "Reworded"}),
    )
    row = await session.get(LogEntry, entry.id)
    assert row.severity == Severity.Critical
    assert row.message == "Reworded"

    await update_entry(session, principals.eng_a, entry.id, entry_data(severity="Warning"))
    row = await session.get(LogEntry, entry.id)
    assert row.severity == Severity.Warning


def test_blank_message_reports_message_required():
    with pytest.raises(PydanticValidationError) as exc_info:
        entry_data(message="")
    assert "Message is required" in str(exc_info.value)


# --- Referenced lookups and technicians ---

async def test_unknown_category_or_equipment_is_not_found(session, seed, principals):
    with pytest.raises(NotFound, match="Event category not found"):
        await create_entry(session, principals.eng_a, entry_data(event_category_id=9999))
    with pytest.raises(NotFound, match="Equipment type not found"):
        await create_entry(session, principals.eng_a, entry_data(equipment_id=9999))
    assert await count(session, LogEntry) == 0

    entry = await create_entry(session, principals.eng_a, entry_data(event_category_id=seed.category))
    entry_id = entry.id
    with pytest.raises(NotFound, match="Equipment type not found"):
        await update_entry(session, principals.eng_a, entry_id, entry_data(equipment_id=9999))
    session.expunge_all()
    row = await session.get(LogEntry, entry_id)
    assert row.equipment_id is None
    assert row.is_edited is False


async def test_inactive_technician_cannot_be_linked_to_new_entry(session, seed, principals):
    tech = await session.get(Technician, seed.tech_2)
    tech.is_active = False
    await session.commit()

    with pytest.raises(ValidationError):
        await create_entry(session, principals.eng_a, entry_data(technician_ids=[seed.tech_1, seed.tech_2]))
    assert await count(session, LogEntry) == 0


async def test_edit_may_keep_existing_link_to_deactivated_technician(session, seed, principals):
    entry = await create_entry(session, principals.eng_a, entry_data(technician_ids=[seed.tech_2]))
    entry_id = entry.id
    tech = await session.get(Technician, seed.tech_2)
    tech.is_active = False
    await session.commit()

    await update_entry(
        session, principals.eng_a, entry_id,
        entry_data(technician_ids=[seed.tech_2, seed.tech_1]),
    )
    links = (await session.execute(
        select(LogTechnician.technician_id).where(LogTechnician.log_id == entry_id)
    )).scalars().all()
    assert sorted(links) == sorted([seed.tech_1, seed.tech_2])
