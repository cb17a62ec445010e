"""Logbook search: role-scoped, multi-predicate queries with per-entry enrichment.

EntryQuery collects SQLAlchemy predicates. The principal's substation scope is
installed when the query is built and every later predicate is ANDed onto it,
so no user filter can widen what a principal is allowed to see.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, time, timedelta

from pydantic import BaseModel
from sqlalchemy import Select, and_, false, func, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFound
from core.security import Principal
from models import (
    Comment,
    ElectricalParameters,
    EquipmentType,
    EventCategory,
    LogEntry,
    LogTechnician,
    PostedByType,
    Severity,
    Substation,
    Technician,
)
from models.base import utcnow
from services.edit_window import can_edit

logger = logging.getLogger("logbook.entry_query")

MAX_PAGE_SIZE = 500


# ---------------------------------------------------------------------------
# Result schemas
# ---------------------------------------------------------------------------

class EntryView(BaseModel):
    id: int
    substation_id: int
    substation_name: str
    substation_code: str
    entry_datetime: datetime
    event_category_id: int | None = None
    event_category: str | None = None
    equipment_id: int | None = None
    equipment: str | None = None
    severity: Severity
    message: str
    attachment_path: str | None = None
    posted_by_type: PostedByType
    posted_by_id: int | None = None
    send_email_notification: bool = False
    email_sent: bool = False
    email_sent_at: datetime | None = None
    is_edited: bool = False
    last_edited_at: datetime | None = None
    created_at: datetime
    can_edit: bool = False
    technicians: str | None = None          # "A. Kumar, R. Singh"
    technician_ids: list[int] = []
    technician_names: list[str] = []
    voltage_kv: float | None = None
    current_a: float | None = None
    power_mw: float | None = None
    frequency_hz: float | None = None
    power_factor: float | None = None
    energy_mwh: float | None = None
    comment_count: int = 0


class EntryPage(BaseModel):
    entries: list[EntryView]
    page: int
    limit: int
    total: int
    total_pages: int


class EntrySearchParams(BaseModel):
    substation_id: int | None = None
    start_date: date | None = None
    end_date: date | None = None
    search_text: str | None = None
    technician_id: int | None = None
    category_id: int | None = None
    severity: Severity | None = None
    page: int = 1
    limit: int = 50


# ---------------------------------------------------------------------------
# Predicate builder
# ---------------------------------------------------------------------------

class EntryQuery:

    def __init__(self, scope_substation_id: int | None = None) -> None:
        self.scope_substation_id = scope_substation_id
        self._predicates: list = []
        if scope_substation_id is not None:
            self._predicates.append(LogEntry.substation_id == scope_substation_id)

    @classmethod
    def for_principal(cls, principal: Principal) -> EntryQuery:
        return cls(principal.scope_substation_id)

    @property
    def predicates(self) -> tuple:
        return tuple(self._predicates)

    @property
    def is_scoped(self) -> bool:
        return self.scope_substation_id is not None

    def where(self, *predicates) -> EntryQuery:
        self._predicates.extend(predicates)
        return self

    def for_substation(self, substation_id: int | None) -> EntryQuery:
        # Scoped principals are already pinned; their substation filter is ignored
        if substation_id is not None and not self.is_scoped:
            self.where(LogEntry.substation_id == substation_id)
        return self

    def between(self, start_date: date | None, end_date: date | None) -> EntryQuery:
        """Inclusive calendar-date range on entry_datetime."""
        if start_date is not None:
            self.where(LogEntry.entry_datetime >= datetime.combine(start_date, time.min))
        if end_date is not None:
            self.where(
                LogEntry.entry_datetime < datetime.combine(end_date + timedelta(days=1), time.min)
            )
        return self

    def matching(self, search_text: str | None) -> EntryQuery:
        # Full-text relevance match (PostgreSQL: plainto_tsquery), not a substring test
        if search_text and search_text.strip():
            self.where(LogEntry.message.match(search_text.strip()))
        return self

    def with_technician(self, technician_id: int | None) -> EntryQuery:
        if technician_id is not None:
            self.where(
                LogEntry.id.in_(
                    select(LogTechnician.log_id).where(LogTechnician.technician_id == technician_id)
                )
            )
        return self

    def in_category(self, category_id: int | None) -> EntryQuery:
        if category_id is not None:
            self.where(LogEntry.event_category_id == category_id)
        return self

    def with_severity(self, severity: Severity | None) -> EntryQuery:
        if severity is not None:
            self.where(LogEntry.severity == severity)
        return self

    def apply(self, params: EntrySearchParams) -> EntryQuery:
        return (
            self.for_substation(params.substation_id)
            .between(params.start_date, params.end_date)
            .matching(params.search_text)
            .with_technician(params.technician_id)
            .in_category(params.category_id)
            .with_severity(params.severity)
        )

    def condition(self):
        return and_(true(), *self._predicates)

    # -- statements --------------------------------------------------------

    def count_statement(self) -> Select:
        return select(func.count(LogEntry.id)).where(self.condition())

    def entries_statement(self) -> Select:
        comment_count = (
            select(func.count(Comment.id))
            .where(Comment.log_id == LogEntry.id, Comment.is_deleted == false())
            .correlate(LogEntry)
            .scalar_subquery()
        )
        return (
            select(
                LogEntry,
                Substation.substation_name,
                Substation.substation_code,
                EventCategory.category_name,
                EquipmentType.equipment_name,
                ElectricalParameters,
                comment_count.label("comment_count"),
            )
            .join(Substation, Substation.id == LogEntry.substation_id)
            .outerjoin(EventCategory, EventCategory.id == LogEntry.event_category_id)
            .outerjoin(EquipmentType, EquipmentType.id == LogEntry.equipment_id)
            .outerjoin(ElectricalParameters, ElectricalParameters.log_id == LogEntry.id)
            .where(self.condition())
            .order_by(LogEntry.entry_datetime.desc(), LogEntry.id.desc())
        )


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

async def _technicians_by_entry(
    session: AsyncSession, entry_ids: list[int]
) -> dict[int, list[tuple[int, str]]]:
    if not entry_ids:
        return {}
    result = await session.execute(
        select(LogTechnician.log_id, Technician.id, Technician.name)
        .join(Technician, Technician.id == LogTechnician.technician_id)
        .where(LogTechnician.log_id.in_(entry_ids))
        .order_by(Technician.name, Technician.id)
    )
    techs: dict[int, list[tuple[int, str]]] = {}
    for log_id, tech_id, name in result.all():
        techs.setdefault(log_id, []).append((tech_id, name))
    return techs


async def _load_views(session: AsyncSession, stmt: Select) -> list[EntryView]:
    result = await session.execute(stmt)
    rows = result.all()
    techs = await _technicians_by_entry(session, [row[0].id for row in rows])
    now = utcnow()
    views: list[EntryView] = []
    for entry, sub_name, sub_code, category, equipment, params, comments in rows:
        linked = techs.get(entry.id, [])
        names = [name for _, name in linked]
        views.append(
            EntryView(
                id=entry.id,
                substation_id=entry.substation_id,
                substation_name=sub_name,
                substation_code=sub_code,
                entry_datetime=entry.entry_datetime,
                event_category_id=entry.event_category_id,
                event_category=category,
                equipment_id=entry.equipment_id,
                equipment=equipment,
                severity=entry.severity,
                message=entry.message,
                attachment_path=entry.attachment_path,
                posted_by_type=entry.posted_by_type,
                posted_by_id=entry.posted_by_id,
                send_email_notification=entry.send_email_notification,
                email_sent=entry.email_sent,
                email_sent_at=entry.email_sent_at,
                is_edited=entry.is_edited,
                last_edited_at=entry.last_edited_at,
                created_at=entry.created_at,
                can_edit=can_edit(entry.created_at, now),
                technicians=", ".join(names) or None,
                technician_ids=[tech_id for tech_id, _ in linked],
                technician_names=names,
                voltage_kv=params.voltage_kv if params else None,
                current_a=params.current_a if params else None,
                power_mw=params.power_mw if params else None,
                frequency_hz=params.frequency_hz if params else None,
                power_factor=params.power_factor if params else None,
                energy_mwh=params.energy_mwh if params else None,
                comment_count=comments or 0,
            )
        )
    return views


async def search_entries(
    session: AsyncSession, principal: Principal, params: EntrySearchParams
) -> EntryPage:
    page = max(params.page, 1)
    limit = min(max(params.limit, 1), MAX_PAGE_SIZE)
    query = EntryQuery.for_principal(principal).apply(params)

    total = (await session.execute(query.count_statement())).scalar_one()
    entries = await _load_views(
        session, query.entries_statement().offset((page - 1) * limit).limit(limit)
    )
    logger.debug(
        "Search by %s #%d: %d of %d entries (page %d)",
        principal.role, principal.id, len(entries), total, page,
    )
    return EntryPage(
        entries=entries,
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit) if total else 0,
    )


async def get_entry(session: AsyncSession, principal: Principal, entry_id: int) -> EntryView:
    query = EntryQuery.for_principal(principal).where(LogEntry.id == entry_id)
    views = await _load_views(session, query.entries_statement())
    if not views:
        raise NotFound("Logbook entry not found")
    return views[0]


async def load_entry(session: AsyncSession, entry_id: int) -> EntryView | None:
    """Unscoped read for internal callers (notifications)."""
    views = await _load_views(session, EntryQuery().where(LogEntry.id == entry_id).entries_statement())
    return views[0] if views else None
