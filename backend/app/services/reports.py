"""Daily and monthly logbook summaries, scoped like entry search."""

from __future__ import annotations

import logging
from datetime import date

from pydantic import BaseModel
from sqlalchemy import Integer, case, extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.security import Principal
from models import LogEntry, Severity, Substation, daily_category_view, daily_summary_view

logger = logging.getLogger("logbook.reports")


class SeverityCounts(BaseModel):
    total_entries: int = 0
    normal_count: int = 0
    warning_count: int = 0
    critical_count: int = 0


class DailySubstationRow(SeverityCounts):
    substation_id: int
    substation_name: str
    log_date: date


class CategoryRow(BaseModel):
    substation_id: int
    log_date: date
    category_name: str
    entry_count: int


class DailySummary(BaseModel):
    day: date | None = None
    totals: SeverityCounts
    summary: list[DailySubstationRow]
    categories: list[CategoryRow]


class MonthlySubstationRow(SeverityCounts):
    substation_id: int
    substation_name: str
    active_days: int = 0


class MonthlySummary(BaseModel):
    year: int | None = None
    month: int | None = None
    totals: SeverityCounts
    active_days: int = 0
    summary: list[MonthlySubstationRow]


def _effective_substation(principal: Principal, substation_id: int | None) -> int | None:
    scope = principal.scope_substation_id
    return scope if scope is not None else substation_id


def _totals(rows: list[SeverityCounts]) -> SeverityCounts:
    return SeverityCounts(
        total_entries=sum(r.total_entries for r in rows),
        normal_count=sum(r.normal_count for r in rows),
        warning_count=sum(r.warning_count for r in rows),
        critical_count=sum(r.critical_count for r in rows),
    )


async def daily_summary(
    session: AsyncSession,
    principal: Principal,
    day: date | None = None,
    substation_id: int | None = None,
) -> DailySummary:
    substation_id = _effective_substation(principal, substation_id)
    v, c = daily_summary_view.c, daily_category_view.c

    summary_stmt = select(daily_summary_view).order_by(v.log_date.desc(), v.substation_name)
    category_stmt = select(daily_category_view).order_by(
        c.log_date.desc(), c.entry_count.desc(), c.category_name
    )
    if substation_id is not None:
        summary_stmt = summary_stmt.where(v.substation_id == substation_id)
        category_stmt = category_stmt.where(c.substation_id == substation_id)
    if day is not None:
        summary_stmt = summary_stmt.where(v.log_date == day)
        category_stmt = category_stmt.where(c.log_date == day)

    rows = [
        DailySubstationRow(
            substation_id=r.substation_id,
            substation_name=r.substation_name,
            log_date=r.log_date,
            total_entries=r.total_entries or 0,
            normal_count=r.normal_count or 0,
            warning_count=r.warning_count or 0,
            critical_count=r.critical_count or 0,
        )
        for r in (await session.execute(summary_stmt)).all()
    ]
    categories = [
        CategoryRow(
            substation_id=r.substation_id,
            log_date=r.log_date,
            category_name=r.category_name,
            entry_count=r.entry_count or 0,
        )
        for r in (await session.execute(category_stmt)).all()
    ]
    return DailySummary(day=day, totals=_totals(rows), summary=rows, categories=categories)


def _severity_sum(severity: Severity):
    return func.sum(case((LogEntry.severity == severity, 1), else_=0)).cast(Integer)


async def monthly_summary(
    session: AsyncSession,
    principal: Principal,
    year: int | None = None,
    month: int | None = None,
    substation_id: int | None = None,
) -> MonthlySummary:
    substation_id = _effective_substation(principal, substation_id)
    log_date = func.date(LogEntry.entry_datetime)

    filters = []
    if substation_id is not None:
        filters.append(LogEntry.substation_id == substation_id)
    if year is not None and month is not None:
        filters.append(extract("year", LogEntry.entry_datetime) == year)
        filters.append(extract("month", LogEntry.entry_datetime) == month)

    stmt = (
        select(
            LogEntry.substation_id,
            Substation.substation_name,
            func.count(LogEntry.id).label("total_entries"),
            _severity_sum(Severity.Normal).label("normal_count"),
            _severity_sum(Severity.Warning).label("warning_count"),
            _severity_sum(Severity.Critical).label("critical_count"),
            func.count(log_date.distinct()).label("active_days"),
        )
        .join(Substation, Substation.id == LogEntry.substation_id)
        .where(*filters)
        .group_by(LogEntry.substation_id, Substation.substation_name)
        .order_by(Substation.substation_name)
    )
    rows = [
        MonthlySubstationRow(
            substation_id=r.substation_id,
            substation_name=r.substation_name,
            total_entries=r.total_entries or 0,
            normal_count=r.normal_count or 0,
            warning_count=r.warning_count or 0,
            critical_count=r.critical_count or 0,
            active_days=r.active_days or 0,
        )
        for r in (await session.execute(stmt)).all()
    ]

    # Distinct days across all substations in scope
    days_stmt = select(func.count(log_date.distinct())).select_from(LogEntry).where(*filters)
    active_days = (await session.execute(days_stmt)).scalar_one() or 0

    logger.debug("Monthly summary %s-%s: %d substation rows", year, month, len(rows))
    return MonthlySummary(
        year=year, month=month, totals=_totals(rows), active_days=active_days, summary=rows
    )
