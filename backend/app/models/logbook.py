"""Logbook entries and their children: technician links, electrical readings, comments."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, utcnow


class Severity(str, enum.Enum):
    Normal = "Normal"
    Warning = "Warning"
    Critical = "Critical"


class PostedByType(str, enum.Enum):
    substation = "substation"
    engineer = "engineer"
    technician = "technician"  # admin posting on behalf of the shift crew


ELECTRICAL_FIELDS = (
    "voltage_kv",
    "current_a",
    "power_mw",
    "frequency_hz",
    "power_factor",
    "energy_mwh",
)


# ---------------------------------------------------------------------------
# LogEntry: one shift event at one substation
# ---------------------------------------------------------------------------

class LogEntry(Base):
    __tablename__ = "logbook_entries"

    __table_args__ = (
        Index("ix_logbook_entries_substation_datetime", "substation_id", "entry_datetime"),
        Index("ix_logbook_entries_severity", "severity"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    substation_id: Mapped[int] = mapped_column(
        ForeignKey("substations.id", ondelete="RESTRICT")
    )
    entry_datetime: Mapped[datetime] = mapped_column()        # operator-supplied
    event_category_id: Mapped[int | None] = mapped_column(
        ForeignKey("event_categories.id", ondelete="SET NULL"), default=None
    )
    equipment_id: Mapped[int | None] = mapped_column(
        ForeignKey("equipment_types.id", ondelete="SET NULL"), default=None
    )
    severity: Mapped[Severity] = mapped_column(default=Severity.Normal)
    message: Mapped[str] = mapped_column(Text)
    attachment_path: Mapped[str | None] = mapped_column(String(255), default=None)

    posted_by_type: Mapped[PostedByType]
    posted_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), default=None
    )

    send_email_notification: Mapped[bool] = mapped_column(default=False)
    email_sent: Mapped[bool] = mapped_column(default=False)
    email_sent_at: Mapped[datetime | None] = mapped_column(default=None)

    is_edited: Mapped[bool] = mapped_column(default=False)
    last_edited_at: Mapped[datetime | None] = mapped_column(default=None)
    # System-assigned, never updated: the edit window is measured from here
    created_at: Mapped[datetime] = mapped_column(default=utcnow, server_default=func.now())

    # Relationships (children are removed by ON DELETE CASCADE)
    substation = relationship("Substation")
    category = relationship("EventCategory")
    equipment = relationship("EquipmentType")
    technician_links: Mapped[list[LogTechnician]] = relationship(
        back_populates="log", cascade="all, delete-orphan", passive_deletes=True,
    )
    parameters: Mapped[ElectricalParameters | None] = relationship(
        back_populates="log", cascade="all, delete-orphan", passive_deletes=True,
    )
    comments: Mapped[list[Comment]] = relationship(
        back_populates="log", cascade="all, delete-orphan", passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<LogEntry #{self.id} {self.severity.value} substation={self.substation_id}>"


# ---------------------------------------------------------------------------
# LogTechnician: many-to-many link between entries and technicians
# ---------------------------------------------------------------------------

class LogTechnician(Base):
    __tablename__ = "log_technicians"

    log_id: Mapped[int] = mapped_column(
        ForeignKey("logbook_entries.id", ondelete="CASCADE"), primary_key=True
    )
    technician_id: Mapped[int] = mapped_column(
        ForeignKey("technicians.id", ondelete="RESTRICT"), primary_key=True
    )

    log: Mapped[LogEntry] = relationship(back_populates="technician_links")
    technician = relationship("Technician")


# ---------------------------------------------------------------------------
# ElectricalParameters: readings attached to an entry (1:1)
# ---------------------------------------------------------------------------

class ElectricalParameters(Base):
    __tablename__ = "electrical_parameters"

    id: Mapped[int] = mapped_column(primary_key=True)
    log_id: Mapped[int] = mapped_column(
        ForeignKey("logbook_entries.id", ondelete="CASCADE"), unique=True
    )
    voltage_kv: Mapped[float | None] = mapped_column(default=None)
    current_a: Mapped[float | None] = mapped_column(default=None)
    power_mw: Mapped[float | None] = mapped_column(default=None)
    frequency_hz: Mapped[float | None] = mapped_column(default=None)
    power_factor: Mapped[float | None] = mapped_column(default=None)
    energy_mwh: Mapped[float | None] = mapped_column(default=None)
    recorded_at: Mapped[datetime] = mapped_column(default=utcnow, server_default=func.now())

    log: Mapped[LogEntry] = relationship(back_populates="parameters")

    def __repr__(self) -> str:
        return f"<ElectricalParameters log={self.log_id} {self.voltage_kv}kV>"


# ---------------------------------------------------------------------------
# Comment: engineer remarks on an entry (soft delete)
# ---------------------------------------------------------------------------

class Comment(Base):
    __tablename__ = "comments"

    __table_args__ = (
        Index("ix_comments_log_created", "log_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    log_id: Mapped[int] = mapped_column(
        ForeignKey("logbook_entries.id", ondelete="CASCADE")
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    comment_text: Mapped[str] = mapped_column(Text)
    is_edited: Mapped[bool] = mapped_column(default=False)
    is_deleted: Mapped[bool] = mapped_column(default=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    log: Mapped[LogEntry] = relationship(back_populates="comments")
    author = relationship("User")
