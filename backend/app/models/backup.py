"""Backup audit log: one row per dump attempt, pruned by retention."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, utcnow


class BackupType(str, enum.Enum):
    manual = "manual"
    automatic = "automatic"


class BackupStatus(str, enum.Enum):
    success = "success"
    failed = "failed"


class BackupRecord(Base):
    __tablename__ = "backup_history"

    __table_args__ = (
        Index("ix_backup_history_created", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    backup_filename: Mapped[str] = mapped_column(String(255))
    backup_path: Mapped[str] = mapped_column(String(500), default="")
    backup_size_mb: Mapped[float | None] = mapped_column(default=None)
    backup_type: Mapped[BackupType]
    status: Mapped[BackupStatus]
    error_message: Mapped[str | None] = mapped_column(Text, default=None)
    created_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), default=None
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, server_default=func.now())

    def __repr__(self) -> str:
        return f"<BackupRecord {self.backup_type.value} {self.status.value} {self.backup_filename}>"
