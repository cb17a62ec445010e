from models.base import Base, async_session, engine, get_session, get_session_factory, utcnow
from models.substation import Substation
from models.user import User, UserRole
from models.technician import Technician
from models.reference import EquipmentType, EventCategory
from models.logbook import (
    ELECTRICAL_FIELDS,
    Comment,
    ElectricalParameters,
    LogEntry,
    LogTechnician,
    PostedByType,
    Severity,
)
from models.backup import BackupRecord, BackupStatus, BackupType
from models.email_config import EmailConfig
from models.reports import UNCATEGORIZED, daily_category_view, daily_summary_view

__all__ = [
    "Base",
    "async_session",
    "engine",
    "get_session",
    "get_session_factory",
    "utcnow",
    "Substation",
    "User",
    "UserRole",
    "Technician",
    "EquipmentType",
    "EventCategory",
    "ELECTRICAL_FIELDS",
    "Comment",
    "ElectricalParameters",
    "LogEntry",
    "LogTechnician",
    "PostedByType",
    "Severity",
    "BackupRecord",
    "BackupStatus",
    "BackupType",
    "EmailConfig",
    "UNCATEGORIZED",
    "daily_category_view",
    "daily_summary_view",
]
