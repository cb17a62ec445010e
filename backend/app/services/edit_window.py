"""24-hour edit/delete window, measured from the system-assigned created_at."""

from datetime import datetime, timedelta

from config import settings
from models.base import utcnow


def can_edit(created_at: datetime, now: datetime | None = None) -> bool:
    now = now or utcnow()
    return now - created_at <= timedelta(hours=settings.EDIT_WINDOW_HOURS)
