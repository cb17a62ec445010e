import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select, true, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import require_admin
from core.errors import ValidationError
from core.security import AdminPrincipal
from models import EmailConfig, get_session
from services.notifier import Mailer, SmtpSettings, get_mailer

logger = logging.getLogger("logbook.email_config")

router = APIRouter(prefix="/api/email-config", tags=["email-config"])


# --- Schemas ---

class EmailConfigIn(BaseModel):
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_secure: bool = False
    smtp_user: str = ""
    smtp_password: str = ""
    from_email: str = ""
    from_name: str = ""


class EmailConfigOut(BaseModel):
    smtp_host: str
    smtp_port: int
    smtp_secure: bool
    smtp_user: str
    from_email: str
    from_name: str
    is_active: bool

    model_config = {"from_attributes": True}


# --- Endpoints ---

@router.get("")
async def get_email_config(
    admin: AdminPrincipal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    result = await session.execute(
        select(EmailConfig)
        .where(EmailConfig.is_active == true())
        .order_by(EmailConfig.id.desc())
        .limit(1)
    )
    row = result.scalar_one_or_none()
    # The password is never sent back
    return {"success": True, "config": EmailConfigOut.model_validate(row) if row else None}


@router.post("")
async def save_email_config(
    data: EmailConfigIn,
    admin: AdminPrincipal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    mailer: Mailer = Depends(get_mailer),
):
    if not data.smtp_host.strip():
        raise ValidationError("SMTP host is required")

    await session.execute(update(EmailConfig).values(is_active=False))
    row = EmailConfig(**data.model_dump(), is_active=True, updated_by=admin.id)
    session.add(row)
    await session.commit()

    mailer.configure(SmtpSettings.from_row(row))
    logger.info("Email configuration #%d saved by admin #%d", row.id, admin.id)
    return {"success": True, "message": "Email configuration updated successfully"}
