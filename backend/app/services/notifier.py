"""Email notifications for logbook entries.

The SMTP configuration is an immutable SmtpSettings snapshot held by Mailer.
Saving a new configuration swaps the snapshot in one assignment; every send
reads the snapshot once and opens its own connection from it, so a send in
flight never sees a half-updated configuration.
"""

from __future__ import annotations

import asyncio
import html
import logging
import smtplib
from email.mime.text import MIMEText
from email.utils import formataddr

from fastapi import Request
from pydantic import BaseModel, ConfigDict
from sqlalchemy import select, true
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from models import EmailConfig, Severity
from services.entry_query import EntryView

logger = logging.getLogger("logbook.notifier")

SEVERITY_COLORS = {
    Severity.Critical: "#f8d7da",
    Severity.Warning: "#fff3cd",
    Severity.Normal: "#d1ecf1",
}

PARAMETER_LABELS = (
    ("voltage_kv", "Voltage", "kV"),
    ("current_a", "Current", "A"),
    ("power_mw", "Power", "MW"),
    ("frequency_hz", "Frequency", "Hz"),
    ("power_factor", "Power Factor", ""),
    ("energy_mwh", "Energy", "MWh"),
)


class SmtpSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    host: str
    port: int = 587
    secure: bool = False
    user: str = ""
    password: str = ""
    from_email: str = ""
    from_name: str = "Substation Logbook"
    timeout: float = 15.0

    @classmethod
    def from_env(cls) -> SmtpSettings:
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            secure=settings.SMTP_SECURE,
            user=settings.SMTP_USER,
            password=settings.SMTP_PASSWORD,
            from_email=settings.EMAIL_FROM or settings.SMTP_USER,
            from_name=settings.EMAIL_FROM_NAME,
            timeout=settings.SMTP_TIMEOUT,
        )

    @classmethod
    def from_row(cls, row: EmailConfig) -> SmtpSettings:
        return cls(
            host=row.smtp_host,
            port=row.smtp_port,
            secure=row.smtp_secure,
            user=row.smtp_user or "",
            password=row.smtp_password or "",
            from_email=row.from_email or row.smtp_user or "",
            from_name=row.from_name or settings.EMAIL_FROM_NAME,
            timeout=settings.SMTP_TIMEOUT,
        )


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def format_display_datetime(value) -> str:
    return value.strftime("%d/%m/%Y %H:%M") if value else ""


def render_entry_email(entry: EntryView, app_url: str) -> tuple[str, str]:
    """Return (subject, html body) for an entry notification."""
    subject = f"[{entry.severity.value}] New Logbook Entry - {entry.substation_name}"
    esc = html.escape

    rows = [
        ("Substation", entry.substation_name),
        ("Date &amp; Time", format_display_datetime(entry.entry_datetime)),
        ("Category", entry.event_category or "N/A"),
        ("Equipment", entry.equipment or "N/A"),
        ("Technicians", entry.technicians or "N/A"),
    ]
    table = "".join(
        '<tr><td style="padding: 8px; border-bottom: 1px solid #ddd;">'
        f"<strong>{label}:</strong></td>"
        f'<td style="padding: 8px; border-bottom: 1px solid #ddd;">{esc(str(value))}</td></tr>'
        for label, value in rows
    )

    readings = [
        f"<li>{label}: {getattr(entry, field)}{(' ' + unit) if unit else ''}</li>"
        for field, label, unit in PARAMETER_LABELS
        if getattr(entry, field) is not None
    ]
    readings_block = (
        '<div style="margin: 20px 0;"><strong>Electrical Parameters:</strong>'
        f"<ul>{''.join(readings)}</ul></div>"
        if readings else ""
    )

    body = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #333; border-bottom: 3px solid #007bff; padding-bottom: 10px;">
    Substation Logbook Notification
  </h2>
  <div style="background-color: {SEVERITY_COLORS[entry.severity]}; padding: 15px; border-radius: 5px; margin: 20px 0;">
    <strong>Severity: {entry.severity.value}</strong>
  </div>
  <table style="width: 100%; border-collapse: collapse;">{table}</table>
  <div style="margin: 20px 0; padding: 15px; background-color: #f8f9fa; border-left: 4px solid #007bff;">
    <strong>Message:</strong><br>
    {esc(entry.message).replace(chr(10), "<br>")}
  </div>
  {readings_block}
  <div style="margin: 30px 0; text-align: center;">
    <a href="{esc(app_url)}" style="background-color: #007bff; color: white; padding: 12px 30px; text-decoration: none; border-radius: 5px; display: inline-block;">
      View in Logbook System
    </a>
  </div>
  <div style="margin-top: 30px; padding-top: 20px; border-top: 1px solid #ddd; font-size: 12px; color: #666; text-align: center;">
    <p>This is an automated notification from the Substation Logbook System.</p>
  </div>
</div>
"""
    return subject, body


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------

def _deliver(config: SmtpSettings, to: str, subject: str, body: str) -> None:
    msg = MIMEText(body, "html", "utf-8")
    msg["Subject"] = subject
    msg["From"] = formataddr((config.from_name, config.from_email))
    msg["To"] = to

    if config.secure:
        client = smtplib.SMTP_SSL(config.host, config.port, timeout=config.timeout)
    else:
        client = smtplib.SMTP(config.host, config.port, timeout=config.timeout)
    with client as s:
        if not config.secure:
            s.ehlo()
            if s.has_extn("starttls"):
                s.starttls()
                s.ehlo()
        if config.user:
            s.login(config.user, config.password)
        s.sendmail(config.from_email, [to], msg.as_string())


class Mailer:
    """Holder of the current SMTP snapshot. send_* never raise."""

    def __init__(self, config: SmtpSettings | None = None, app_url: str | None = None) -> None:
        self._config = config or SmtpSettings.from_env()
        self.app_url = app_url or settings.APP_URL

    @property
    def config(self) -> SmtpSettings:
        return self._config

    def configure(self, config: SmtpSettings) -> None:
        self._config = config
        logger.info("Mail transport reconfigured: %s:%d (secure=%s)", config.host, config.port, config.secure)

    async def send(self, to: str, subject: str, body: str) -> bool:
        config = self._config
        if not config.host or not config.from_email:
            logger.warning("Email not sent to %s: SMTP is not configured", to)
            return False
        try:
            await asyncio.to_thread(_deliver, config, to, subject, body)
        except Exception as exc:
            logger.error("Email sending to %s failed: %s", to, exc)
            return False
        logger.info("Email sent to %s: %s", to, subject)
        return True

    async def send_entry_notification(self, entry: EntryView, to: str) -> bool:
        try:
            subject, body = render_entry_email(entry, self.app_url)
        except Exception as exc:
            logger.error("Rendering notification for entry #%d failed: %s", entry.id, exc)
            return False
        return await self.send(to, subject, body)


async def load_mail_config(session_factory: async_sessionmaker[AsyncSession]) -> SmtpSettings:
    """Active email_config row, or the SMTP_* environment fallback."""
    try:
        async with session_factory() as session:
            result = await session.execute(
                select(EmailConfig)
                .where(EmailConfig.is_active == true())
                .order_by(EmailConfig.id.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
    except Exception as exc:
        logger.warning("Could not load email config from DB (table may not exist yet): %s", exc)
        row = None
    if row is None:
        logger.info("Using SMTP settings from environment")
        return SmtpSettings.from_env()
    logger.info("Using SMTP settings from email_config #%d", row.id)
    return SmtpSettings.from_row(row)


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer
