"""Report export: the entries shown on screen rendered as XLSX (openpyxl) or PDF (xhtml2pdf)."""

from __future__ import annotations

import html
import io
import logging
import time
from datetime import datetime

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from pydantic import BaseModel, ConfigDict
from xhtml2pdf import pisa

from core.errors import DependencyFailure
from models import utcnow

logger = logging.getLogger("logbook.exporter")

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PDF_MEDIA_TYPE = "application/pdf"
DEFAULT_TITLE = "Substation Logbook Report"

# (header, field, width)
COLUMNS = (
    ("Date/Time", "entry_datetime", 20),
    ("Substation", "substation_name", 25),
    ("Severity", "severity", 12),
    ("Category", "event_category", 20),
    ("Equipment", "equipment", 20),
    ("Technicians", "technicians", 30),
    ("Message", "message", 50),
    ("Voltage (kV)", "voltage_kv", 12),
    ("Current (A)", "current_a", 12),
    ("Power (MW)", "power_mw", 12),
)

HEADER_FILL = PatternFill(fill_type="solid", fgColor="FF4472C4")
HEADER_FONT = Font(bold=True, color="FFFFFFFF")


class ExportEntry(BaseModel):
    """One entry as the client received it from search; unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore")

    entry_datetime: datetime | None = None
    substation_name: str = ""
    severity: str = ""
    event_category: str | None = None
    equipment: str | None = None
    technicians: str | None = None
    message: str = ""
    voltage_kv: float | None = None
    current_a: float | None = None
    power_mw: float | None = None


class ExportRequest(BaseModel):
    entries: list[ExportEntry] = []
    report_title: str | None = None


def format_display_datetime(value: datetime | None) -> str:
    return value.strftime("%d/%m/%Y %H:%M") if value else ""


def export_filename(extension: str) -> str:
    return f"logbook-report-{int(time.time() * 1000)}.{extension}"


def _cell_value(entry: ExportEntry, field: str):
    value = getattr(entry, field)
    if field == "entry_datetime":
        return format_display_datetime(value)
    return "" if value is None else value


def build_workbook(entries: list[ExportEntry]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Logbook Entries"

    ws.append([header for header, _, _ in COLUMNS])
    for idx, (_, _, width) in enumerate(COLUMNS, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = width
    for cell in ws[1]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL

    for entry in entries:
        ws.append([_cell_value(entry, field) for _, field, _ in COLUMNS])

    message_col = get_column_letter(
        next(i for i, (_, f, _) in enumerate(COLUMNS, start=1) if f == "message")
    )
    for cell in ws[message_col][1:]:
        cell.alignment = Alignment(wrap_text=True, vertical="top")

    buf = io.BytesIO()
    wb.save(buf)
    logger.info("Excel export: %d entries", len(entries))
    return buf.getvalue()


def _entry_html(index: int, entry: ExportEntry) -> str:
    esc = html.escape
    lines = [
        f"<h3>Entry #{index}</h3>",
        f"<p><b>Substation:</b> {esc(entry.substation_name)}<br>",
        f"<b>Date/Time:</b> {format_display_datetime(entry.entry_datetime)}<br>",
        f"<b>Severity:</b> {esc(entry.severity)}",
    ]
    for label, value in (
        ("Category", entry.event_category),
        ("Equipment", entry.equipment),
        ("Technicians", entry.technicians),
    ):
        if value:
            lines.append(f"<br><b>{label}:</b> {esc(value)}")
    lines.append("</p>")
    lines.append("<p><b>Message:</b></p>")
    lines.append(f'<p class="message">{esc(entry.message).replace(chr(10), "<br>")}</p>')
    return "\n".join(lines)


def render_report_html(entries: list[ExportEntry], title: str | None = None) -> str:
    title = html.escape(title or DEFAULT_TITLE)
    body = "\n".join(_entry_html(i, e) for i, e in enumerate(entries, start=1))
    return f"""<html>
<head>
<style>
  @page {{ size: a4 portrait; margin: 1.5cm; }}
  body {{ font-family: Helvetica; font-size: 10pt; }}
  h1 {{ text-align: center; font-size: 18pt; margin-bottom: 0; }}
  .generated {{ text-align: center; font-size: 9pt; color: #555; }}
  h3 {{ color: #0000ff; text-decoration: underline; font-size: 12pt; margin-top: 14pt; }}
  .message {{ font-size: 9pt; margin-left: 20pt; }}
</style>
</head>
<body>
<h1>{title}</h1>
<p class="generated">Generated on: {format_display_datetime(utcnow())}</p>
{body}
</body>
</html>"""


def build_pdf(entries: list[ExportEntry], title: str | None = None) -> bytes:
    out = io.BytesIO()
    result = pisa.CreatePDF(io.StringIO(render_report_html(entries, title)), dest=out)
    if result.err:
        logger.error("PDF export failed: %d rendering errors", result.err)
        raise DependencyFailure("Failed to export PDF")
    logger.info("PDF export: %d entries", len(entries))
    return out.getvalue()
