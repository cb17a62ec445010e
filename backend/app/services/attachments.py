"""Attachment files on local disk (UPLOAD_DIR). Removal is best-effort."""

from __future__ import annotations

import logging
import random
import time
from pathlib import Path

from starlette.datastructures import UploadFile

from config import settings
from core.errors import ValidationError

logger = logging.getLogger("logbook.attachments")


def upload_dir() -> Path:
    path = Path(settings.UPLOAD_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


def attachment_path(name: str) -> Path:
    # Stored names are generated by us; never follow a path component from outside
    return upload_dir() / Path(name).name


async def save_attachment(upload: UploadFile) -> str:
    if upload.content_type not in settings.allowed_file_types:
        raise ValidationError("Invalid file type. Allowed: JPG, PNG, PDF, DOC, XLS")

    data = await upload.read(settings.MAX_FILE_SIZE + 1)
    if len(data) > settings.MAX_FILE_SIZE:
        raise ValidationError(
            f"File too large (max {settings.MAX_FILE_SIZE // (1024 * 1024)} MB)"
        )

    suffix = Path(upload.filename or "").suffix.lower()
    name = f"attachment-{int(time.time() * 1000)}-{random.randint(0, 10**9)}{suffix}"
    attachment_path(name).write_bytes(data)
    logger.info("Attachment stored: %s (%d bytes)", name, len(data))
    return name


def remove_attachment(name: str | None) -> bool:
    if not name:
        return False
    path = attachment_path(name)
    try:
        path.unlink()
        logger.info("Attachment removed: %s", name)
        return True
    except OSError as exc:
        logger.warning("Failed to delete attachment file %s: %s", path, exc)
        return False
