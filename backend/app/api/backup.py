from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import require_admin
from core.errors import ConflictError, DependencyFailure
from core.security import AdminPrincipal
from models import BackupStatus, BackupType, get_session
from services.backup_manager import BackupManager, backup_history, get_backup_manager

router = APIRouter(prefix="/api/backup", tags=["backup"])


@router.post("/manual")
async def manual_backup(
    admin: AdminPrincipal = Depends(require_admin),
    manager: BackupManager = Depends(get_backup_manager),
):
    record = await manager.run(BackupType.manual, created_by=admin.id)
    if record is None:
        raise ConflictError("A backup is already in progress")
    if record.status == BackupStatus.failed:
        raise DependencyFailure(f"Backup failed: {record.error_message}")
    return {
        "success": True,
        "message": "Backup created successfully",
        "filename": record.backup_filename,
        "size_mb": f"{record.backup_size_mb:.2f}",
    }


@router.get("/history")
async def get_backup_history(
    admin: AdminPrincipal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    return {"success": True, "backups": await backup_history(session)}


@router.get("/download/{filename}")
async def download_backup(
    filename: str,
    admin: AdminPrincipal = Depends(require_admin),
    manager: BackupManager = Depends(get_backup_manager),
):
    path = manager.resolve_file(filename)
    return FileResponse(path, media_type="application/sql", filename=filename)
