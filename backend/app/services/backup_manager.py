"""Database backups: pg_dump to BACKUP_DIR, audit rows in backup_history, retention pruning.

At most one backup runs at a time across all workers: the run holds a
non-blocking Redis lock (``logbook:backup:lock``). The scheduled run fires on
the BACKUP_SCHEDULE cron expression.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from datetime import datetime, timedelta
from pathlib import Path

from croniter import croniter
from fastapi import Request
from redis.asyncio import Redis
from redis.exceptions import LockError, RedisError
from sqlalchemy import delete, select
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from core.errors import NotFound, ValidationError
from models import BackupRecord, BackupStatus, BackupType, User, utcnow

logger = logging.getLogger("logbook.backup")

LOCK_KEY = "logbook:backup:lock"
HISTORY_LIMIT = 50
FILENAME_RE = re.compile(r"^substation_logbook_(auto_)?backup_[0-9T\-]+\.sql$")


def backup_filename(backup_type: BackupType, now: datetime | None = None) -> str:
    stamp = (now or utcnow()).strftime("%Y-%m-%dT%H-%M-%S")
    prefix = "auto_backup" if backup_type == BackupType.automatic else "backup"
    return f"substation_logbook_{prefix}_{stamp}.sql"


def pg_dump_command(database_url: str, path: Path) -> tuple[list[str], dict[str, str]]:
    """argv and environment for pg_dump against an SQLAlchemy URL."""
    url = make_url(database_url)
    argv = [settings.PG_DUMP_PATH, "--no-owner", "-f", str(path)]
    if url.host:
        argv += ["-h", url.host]
    if url.port:
        argv += ["-p", str(url.port)]
    if url.username:
        argv += ["-U", url.username]
    argv.append(url.database or "")
    env = dict(os.environ)
    if url.password:
        env["PGPASSWORD"] = url.password
    return argv, env


class BackupManager:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        redis: Redis,
        *,
        backup_dir: str | None = None,
        retention_days: int | None = None,
        lock_timeout: int | None = None,
    ):
        self.session_factory = session_factory
        self.redis = redis
        self.backup_dir = Path(backup_dir or settings.BACKUP_DIR)
        self.retention_days = retention_days or settings.BACKUP_RETENTION_DAYS
        self.lock_timeout = lock_timeout or settings.BACKUP_LOCK_TIMEOUT
        self._local_lock = asyncio.Lock()

    async def run(
        self, backup_type: BackupType, created_by: int | None = None
    ) -> BackupRecord | None:
        """Run one backup. Returns None when another backup holds the lock."""
        lock = self.redis.lock(LOCK_KEY, timeout=self.lock_timeout)
        try:
            acquired = await lock.acquire(blocking=False)
        except RedisError as exc:
            # Redis down: single-flight within this process only
            logger.warning("Backup lock unavailable (%s), using in-process lock", exc)
            return await self._run_local(backup_type, created_by)
        if not acquired:
            logger.warning("Backup (%s) skipped: another backup is in progress", backup_type.value)
            return None
        try:
            record = await self._run_locked(backup_type, created_by)
        finally:
            try:
                await lock.release()
            except (LockError, RedisError) as exc:
                logger.warning("Backup lock release failed: %s", exc)
        return record

    async def _run_local(
        self, backup_type: BackupType, created_by: int | None
    ) -> BackupRecord | None:
        if self._local_lock.locked():
            logger.warning("Backup (%s) skipped: another backup is in progress", backup_type.value)
            return None
        async with self._local_lock:
            return await self._run_locked(backup_type, created_by)

    async def _run_locked(self, backup_type: BackupType, created_by: int | None) -> BackupRecord:
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        filename = backup_filename(backup_type)
        path = self.backup_dir / filename

        try:
            await self._dump(path)
        except Exception as exc:
            logger.error("Backup %s failed: %s", filename, exc)
            path.unlink(missing_ok=True)
            return await self._record(
                filename, path, None, backup_type, BackupStatus.failed, created_by, str(exc)
            )

        size_mb = round(path.stat().st_size / (1024 * 1024), 2)
        record = await self._record(
            filename, path, size_mb, backup_type, BackupStatus.success, created_by
        )
        logger.info("Backup created: %s (%.2f MB, %s)", filename, size_mb, backup_type.value)
        await self.prune()
        return record

    async def _dump(self, path: Path) -> None:
        argv, env = pg_dump_command(settings.DATABASE_URL, path)
        proc = await asyncio.create_subprocess_exec(
            *argv,
            env=env,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise RuntimeError(
                stderr.decode(errors="replace").strip() or f"pg_dump exited with {proc.returncode}"
            )

    async def _record(
        self,
        filename: str,
        path: Path,
        size_mb: float | None,
        backup_type: BackupType,
        status: BackupStatus,
        created_by: int | None,
        error: str | None = None,
    ) -> BackupRecord:
        record = BackupRecord(
            backup_filename=filename,
            backup_path=str(path),
            backup_size_mb=size_mb,
            backup_type=backup_type,
            status=status,
            error_message=error,
            created_by=created_by,
        )
        async with self.session_factory() as session:
            session.add(record)
            await session.commit()
            await session.refresh(record)
        return record

    async def prune(self) -> int:
        """Drop records (and their files) older than the retention period."""
        cutoff = utcnow() - timedelta(days=self.retention_days)
        async with self.session_factory() as session:
            result = await session.execute(
                select(BackupRecord.id, BackupRecord.backup_path).where(BackupRecord.created_at < cutoff)
            )
            expired = result.all()
            if not expired:
                return 0
            for _, backup_path in expired:
                try:
                    Path(backup_path).unlink(missing_ok=True)
                except OSError as exc:
                    logger.warning("Failed to delete old backup file %s: %s", backup_path, exc)
            await session.execute(
                delete(BackupRecord).where(BackupRecord.id.in_([rid for rid, _ in expired]))
            )
            await session.commit()
        logger.info("Backup retention: pruned %d records older than %d days", len(expired), self.retention_days)
        return len(expired)

    def resolve_file(self, filename: str) -> Path:
        if not FILENAME_RE.match(filename):
            raise ValidationError("Invalid backup filename")
        path = self.backup_dir / filename
        if not path.is_file():
            raise NotFound("Backup file not found")
        return path


async def backup_history(session: AsyncSession, limit: int = HISTORY_LIMIT) -> list[dict]:
    result = await session.execute(
        select(BackupRecord, User.full_name)
        .outerjoin(User, User.id == BackupRecord.created_by)
        .order_by(BackupRecord.created_at.desc(), BackupRecord.id.desc())
        .limit(limit)
    )
    return [
        {
            "id": rec.id,
            "backup_filename": rec.backup_filename,
            "backup_size_mb": rec.backup_size_mb,
            "backup_type": rec.backup_type.value,
            "status": rec.status.value,
            "error_message": rec.error_message,
            "created_by": rec.created_by,
            "created_by_name": name,
            "created_at": rec.created_at,
        }
        for rec, name in result.all()
    ]


class BackupScheduler:
    """Background task: fires an automatic backup on each BACKUP_SCHEDULE tick."""

    def __init__(self, manager: BackupManager, schedule: str | None = None):
        self.manager = manager
        self.schedule = schedule or settings.BACKUP_SCHEDULE
        if not croniter.is_valid(self.schedule):
            raise ValueError(f"Invalid BACKUP_SCHEDULE: {self.schedule!r}")
        self._running = False

    def next_run(self, now: datetime | None = None) -> datetime:
        return croniter(self.schedule, now or datetime.now()).get_next(datetime)

    async def start(self) -> None:
        self._running = True
        logger.info("BackupScheduler started (schedule '%s')", self.schedule)
        while self._running:
            now = datetime.now()
            fire_at = self.next_run(now)
            await asyncio.sleep(max((fire_at - now).total_seconds(), 0))
            if not self._running:
                break
            try:
                await self.manager.run(BackupType.automatic)
            except Exception as exc:
                logger.error("Scheduled backup error: %s", exc, exc_info=True)

    async def stop(self) -> None:
        self._running = False
        logger.info("BackupScheduler stopped")


def get_backup_manager(request: Request) -> BackupManager:
    return request.app.state.backup_manager
