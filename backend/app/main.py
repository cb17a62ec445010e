import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.staticfiles import StaticFiles
from redis.asyncio import Redis

from config import settings
from core.errors import register_error_handlers
from models import async_session, engine
from api.auth import router as auth_router
from api.substations import router as substations_router
from api.users import router as users_router
from api.technicians import router as technicians_router
from api.reference import router as reference_router
from api.logbook import router as logbook_router
from api.comments import router as comments_router
from api.reports import router as reports_router
from api.email_config import router as email_config_router
from api.backup import router as backup_router
from services.attachments import upload_dir
from services.backup_manager import BackupManager, BackupScheduler
from services.notifier import Mailer, load_mail_config

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("logbook.main")

VERSION = "2.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Substation Logbook starting... ENVIRONMENT=%s DEBUG=%s", settings.ENVIRONMENT, settings.DEBUG)

    # Redis (backup lock)
    redis = Redis.from_url(settings.REDIS_URL, decode_responses=False)
    app.state.redis = redis
    logger.info("Redis connected: %s", settings.REDIS_URL)

    # Mail transport: active email_config row, else SMTP_* settings
    app.state.mailer = Mailer(await load_mail_config(async_session))

    # Backups
    backup_manager = BackupManager(async_session, redis)
    app.state.backup_manager = backup_manager
    scheduler = None
    scheduler_task = None
    if settings.BACKUP_ENABLED:
        scheduler = BackupScheduler(backup_manager)
        scheduler_task = asyncio.create_task(scheduler.start())
    else:
        logger.info("Automatic backups DISABLED (BACKUP_ENABLED=false)")

    yield

    # Shutdown
    logger.info("Substation Logbook shutting down...")
    if scheduler:
        await scheduler.stop()
    if scheduler_task:
        scheduler_task.cancel()
        try:
            await scheduler_task
        except asyncio.CancelledError:
            pass

    await redis.close()
    await engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Substation Logbook API",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(GZipMiddleware, minimum_size=1024)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(auth_router)
app.include_router(substations_router)
app.include_router(users_router)
app.include_router(technicians_router)
app.include_router(reference_router)
app.include_router(logbook_router)
app.include_router(comments_router)
app.include_router(reports_router)
app.include_router(email_config_router)
app.include_router(backup_router)

# Attachments are served by their generated names
app.mount("/uploads", StaticFiles(directory=upload_dir()), name="uploads")


@app.get("/health")
async def health():
    return {"status": "ok", "version": VERSION, "environment": settings.ENVIRONMENT}
