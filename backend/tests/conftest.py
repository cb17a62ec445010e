import os
import tempfile
from pathlib import Path
from types import SimpleNamespace

_TMP = Path(tempfile.mkdtemp(prefix="logbook-tests-"))

# Settings are read at import time; point everything at throwaway locations first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["ENVIRONMENT"] = "test"
os.environ["BACKUP_ENABLED"] = "false"
os.environ["UPLOAD_DIR"] = str(_TMP / "uploads")
os.environ["BACKUP_DIR"] = str(_TMP / "backups")
os.environ["APP_URL"] = "http://logbook.test"

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from core.security import (  # noqa: E402
    AdminPrincipal,
    EngineerPrincipal,
    SubstationPrincipal,
    hash_password,
    issue_token,
)
from main import app  # noqa: E402
from models import (  # noqa: E402
    Base,
    EquipmentType,
    EventCategory,
    Substation,
    Technician,
    User,
    UserRole,
    get_session,
    get_session_factory,
)
from services.backup_manager import BackupManager, get_backup_manager  # noqa: E402
from services.notifier import get_mailer  # noqa: E402

PASSWORD = "s3cret-pass"


# ---------------------------------------------------------------------------
# Doubles
# ---------------------------------------------------------------------------

class RecordingMailer:
    """Stands in for services.notifier.Mailer; records instead of sending."""

    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.sent: list[tuple] = []
        self.config = None

    def configure(self, config):
        self.config = config

    async def send_entry_notification(self, entry, to):
        self.sent.append((entry, to))
        return self.succeed


class FakeLock:
    def __init__(self, redis, name):
        self.redis = redis
        self.name = name

    async def acquire(self, blocking=True):
        if self.name in self.redis.held:
            return False
        self.redis.held.add(self.name)
        return True

    async def release(self):
        self.redis.held.discard(self.name)


class FakeRedis:
    def __init__(self):
        self.held: set[str] = set()

    def lock(self, name, timeout=None):
        return FakeLock(self, name)


class StubBackupManager(BackupManager):
    """pg_dump replaced by writing a small file (or raising)."""

    fail_with: str | None = None

    async def _dump(self, path):
        if self.fail_with:
            raise RuntimeError(self.fail_with)
        path.write_text("-- dump\n")


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
async def seed(session_factory):
    """Two substations, an admin, one engineer per substation, technicians and lookups."""
    async with session_factory() as s:
        sub_a = Substation(
            substation_code="SS-A", substation_name="Alpha 220kV", password_hash=hash_password(PASSWORD)
        )
        sub_b = Substation(
            substation_code="SS-B", substation_name="Bravo 132kV", password_hash=hash_password(PASSWORD)
        )
        s.add_all([sub_a, sub_b])
        await s.flush()

        admin = User(
            username="admin", password_hash=hash_password(PASSWORD), full_name="Admin User",
            email="admin@grid.test", role=UserRole.admin,
        )
        eng_a = User(
            username="eng_a", password_hash=hash_password(PASSWORD), full_name="Asha Engineer",
            email="eng.a@grid.test", role=UserRole.engineer, substation_id=sub_a.id,
        )
        eng_b = User(
            username="eng_b", password_hash=hash_password(PASSWORD), full_name="Bala Engineer",
            email="eng.b@grid.test", role=UserRole.engineer, substation_id=sub_b.id,
        )
        tech_1 = Technician(substation_id=sub_a.id, name="Ravi Kumar", employee_id="T-001")
        tech_2 = Technician(substation_id=sub_a.id, name="Anil Singh", employee_id="T-002")
        tech_b = Technician(substation_id=sub_b.id, name="Mohan Das", employee_id="T-101")
        category = EventCategory(category_name="Breaker Trip")
        equipment = EquipmentType(equipment_name="Power Transformer")
        s.add_all([admin, eng_a, eng_b, tech_1, tech_2, tech_b, category, equipment])
        await s.commit()

        return SimpleNamespace(
            sub_a=sub_a.id, sub_b=sub_b.id,
            admin=admin.id, eng_a=eng_a.id, eng_b=eng_b.id,
            tech_1=tech_1.id, tech_2=tech_2.id, tech_b=tech_b.id,
            category=category.id, equipment=equipment.id,
        )


# ---------------------------------------------------------------------------
# Principals and tokens
# ---------------------------------------------------------------------------

@pytest.fixture
def principals(seed):
    return SimpleNamespace(
        admin=AdminPrincipal(id=seed.admin, username="admin"),
        eng_a=EngineerPrincipal(id=seed.eng_a, username="eng_a", substation_id=seed.sub_a),
        eng_b=EngineerPrincipal(id=seed.eng_b, username="eng_b", substation_id=seed.sub_b),
        station_a=SubstationPrincipal(id=seed.sub_a, substation_code="SS-A", substation_id=seed.sub_a),
    )


@pytest.fixture
def auth(principals):
    """auth.<name> -> Authorization header for that principal."""
    return SimpleNamespace(**{
        name: {"Authorization": f"Bearer {issue_token(p)}"}
        for name, p in vars(principals).items()
    })


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def backup_manager(session_factory, tmp_path):
    return StubBackupManager(session_factory, FakeRedis(), backup_dir=str(tmp_path / "backups"))


@pytest.fixture
async def client(session_factory, mailer, backup_manager):
    async def _get_session():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = _get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_backup_manager] = lambda: backup_manager

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
