import os
import tempfile

# Configuration de test avant tout import de l'application
_TMP_DIR = tempfile.mkdtemp(prefix="biovault-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TMP_DIR}/app.db")
os.environ.setdefault("BIOMETRIC_ENCRYPTION_KEY", "cle-de-test-biovault")
os.environ["FEATURE_EXTRACTOR"] = "grid-pool"
os.environ["TOKEN_SWEEP_INTERVAL_SECONDS"] = "0"

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import app.models  # noqa: F401  (enregistre les tables)
from app.config import settings
from app.database import get_db, init_db
from app.dependencies import build_services
from app.models.user import UserRole
from app.services.audit_service import AuditService
from app.services.occupancy_service import AttendanceStateMachine
from app.services.token_service import IdentityTokenService
from tests.factories import FakeClock, create_user, create_resource


@pytest.fixture
async def db_engine(tmp_path):
    """Base SQLite sur fichier: les sessions concurrentes se disputent un vrai verrou"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/core.db")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def audit():
    return AuditService()


@pytest.fixture
def state_machine(clock):
    return AttendanceStateMachine(clock=clock)


@pytest.fixture
def token_service(state_machine, audit, clock):
    return IdentityTokenService(state_machine, audit, ttl_seconds=300, clock=clock)


@pytest.fixture
async def student(db):
    return await create_user(db)


@pytest.fixture
async def operator(db):
    return await create_user(db, email="operateur@example.com", role=UserRole.OPERATOR)


@pytest.fixture
async def facility(db):
    return await create_resource(db)


@pytest.fixture
async def client(session_maker):
    """Client HTTP sur l'application, branché sur la base du test"""
    from app.main import app

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.state.services = build_services(settings)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
