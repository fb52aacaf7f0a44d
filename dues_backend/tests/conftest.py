"""
Centralized Test Configuration.
"""

import pytest
from decimal import Decimal
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from dues_backend.app.main import app
from dues_backend.app.db.session import get_db, Base
from dues_backend.app.core.jwt import create_access_token
from dues_backend.app.core.redis_client import get_redis
import dues_backend.app.core.redis_client as redis_client_module
from dues_backend.app.models.daily_due import DailyDue
from dues_backend.app.models.enums import UserRole
from dues_backend.app.models.user import User

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def incr(self, key):
        if self._closed:
            return 0
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}

# Redis Fixture (Session Scope)
@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()

@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session.
    Global override is safer here than per-test override to avoid app state flux.
    """

    # Patch the global redis client used by the dues cache
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return redis_client_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client

@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # Each test runs in its own event loop; never reuse a connection across loops
    await engine.dispose()

@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


# --- Billing fixtures ---

@pytest.fixture
async def admin_user(db_session):
    admin = User(email="admin@test.com", username="admin", role=UserRole.ADMIN, is_active=True)
    db_session.add(admin)
    await db_session.commit()
    return admin

@pytest.fixture
async def client_user(db_session):
    """Client billed at 10 per domestic member, 15 per foreign member."""
    user = User(
        email="client1@test.com",
        username="client1",
        role=UserRole.CLIENT,
        is_active=True,
        price_per_member=Decimal("10"),
        foreign_member_rate=Decimal("15")
    )
    db_session.add(user)
    await db_session.commit()
    return user

def token_for(user: User) -> str:
    return create_access_token(data={"sub": user.username, "user_id": user.id, "role": user.role.value})

@pytest.fixture
def admin_headers(admin_user):
    return {"Authorization": f"Bearer {token_for(admin_user)}"}

@pytest.fixture
def client_headers(client_user):
    return {"Authorization": f"Bearer {token_for(client_user)}"}

@pytest.fixture
def seed_dues(db_session):
    """Write DailyDue rows directly: seed_dues(client_id, [(date, amount), ...])."""
    async def _seed(client_id, items):
        for day, amount in items:
            amount = Decimal(str(amount))
            db_session.add(DailyDue(
                client_id=client_id,
                date=day,
                gross_amount=amount,
                meeting_count=1,
                advance_adjustment=Decimal("0"),
                manual_adjustment=Decimal("0"),
                amount=amount
            ))
        await db_session.commit()
    return _seed
