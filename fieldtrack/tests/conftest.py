"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from fieldtrack.app.main import app
from fieldtrack.app.db.session import Base
from fieldtrack.app.core.dependencies import get_engine
from fieldtrack.app.core.redis_client import get_redis
import fieldtrack.app.core.redis_client as redis_client_module
from fieldtrack.app.domain.tracking.engine import TrackingEngine
from fieldtrack.app.domain.tracking.thresholds import TrackingThresholds
from fieldtrack.tests.helpers import FakeClock

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

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

    async def ping(self):
        return True

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        return True

    async def delete(self, key):
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def flushdb(self):
        self.store = {}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def thresholds():
    return TrackingThresholds()


@pytest.fixture
def tracking_engine(clock, thresholds):
    """Engine with no collaborators beyond the clock."""
    return TrackingEngine(clock=clock, thresholds=thresholds)


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture
async def setup_database():
    """Create tables before a test and drop them after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield TestingSessionLocal

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db_session(setup_database):
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
async def client(tracking_engine, mock_redis):
    """Async client for testing, wired to the test engine and mock Redis."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = mock_redis

    async def override_get_engine():
        return tracking_engine

    async def override_get_redis():
        return mock_redis

    app.dependency_overrides[get_engine] = override_get_engine
    app.dependency_overrides[get_redis] = override_get_redis

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client
