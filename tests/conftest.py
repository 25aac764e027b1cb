"""
Pytest configuration and shared fixtures

Environment variables are set before anything from study_drive is imported:
the settings object and the application engine are built at import time.
"""
import os
import tempfile
from datetime import datetime, timedelta

TEST_ROOT = tempfile.mkdtemp(prefix="study-drive-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_ROOT}/app.db"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["LOCAL_STORAGE_DIR"] = os.path.join(TEST_ROOT, "blobs")
os.environ["LOG_LEVEL"] = "DEBUG"

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from study_drive.core.database import build_engine
from study_drive.models import Base
from study_drive.services import (
    AccessValidator,
    ActivityLogger,
    Actor,
    DriveService,
    HierarchyManager,
    LocalBlobStore,
    QuotaAccountant,
)

STORAGE_LIMIT = 10_000
BANDWIDTH_LIMIT = 10_000
MAX_FILE_SIZE = 5_000


class FakeClock:
    """Controllable naive-UTC clock"""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'drive.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine):
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as session:
        yield session


@pytest.fixture
def store(tmp_path):
    store = LocalBlobStore(tmp_path / "blobs")
    store.ensure_ready()
    return store


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def quota(clock):
    return QuotaAccountant(reset_period=timedelta(hours=24), now=clock)


@pytest.fixture
def activity():
    return ActivityLogger()


@pytest.fixture
def access():
    return AccessValidator(hide_foreign=True)


@pytest.fixture
def drives(clock):
    return DriveService(
        storage_limit=STORAGE_LIMIT,
        bandwidth_limit=BANDWIDTH_LIMIT,
        reset_period=timedelta(hours=24),
        now=clock
    )


@pytest.fixture
def hierarchy(store, quota, activity, access, clock):
    return HierarchyManager(
        store, quota, activity, access,
        max_file_size=MAX_FILE_SIZE,
        trash_retention_days=30,
        now=clock
    )


@pytest.fixture
def actor():
    return Actor(id="user-1", email="one@example.com", name="User One")


@pytest.fixture
def other_actor():
    return Actor(id="user-2", email="two@example.com", name="User Two")


@pytest_asyncio.fixture
async def drive(session, drives, actor):
    return await drives.get_or_create_drive(session, actor)


@pytest_asyncio.fixture
async def other_drive(session, drives, other_actor):
    return await drives.get_or_create_drive(session, other_actor)


class UnreachableMinioClient:
    """Minio client stand-in whose every call fails like a dead server"""

    def __init__(self, error: Exception):
        self.error = error

    def __getattr__(self, name):
        def call(*args, **kwargs):
            raise self.error
        return call
