"""
Pytest Configuration and Fixtures
Shared fixtures and configuration for all tests
"""

import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

# Settings are read at import time; configure before importing backend
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-soulchart-sharing-0123456789")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from backend.core.security import create_access_token
from backend.db.base import Base
from backend.db.models import Chart


# ============================================
# PYTEST CONFIGURATION
# ============================================

def pytest_collection_modifyitems(config, items):
    """Add markers based on test file path"""
    for item in items:
        if "/unit/" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


# ============================================
# DATABASE FIXTURES
# ============================================

@pytest_asyncio.fixture
async def engine(tmp_path):
    """
    File-backed SQLite engine, one per test
    A file (not :memory:) gives every session its own connection, so
    concurrent sessions really race on the same rows
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    """Session factory bound to the test engine"""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Test database session"""
    async with session_maker() as session:
        yield session


# ============================================
# DATA FIXTURES
# ============================================

@pytest.fixture
def sample_chart() -> dict:
    """Chart document as written by the analysis pipeline"""
    return {
        "ownerName": "Kim",
        "mbti": "INFJ",
        "bloodType": "A",
        "scores": {"passion": 70, "intuition": 92, "stability": 65},
    }


@pytest_asyncio.fixture
async def seed_chart(session_maker, sample_chart):
    """Store a chart for an owner; returns the owner ID"""

    async def _seed(owner_id: str = "u1", data: dict = None) -> str:
        async with session_maker() as session:
            session.add(Chart(owner_id=owner_id, data=data or sample_chart))
            await session.commit()
        return owner_id

    return _seed


class FakeClock:
    """Controllable UTC clock"""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================
# AUTH FIXTURES
# ============================================

@pytest.fixture
def auth_headers():
    """Build an Authorization header for a user"""

    def _headers(user_id: str) -> dict:
        return {"Authorization": f"Bearer {create_access_token({'sub': user_id})}"}

    return _headers


@pytest.fixture
def random_user_id() -> str:
    return f"kakao_{uuid.uuid4().hex[:10]}"
