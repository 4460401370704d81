"""
Conftest for API integration tests
Defines fixtures specific to API testing

Note: These tests use ASGI transport for testing without requiring a running server.
The lifespan is not triggered, so the database dependency is overridden with
the per-test SQLite engine and Redis is never contacted.
"""

import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from backend.main import app
from backend.db.session import get_db_session


@pytest_asyncio.fixture
async def client(session_maker) -> AsyncClient:
    """
    Test HTTP client using ASGI transport
    Tests the FastAPI app directly without requiring a running server
    """

    async def override_get_db_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_get_db_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
