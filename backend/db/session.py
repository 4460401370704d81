"""
Database Session Management
PostgreSQL connection and session handling
"""

from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from backend.core.config import settings
from backend.core.exceptions import AppException
from backend.core.logging import get_logger
from backend.db.base import Base

logger = get_logger(__name__)

# Engine
engine = None
async_session_maker = None


async def init_db() -> None:
    """Initialize database engine and create tables"""
    global engine, async_session_maker

    url = settings.POSTGRES_URL
    logger.info(f"Connecting to database at {url.split('@')[-1]}")

    engine_kwargs = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        engine_kwargs.update(pool_size=10, max_overflow=20)

    engine = create_async_engine(url, **engine_kwargs)

    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    # Import all SQLAlchemy models to ensure they're registered with Base
    from backend.db.models import Chart, Permission  # noqa: F401

    # Create tables (use migrations for production)
    if settings.ENVIRONMENT == "development":
        await create_tables()


async def create_tables() -> None:
    """Create all tables that do not exist yet"""
    if engine is None:
        raise AppException("Database engine not initialized")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def close_db() -> None:
    """Close database connections"""
    global engine

    if engine:
        await engine.dispose()
        engine = None
        logger.info("Database connection closed")


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session (dependency injection)"""
    if async_session_maker is None:
        raise AppException("Database not initialized")

    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def check_connection() -> bool:
    """Check that the database answers a trivial query"""
    if async_session_maker is None:
        return False

    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
            return True
    except Exception as e:
        logger.warning(f"Database check failed: {e}")
        return False
