"""
Database session configuration.

Async SQLAlchemy engine and session factory for the staff_* tables. PostgreSQL
(asyncpg) in production; a sqlite+aiosqlite URL also works for local runs.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from fieldtrack.app.core.config import settings


def _engine_options(database_url: str) -> dict:
    # SQLite has no connection pool to size
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": True,
    }


# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    **_engine_options(settings.database_url),
)

# Session factory shared by the persistence gateway and the rate provider
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# Create declarative base for models
Base = declarative_base()


async def create_tables() -> None:
    """Create any missing tables. Models must be imported first so they are registered."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
