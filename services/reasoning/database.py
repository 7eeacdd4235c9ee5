"""
Database Configuration Module
Async engine + session factory for the Sequence Store
"""
import os
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

# Database URL from environment
DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable is not set")

engine = create_async_engine(
    DATABASE_URL,
    echo=False,
    pool_pre_ping=True,              # Verify connections before use
    pool_recycle=3600,               # Recycle connections after 1 hour
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# Base for models
Base = declarative_base()


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory with the same settings as AsyncSessionLocal, bound elsewhere."""
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_tables(bind: AsyncEngine = None) -> None:
    """Create all tables known to Base.metadata."""
    import models  # noqa: F401  registers the mappers

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db_connections():
    """
    Gracefully close all database connections.
    Call this on application shutdown.
    """
    await engine.dispose()
