"""Database session management with async SQLAlchemy."""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from invoicing.config import settings

# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """
    Run a unit of work atomically on the given session.

    Commits when the block exits normally; rolls back and re-raises on any
    exception so no partial write survives.
    """
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise


# Declarative base for all models
Base = declarative_base()
