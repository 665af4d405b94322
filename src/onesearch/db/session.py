"""
Database Session Management

Builds the async SQLAlchemy engine and session factory for the config store.
Any async driver URL works (``postgresql+asyncpg://``, ``sqlite+aiosqlite://``).
"""

from __future__ import annotations

from typing import Tuple

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .models import Base


def create_engine_and_sessionmaker(
    database_url: str,
    echo: bool = False,
) -> Tuple[AsyncEngine, async_sessionmaker]:
    """
    Create an engine and a session factory bound to it.

    Parameters
    ----------
    database_url : str
        SQLAlchemy async database URL.
    echo : bool
        Log every SQL statement (debugging).
    """
    kwargs = {"echo": echo, "pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        kwargs.update(pool_size=5, max_overflow=10)

    engine = create_async_engine(database_url, **kwargs)
    factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return engine, factory


async def init_schema(engine: AsyncEngine) -> None:
    """Create the config store tables when they do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
