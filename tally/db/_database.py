"""
Database setup — engine + session factory.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from tally.db._tables import Base


async def create_database(
    url: str = "sqlite+aiosqlite:///tally.db",
    *,
    create_schema: bool = True,
) -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """Create engine (and tables) and return (session_factory, engine)."""
    engine = create_async_engine(url, echo=False)

    if create_schema:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    return async_sessionmaker(engine, expire_on_commit=False), engine


__all__ = ("create_database",)
