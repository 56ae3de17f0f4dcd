"""
database/connection.py
Async engine and session factory for the sqlite ledger sink.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel


def create_engine_for(database_url: str) -> AsyncEngine:
    return create_async_engine(database_url, echo=False)


def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables registered on SQLModel metadata."""
    import database.models as _models  # noqa: F401 (registers tables with SQLModel metadata)

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
