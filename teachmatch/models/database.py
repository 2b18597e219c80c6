"""Database engine, declarative base and session helpers."""

from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from teachmatch.config import settings

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


class Base(DeclarativeBase):
    """Single declarative base for all TeachMatch models."""


engine = create_async_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    echo=False,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


def make_session_factory(sessionmaker: async_sessionmaker) -> SessionFactory:
    """Build a transactional session context manager over a sessionmaker.

    The session commits when the block exits cleanly and rolls back when
    it raises.
    """

    @asynccontextmanager
    async def session_scope() -> AsyncIterator[AsyncSession]:
        async with sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return session_scope


get_db_session = make_session_factory(AsyncSessionLocal)


async def create_tables() -> None:
    """Create all tables that do not exist yet."""
    # Register every model on the metadata
    from teachmatch import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
