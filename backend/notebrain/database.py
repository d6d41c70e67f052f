"""SQLAlchemy 2.x async engine and session factory helpers.

Engines are built explicitly by the caller (see :func:`create_engine`) and
handed to the repository, so nothing here holds process-wide state.
"""

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""


def _json_serializer(value: object) -> str:
    # Keep non-ASCII tags readable so substring matching works on the raw column
    return json.dumps(value, ensure_ascii=False)


def create_engine(database_url: str, **kwargs) -> AsyncEngine:
    """Create an async engine for *database_url*.

    SQLite connections get ``PRAGMA foreign_keys=ON`` so that deleting a
    note cascades to its chunks there as it does on PostgreSQL.
    """
    engine = create_async_engine(
        database_url,
        echo=False,
        pool_pre_ping=True,
        json_serializer=_json_serializer,
        **kwargs,
    )

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine.sync_engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return a session factory bound to *engine*."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables registered on :class:`Base` if they don't exist."""
    from notebrain import models  # noqa: F401 - Import models to register them with Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Open a session that commits on success and rolls back on error.

    Usage::

        async with session_scope(factory) as session:
            ...
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
