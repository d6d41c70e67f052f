"""Narrow repository over the notes and note_chunks tables.

Each operation runs in its own session and transaction, so one failed
write (e.g. a chunk insert) never rolls back an unrelated one. Every
storage failure surfaces as :class:`~notebrain.errors.StoreError`.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import ColumnElement, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notebrain.database import session_scope
from notebrain.errors import StoreError
from notebrain.models import Note, NoteChunk, generate_id

logger = logging.getLogger(__name__)


class NoteRepository:
    """CRUD and query access to notes and their chunks.

    Args:
        session_factory: Factory producing async SQLAlchemy sessions.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    async def get_by_id(self, note_id: str) -> Note | None:
        """Fetch a note by ID, or ``None`` if it doesn't exist."""
        async with self._session("get note", note_id=note_id) as session:
            return await session.get(Note, note_id)

    async def insert(self, note: Note) -> str:
        """Insert *note* and return its ID."""
        if not note.id:
            note.id = generate_id()
        async with self._session("insert note", note_id=note.id) as session:
            session.add(note)
            await session.flush()
        return note.id

    async def update(self, note_id: str, **fields: Any) -> bool:
        """Update columns of a note.

        Returns:
            True if a note with *note_id* existed.
        """
        if not fields:
            return await self.get_by_id(note_id) is not None
        stmt = update(Note).where(Note.id == note_id).values(**fields)
        async with self._session("update note", note_id=note_id, fields=sorted(fields)) as session:
            result = await session.execute(stmt)
            return result.rowcount > 0

    async def list_where(
        self,
        predicate: ColumnElement[bool] | None,
        limit: int,
        offset: int = 0,
    ) -> list[Note]:
        """List notes matching *predicate*, most recently updated first."""
        stmt = select(Note)
        if predicate is not None:
            stmt = stmt.where(predicate)
        stmt = stmt.order_by(Note.updated_at.desc(), Note.id).limit(limit).offset(offset)
        async with self._session("list notes", limit=limit, offset=offset) as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_recent(self, limit: int, offset: int = 0, exclude_id: str | None = None) -> list[Note]:
        """List the most recently updated notes."""
        predicate = Note.id != exclude_id if exclude_id is not None else None
        return await self.list_where(predicate, limit=limit, offset=offset)

    async def list_with_embedding(
        self,
        predicate: ColumnElement[bool] | None = None,
        exclude_id: str | None = None,
    ) -> list[Note]:
        """List every note that carries an embedding.

        Args:
            predicate: Extra filter applied in the store (e.g. tag filters).
            exclude_id: Note ID to leave out (the source of a related query).
        """
        stmt = select(Note).where(Note.embedding.isnot(None))
        if predicate is not None:
            stmt = stmt.where(predicate)
        if exclude_id is not None:
            stmt = stmt.where(Note.id != exclude_id)
        stmt = stmt.order_by(Note.updated_at.desc(), Note.id)
        async with self._session("list embedded notes") as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_without_embedding(self) -> list[Note]:
        """List every note still missing an embedding."""
        stmt = select(Note).where(Note.embedding.is_(None)).order_by(Note.created_at, Note.id)
        async with self._session("list notes without embedding") as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count(self) -> int:
        """Return the total number of notes."""
        async with self._session("count notes") as session:
            result = await session.execute(select(func.count()).select_from(Note))
            return int(result.scalar() or 0)

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def insert_chunk(self, chunk: NoteChunk) -> str:
        """Insert a chunk and return its ID."""
        if not chunk.id:
            chunk.id = generate_id()
        async with self._session("insert chunk", note_id=chunk.note_id, chunk_index=chunk.chunk_index) as session:
            session.add(chunk)
            await session.flush()
        return chunk.id

    async def delete_chunks(self, note_id: str) -> int:
        """Delete all chunks of a note; returns the number removed."""
        stmt = delete(NoteChunk).where(NoteChunk.note_id == note_id)
        async with self._session("delete chunks", note_id=note_id) as session:
            result = await session.execute(stmt)
            return result.rowcount

    async def list_chunks(self, note_id: str) -> list[NoteChunk]:
        """List a note's chunks ordered by ``chunk_index``."""
        stmt = select(NoteChunk).where(NoteChunk.note_id == note_id).order_by(NoteChunk.chunk_index)
        async with self._session("list chunks", note_id=note_id) as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _session(self, action: str, **details: Any) -> AsyncIterator[AsyncSession]:
        """Open a committing session, translating storage failures."""
        try:
            async with session_scope(self._session_factory) as session:
                yield session
        except (SQLAlchemyError, OSError) as exc:
            logger.error("Note store failed to %s: %s", action, exc)
            raise StoreError(f"Failed to {action}", {**details, "error": str(exc)}) from exc
