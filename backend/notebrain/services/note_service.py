"""Public entry point of the retrieval core.

``NoteService`` wires the repository, embedding service, search engines,
indexer and related-notes service together. Front ends (HTTP handlers,
CLIs, plugins) talk to this class only.

Usage::

    service = NoteService.from_settings()
    note_id = await service.create_note({"title": "PCR", "content": "..."})
    notes = await service.search(query="pcr protocol")
    await service.close()
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from notebrain.config import Settings, get_settings
from notebrain.database import create_engine, create_session_factory, create_tables
from notebrain.errors import StoreError
from notebrain.models import Note
from notebrain.repository import NoteRepository
from notebrain.schemas import NoteCreate
from notebrain.search.embeddings import EmbeddingService
from notebrain.search.engine import KeywordSearchEngine, NoteSearchEngine, SemanticSearchEngine
from notebrain.search.indexer import DEFAULT_CHUNK_THRESHOLD, BackfillResult, NoteIndexer
from notebrain.search.params import DEFAULT_RELATED_RESULTS, DEFAULT_SEARCH_LIMIT, SearchOptions
from notebrain.services.related_notes import RelatedNotesService
from notebrain.utils.note_utils import require_note_id

logger = logging.getLogger(__name__)


class NoteService:
    """Facade over note creation, search, relatedness and maintenance.

    Args:
        session_factory: Factory producing async sessions on the note store.
        embedding_service: Embedding backend wrapper.
        chunk_threshold: Bodies longer than this many characters are chunked.
        engine: Engine owned by this service, disposed by :meth:`close`.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        embedding_service: EmbeddingService,
        chunk_threshold: int = DEFAULT_CHUNK_THRESHOLD,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._engine = engine
        self._repository = NoteRepository(session_factory)
        self._embedding_service = embedding_service
        self._indexer = NoteIndexer(self._repository, embedding_service, chunk_threshold)
        self._search_engine = NoteSearchEngine(
            KeywordSearchEngine(self._repository),
            SemanticSearchEngine(self._repository, embedding_service),
        )
        self._related = RelatedNotesService(self._repository)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> NoteService:
        """Build a service, its engine and embedding provider from settings."""
        settings = settings or get_settings()
        engine = create_engine(settings.async_database_url)
        return cls(
            session_factory=create_session_factory(engine),
            embedding_service=EmbeddingService.from_settings(settings),
            chunk_threshold=settings.CHUNK_THRESHOLD,
            engine=engine,
        )

    @property
    def repository(self) -> NoteRepository:
        return self._repository

    async def init_schema(self) -> None:
        """Create the notes tables if they are missing."""
        if self._engine is None:
            raise RuntimeError("init_schema needs a service built with an engine")
        await create_tables(self._engine)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    async def create_note(self, data: NoteCreate | dict[str, Any]) -> str:
        return await self._indexer.create_note(data)

    async def update_note(
        self,
        note_id: str,
        title: str | None = None,
        content: str | None = None,
        tags: list[str] | None = None,
    ) -> Note | None:
        return await self._indexer.update_note(note_id, title=title, content=content, tags=tags)

    async def backfill_embeddings(self) -> BackfillResult:
        return await self._indexer.backfill_embeddings()

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str | None = None,
        tags: list[str] | None = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
        offset: int = 0,
        semantic: bool = True,
    ) -> list[Note]:
        """Search notes, semantic first with keyword fallback.

        See :class:`~notebrain.search.engine.NoteSearchEngine`.
        """
        return await self._search_engine.search(query=query, tags=tags, limit=limit, offset=offset, semantic=semantic)

    async def related(self, note_id: str, max_results: int = DEFAULT_RELATED_RESULTS) -> list[Note]:
        return await self._related.related(note_id, max_results)

    async def related_by_vector(
        self,
        vector: Sequence[float],
        max_results: int = DEFAULT_RELATED_RESULTS,
    ) -> list[Note]:
        return await self._related.related_by_vector(vector, max_results)

    async def get_note(self, note_id: str) -> Note | None:
        require_note_id(note_id)
        return await self._repository.get_by_id(note_id)

    async def recent(self, limit: int = DEFAULT_SEARCH_LIMIT) -> list[Note]:
        """Return the most recently updated notes; ``[]`` if the store fails."""
        options = SearchOptions.parse(limit=limit)
        try:
            return await self._repository.list_recent(limit=options.limit)
        except StoreError as exc:
            logger.warning("Failed to list recent notes: %s", exc)
            return []

    async def count(self) -> int:
        return await self._repository.count()
