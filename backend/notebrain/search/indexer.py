"""Note indexer: creates notes, keeps their embeddings and chunks current.

Whole-note embeddings are built from ``title + " " + content``. Notes whose
body is longer than the chunk threshold additionally get
:class:`~notebrain.models.NoteChunk` records, each embedded on its own.
Embedding failures never block a write: the note is stored without an
embedding and :meth:`NoteIndexer.backfill_embeddings` picks it up later.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from notebrain.errors import NoteBrainError, ProviderError, StoreError, ValidationError
from notebrain.models import Note, NoteChunk, generate_id, utcnow
from notebrain.repository import NoteRepository
from notebrain.schemas import NoteCreate, NoteUpdate
from notebrain.search.embeddings import EmbeddingService, is_valid_vector
from notebrain.utils.note_utils import build_embedding_text, require_note_id, truncate_snippet

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_THRESHOLD = 1000


@dataclass
class BackfillResult:
    """Aggregated result of an embedding backfill run.

    Attributes:
        updated: Notes that received an embedding.
        failed: Notes that could not be embedded or persisted.
    """

    updated: int = field(default=0)
    failed: int = field(default=0)

    @property
    def total(self) -> int:
        return self.updated + self.failed


class NoteIndexer:
    """Write path of the note corpus.

    Args:
        repository: Note store.
        embedding_service: Service generating note and chunk embeddings.
        chunk_threshold: Bodies longer than this many characters are chunked.
    """

    def __init__(
        self,
        repository: NoteRepository,
        embedding_service: EmbeddingService,
        chunk_threshold: int = DEFAULT_CHUNK_THRESHOLD,
    ) -> None:
        self._repository = repository
        self._embedding_service = embedding_service
        self._chunk_threshold = chunk_threshold

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def create_note(self, data: NoteCreate | dict[str, Any]) -> str:
        """Validate, embed and store a new note.

        Args:
            data: A :class:`NoteCreate` or a mapping with its fields.

        Returns:
            The ID of the stored note.

        Raises:
            ValidationError: If *data* is malformed, or a supplied embedding
                doesn't match the embedding dimension.
            StoreError: If the note itself cannot be inserted.
        """
        note_in = NoteCreate.parse(data)

        embedding = note_in.embedding
        if embedding is not None:
            if not is_valid_vector(embedding, self._embedding_service.dimensions):
                raise ValidationError(
                    "Supplied embedding has the wrong dimension",
                    {"expected": self._embedding_service.dimensions, "received": len(embedding)},
                )
        else:
            embedding = await self._embed_note_text(note_in.title, note_in.content, note_in.id)

        created_at = note_in.created_at or utcnow()
        note = Note(
            id=note_in.id or generate_id(),
            title=note_in.title,
            content=note_in.content,
            tags=note_in.tags,
            embedding=embedding,
            created_at=created_at,
            updated_at=note_in.updated_at or created_at,
        )
        note_id = await self._repository.insert(note)
        logger.info(
            "Created note %s (%r, embedded=%s)",
            note_id,
            truncate_snippet(note.title, 60),
            embedding is not None,
        )

        if len(note.content) > self._chunk_threshold:
            await self._rebuild_chunks_quietly(note_id, note.content)

        return note_id

    async def update_note(
        self,
        note_id: str,
        title: str | None = None,
        content: str | None = None,
        tags: list[str] | None = None,
    ) -> Note | None:
        """Edit a note and keep its embedding and chunks in step.

        Changing the title or content bumps ``updated_at``, re-embeds the
        note and rebuilds its chunks. If re-embedding fails the stale
        embedding is cleared so that a backfill run repairs it.

        Returns:
            The updated note, or ``None`` if *note_id* is unknown.

        Raises:
            ValidationError: If an argument has the wrong type.
            StoreError: If the store fails.
        """
        require_note_id(note_id)
        changes = NoteUpdate.parse({"title": title, "content": content, "tags": tags})

        note = await self._repository.get_by_id(note_id)
        if note is None:
            return None

        fields: dict[str, Any] = {}
        if changes.tags is not None:
            fields["tags"] = changes.tags

        if changes.changes_text:
            new_title = note.title if changes.title is None else changes.title
            new_content = note.content if changes.content is None else changes.content
            fields["title"] = new_title
            fields["content"] = new_content
            fields["updated_at"] = utcnow()
            fields["embedding"] = await self._embed_note_text(new_title, new_content, note_id)

        if fields:
            await self._repository.update(note_id, **fields)

        if changes.changes_text:
            await self._rebuild_chunks_quietly(note_id, fields["content"])

        return await self._repository.get_by_id(note_id)

    async def rebuild_chunks(self, note_id: str, content: str) -> int:
        """Replace the chunks of a note.

        Existing chunks are removed first. Bodies at or below the chunk
        threshold end up with no chunks. A chunk that cannot be inserted is
        logged and skipped.

        Returns:
            Number of chunks stored.

        Raises:
            ProviderError: If the chunks cannot be embedded.
            StoreError: If old chunks cannot be removed.
        """
        removed = await self._repository.delete_chunks(note_id)
        if removed:
            logger.debug("Removed %d old chunks of note %s", removed, note_id)

        if len(content or "") <= self._chunk_threshold:
            return 0

        pairs = await self._embedding_service.embed_chunks(content)
        stored = 0
        for position, (chunk_text, embedding) in enumerate(pairs):
            # Indices count stored chunks only, contiguous from 0
            chunk = NoteChunk(
                note_id=note_id,
                content=chunk_text,
                embedding=embedding,
                chunk_index=stored,
            )
            try:
                await self._repository.insert_chunk(chunk)
                stored += 1
            except StoreError as exc:
                logger.warning("Failed to store chunk %d of note %s: %s", position, note_id, exc)

        logger.info("Stored %d/%d chunks for note %s", stored, len(pairs), note_id)
        return stored

    async def backfill_embeddings(self) -> BackfillResult:
        """Embed every note that has no embedding yet.

        Safe to re-run: notes that already carry an embedding are never
        listed. A failure on one note is counted and the run continues.

        Raises:
            StoreError: If the notes to backfill cannot be listed.
        """
        result = BackfillResult()
        notes = await self._repository.list_without_embedding()
        logger.info("Backfilling embeddings for %d notes", len(notes))

        for note in notes:
            try:
                text = build_embedding_text(note.title, note.content)
                if not text:
                    logger.warning("Note %s has no text to embed, skipping", note.id)
                    result.failed += 1
                    continue

                embedding = await self._embedding_service.embed_text(text)
                if not await self._repository.update(note.id, embedding=embedding):
                    logger.warning("Note %s disappeared during backfill", note.id)
                    result.failed += 1
                    continue

                if len(note.content or "") > self._chunk_threshold:
                    await self._rebuild_chunks_quietly(note.id, note.content)

                result.updated += 1
            except Exception:
                result.failed += 1
                logger.exception("Failed to backfill embedding for note %s", note.id)

        logger.info("Backfill finished: %d updated, %d failed", result.updated, result.failed)
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _embed_note_text(self, title: str | None, content: str | None, note_id: str | None) -> list[float] | None:
        """Embed a note's combined text, or return ``None`` on failure."""
        text = build_embedding_text(title, content)
        if not text:
            return None
        try:
            return await self._embedding_service.embed_text(text)
        except ProviderError as exc:
            logger.warning("Storing note %s without embedding: %s", note_id or "(new)", exc)
            return None

    async def _rebuild_chunks_quietly(self, note_id: str, content: str) -> None:
        try:
            await self.rebuild_chunks(note_id, content)
        except NoteBrainError:
            logger.exception("Failed to build chunks for note %s", note_id)

