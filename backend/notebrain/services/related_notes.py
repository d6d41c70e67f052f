"""Service for finding notes related to a given note or vector.

Notes with an embedding are compared against every other embedded note by
cosine similarity. Notes without one, or whose embedding path fails, fall
back to keyword relatedness: notes whose content shares one of the source
note's most significant words.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import and_, or_

from notebrain.errors import StoreError, ValidationError
from notebrain.models import Note
from notebrain.repository import NoteRepository
from notebrain.search.embeddings import is_valid_vector
from notebrain.search.engine import rank_by_similarity
from notebrain.search.params import DEFAULT_RELATED_RESULTS, MAX_RELATED_KEYWORDS, clamp_max_results
from notebrain.search.query_preprocessor import LIKE_ESCAPE_CHAR, contains_pattern, extract_keywords
from notebrain.utils.note_utils import require_note_id

logger = logging.getLogger(__name__)


class RelatedNotesService:
    """Find notes related to a given note."""

    def __init__(self, repository: NoteRepository):
        self._repository = repository

    async def related(self, note_id: str, max_results: int = DEFAULT_RELATED_RESULTS) -> list[Note]:
        """Return notes related to *note_id*, best match first.

        1. Look up the source note; unknown IDs give ``[]``.
        2. With an embedding, rank every other embedded note by cosine
           similarity to it.
        3. Without one, or when no other note is embedded, use keyword
           relatedness. The embedding provider is never called.

        Raises:
            ValidationError: If *note_id* is blank or *max_results* isn't an int.
        """
        require_note_id(note_id)
        limit = clamp_max_results(max_results)

        try:
            source = await self._repository.get_by_id(note_id)
        except StoreError as exc:
            logger.warning("Could not load note %s for related lookup: %s", note_id, exc)
            return []

        if source is None:
            logger.debug("Note %s not found", note_id)
            return []

        if source.embedding:
            try:
                candidates = await self._repository.list_with_embedding(exclude_id=source.id)
            except StoreError as exc:
                logger.warning("Embedding lookup failed for note %s, using keywords: %s", note_id, exc)
                candidates = []

            if candidates:
                ranked = rank_by_similarity(source.embedding, candidates)
                return [item.note for item in ranked[:limit]]
            logger.debug("No other embedded notes for %s, using keywords", note_id)

        return await self._keyword_related(source, limit)

    async def related_by_vector(
        self,
        vector: Sequence[float],
        max_results: int = DEFAULT_RELATED_RESULTS,
    ) -> list[Note]:
        """Return embedded notes closest to *vector*, best match first.

        Raises:
            ValidationError: If *vector* is not a non-empty list of finite numbers.
            StoreError: If the store fails.
        """
        if not is_valid_vector(vector):
            raise ValidationError("vector must be a non-empty sequence of finite numbers")
        limit = clamp_max_results(max_results)

        candidates = await self._repository.list_with_embedding()
        ranked = rank_by_similarity(vector, candidates)
        return [item.note for item in ranked[:limit]]

    async def _keyword_related(self, source: Note, limit: int) -> list[Note]:
        keywords = extract_keywords(source.content or "", MAX_RELATED_KEYWORDS)

        try:
            if not keywords:
                return await self._repository.list_recent(limit=limit, exclude_id=source.id)

            shares_keyword = or_(
                *(Note.content.ilike(contains_pattern(keyword), escape=LIKE_ESCAPE_CHAR) for keyword in keywords)
            )
            return await self._repository.list_where(and_(Note.id != source.id, shares_keyword), limit=limit)
        except StoreError as exc:
            logger.warning("Keyword relatedness failed for note %s: %s", source.id, exc)
            return []
