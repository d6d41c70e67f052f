"""Keyword, semantic, and fallback-orchestrating note search engines.

Keyword search: escaped substring (I)LIKE matching over title, content
and tags, newest first.
Semantic search: brute-force cosine similarity between the query
embedding and every embedded note, after tag filtering in the store.
Note search: tries semantic search and falls back to keyword search
whenever the semantic attempt reports a failure.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from sqlalchemy import Boolean, ColumnElement, and_, exists, func, or_
from sqlalchemy.ext.compiler import compiles

from notebrain.errors import ProviderError, StoreError
from notebrain.models import Note
from notebrain.repository import NoteRepository
from notebrain.search.embeddings import EmbeddingService, cosine_similarity
from notebrain.search.params import DEFAULT_SEARCH_LIMIT, SearchOptions
from notebrain.search.query_preprocessor import LIKE_ESCAPE_CHAR, analyze_query, contains_pattern

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ScoredNote:
    note: Note
    score: float


@dataclass(slots=True)
class SemanticOutcome:
    """Result of a semantic search attempt.

    Attributes:
        results: Scored notes for the requested page (empty on failure).
        failure: Short reason when the attempt failed, e.g. ``"provider"``.
        detail: Error message accompanying the failure.
    """

    results: list[ScoredNote] = field(default_factory=list)
    failure: str | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def failed(cls, failure: str, detail: str) -> SemanticOutcome:
        return cls(results=[], failure=failure, detail=detail)


class any_tag_like(ColumnElement[bool]):
    """True when some element of ``notes.tags`` ILIKEs *pattern*.

    Renders as an EXISTS over the expanded tag array: ``json_each`` by
    default (SQLite), ``jsonb_array_elements_text`` on PostgreSQL.
    """

    type = Boolean()
    inherit_cache = False

    def __init__(self, pattern: str) -> None:
        self.pattern = pattern


def _tag_exists(array_elements, pattern: str):
    tag = array_elements(Note.tags).table_valued("value", name="tag", joins_implicitly=True)
    return exists().where(tag.c.value.ilike(pattern, escape=LIKE_ESCAPE_CHAR))


@compiles(any_tag_like)
def _compile_any_tag_like(element, compiler, **kw):
    return compiler.process(_tag_exists(func.json_each, element.pattern), **kw)


@compiles(any_tag_like, "postgresql")
def _compile_any_tag_like_postgresql(element, compiler, **kw):
    return compiler.process(_tag_exists(func.jsonb_array_elements_text, element.pattern), **kw)


def build_tag_filter(tags: Sequence[str] | None) -> ColumnElement[bool] | None:
    """AND together one escaped substring condition per tag."""
    if not tags:
        return None
    return and_(*(any_tag_like(contains_pattern(tag)) for tag in tags))


def build_keyword_filter(query: str | None) -> ColumnElement[bool] | None:
    """OR together escaped keyword conditions over title, content and tags.

    When the query yields no keywords (all tokens too short), the whole
    query is matched as one substring against title and content only.
    """
    if not query:
        return None

    analysis = analyze_query(query)
    if not analysis.terms:
        return None

    if analysis.used_raw_query:
        pattern = contains_pattern(analysis.terms[0])
        return or_(
            Note.title.ilike(pattern, escape=LIKE_ESCAPE_CHAR),
            Note.content.ilike(pattern, escape=LIKE_ESCAPE_CHAR),
        )

    conditions = []
    for keyword in analysis.keywords:
        pattern = contains_pattern(keyword)
        conditions.append(
            or_(
                Note.title.ilike(pattern, escape=LIKE_ESCAPE_CHAR),
                Note.content.ilike(pattern, escape=LIKE_ESCAPE_CHAR),
                any_tag_like(pattern),
            )
        )
    return or_(*conditions)


def rank_by_similarity(vector: Sequence[float], notes: Sequence[Note]) -> list[ScoredNote]:
    """Score *notes* against *vector* and sort them, best first.

    Notes whose embedding is missing or unusable score ``0.0``. The sort is
    stable, so ties keep the store's order.
    """
    scored = [
        ScoredNote(note=note, score=cosine_similarity(vector, note.embedding) if note.embedding else 0.0)
        for note in notes
    ]
    return sorted(scored, key=lambda item: item.score, reverse=True)


class KeywordSearchEngine:
    """Substring keyword search over the note store.

    Net predicate: ``(kw1 OR kw2 OR ...) AND tag1 AND tag2 AND ...``.
    Without any condition the most recently updated notes are returned.

    Args:
        repository: Note store used to run the query.
    """

    def __init__(self, repository: NoteRepository) -> None:
        self._repository = repository

    async def search(self, options: SearchOptions) -> list[Note]:
        """Run a keyword search.

        Raises:
            StoreError: If the store query fails.
        """
        conditions = [
            condition
            for condition in (build_keyword_filter(options.query), build_tag_filter(options.tags))
            if condition is not None
        ]

        if not conditions:
            logger.debug("No search conditions, returning recent notes")
            return await self._repository.list_recent(limit=options.limit, offset=options.offset)

        logger.debug(
            "Keyword search: query=%r tags=%s limit=%d offset=%d",
            options.query,
            options.tags,
            options.limit,
            options.offset,
        )
        return await self._repository.list_where(and_(*conditions), limit=options.limit, offset=options.offset)


class SemanticSearchEngine:
    """Cosine-similarity search over whole-note embeddings.

    Args:
        repository: Note store providing embedded candidate notes.
        embedding_service: Service converting the query into a vector.
    """

    def __init__(self, repository: NoteRepository, embedding_service: EmbeddingService) -> None:
        self._repository = repository
        self._embedding_service = embedding_service

    async def search(self, options: SearchOptions) -> SemanticOutcome:
        """Rank embedded notes against the query.

        Never raises for provider or store trouble; the returned outcome
        says what went wrong so the caller can choose a fallback.
        """
        if not options.query:
            return SemanticOutcome.failed("empty_query", "Semantic search needs a query")

        try:
            query_vector = await self._embedding_service.embed_text(options.query)
        except ProviderError as exc:
            logger.warning("Embedding service failed for query %r: %s", options.query, exc)
            return SemanticOutcome.failed("provider", str(exc))

        # Tag filtering happens in the store, before any scoring
        try:
            candidates = await self._repository.list_with_embedding(predicate=build_tag_filter(options.tags))
        except StoreError as exc:
            return SemanticOutcome.failed("store", str(exc))

        ranked = rank_by_similarity(query_vector, candidates)
        page = ranked[options.offset : options.offset + options.limit]
        logger.debug("Semantic search scored %d notes, returning %d", len(ranked), len(page))
        return SemanticOutcome(results=page)


class NoteSearchEngine:
    """Search entry point applying the semantic -> keyword fallback policy.

    1. Validate and clamp the options.
    2. With ``semantic=True`` and a query, try semantic search; if the
       attempt fails, run keyword search with the same options.
    3. Otherwise run keyword search (recent notes when nothing filters).

    Store failures on this read path are logged and yield ``[]``.

    Args:
        keyword_engine: Engine used directly and as the fallback.
        semantic_engine: Engine tried first for semantic queries.
    """

    def __init__(self, keyword_engine: KeywordSearchEngine, semantic_engine: SemanticSearchEngine) -> None:
        self._keyword_engine = keyword_engine
        self._semantic_engine = semantic_engine

    async def search(
        self,
        query: str | None = None,
        tags: list[str] | None = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
        offset: int = 0,
        semantic: bool = True,
    ) -> list[Note]:
        """Search notes.

        Raises:
            ValidationError: If the arguments have the wrong types.
        """
        options = SearchOptions.parse(query=query, tags=tags, limit=limit, offset=offset, semantic=semantic)
        return await self.search_with_options(options)

    async def search_with_options(self, options: SearchOptions) -> list[Note]:
        try:
            if options.semantic and options.query:
                outcome = await self._semantic_engine.search(options)
                if outcome.ok:
                    logger.info("Semantic search found %d note results", len(outcome.results))
                    return [item.note for item in outcome.results]
                logger.warning(
                    "Semantic search unavailable (%s: %s), falling back to keyword search",
                    outcome.failure,
                    outcome.detail,
                )

            results = await self._keyword_engine.search(options)
            logger.info("Keyword search found %d note results", len(results))
            return results
        except StoreError as exc:
            logger.warning("Note search failed in the store, returning no results: %s", exc)
            return []
