"""Embedding service for converting text into vector embeddings.

Wraps an :class:`~notebrain.search.providers.EmbeddingProvider` with
batching, a per-call timeout and response validation, and exposes the
cosine similarity primitive and the chunker used throughout the core.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Sequence

import numpy as np

from notebrain.config import Settings
from notebrain.errors import ProviderError, ValidationError
from notebrain.search.chunker import chunk_text as _chunk_text
from notebrain.search.providers import EmbeddingProvider, build_provider

logger = logging.getLogger(__name__)


def is_valid_vector(vector: object, dimensions: int | None = None) -> bool:
    """Return True if *vector* is a non-empty sequence of finite numbers.

    When *dimensions* is given the length must match it as well.
    """
    if not isinstance(vector, Sequence) or isinstance(vector, str) or len(vector) == 0:
        return False
    if dimensions is not None and len(vector) != dimensions:
        return False
    for value in vector:
        if isinstance(value, bool) or not isinstance(value, int | float):
            return False
        if not math.isfinite(value):
            return False
    return True


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """Calculate cosine similarity between two vectors.

    Returns a score in ``[-1, 1]``. Returns ``0.0`` (never NaN) when
    either vector is empty or has zero magnitude, when the dimensions don't
    match, or when the data isn't numeric, so rankings stay total.
    """
    try:
        v1 = np.asarray(vec1, dtype=np.float64)
        v2 = np.asarray(vec2, dtype=np.float64)
    except (TypeError, ValueError):
        return 0.0

    if v1.ndim != 1 or v1.shape != v2.shape or v1.size == 0:
        return 0.0

    norm1 = np.linalg.norm(v1)
    norm2 = np.linalg.norm(v2)
    if norm1 == 0 or norm2 == 0 or not (math.isfinite(norm1) and math.isfinite(norm2)):
        return 0.0

    score = float(np.dot(v1, v2) / (norm1 * norm2))
    if not math.isfinite(score):
        return 0.0
    return max(-1.0, min(1.0, score))


class EmbeddingService:
    """Generate vector embeddings for text.

    Parameters
    ----------
    provider : EmbeddingProvider
        Backend that turns batches of texts into vectors.
    dimensions : int
        Dimension every returned vector must have (default: 1536).
    timeout : float
        Seconds allowed per provider call; a timeout is a ``ProviderError``.
    batch_size : int
        Maximum number of texts sent to the provider per call.
    chunk_size, chunk_overlap : int
        Defaults for :meth:`chunk_text`, in characters.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        dimensions: int = 1536,
        timeout: float = 30.0,
        batch_size: int = 100,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
    ) -> None:
        self._provider = provider
        self._dimensions = dimensions
        self._timeout = timeout
        self._batch_size = max(1, batch_size)
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap

    @classmethod
    def from_settings(cls, settings: Settings) -> EmbeddingService:
        """Build a service and its provider from application settings."""
        return cls(
            provider=build_provider(settings),
            dimensions=settings.EMBEDDING_DIMENSION,
            timeout=settings.EMBEDDING_TIMEOUT_SECONDS,
            batch_size=settings.EMBEDDING_BATCH_SIZE,
            chunk_size=settings.CHUNK_SIZE,
            chunk_overlap=settings.CHUNK_OVERLAP,
        )

    @property
    def dimensions(self) -> int:
        return self._dimensions

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed_text(self, text: str) -> list[float]:
        """Embed a single text string.

        Raises
        ------
        ValidationError
            If *text* is empty or whitespace-only.
        ProviderError
            If the provider fails, times out, or returns a malformed vector.
        """
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Empty text provided for embedding generation")

        result = await self._call_provider([text])
        return result[0]

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed multiple texts, batching provider calls.

        The result has exactly one vector per input, in input order.
        Returns an empty list when *texts* is empty.

        Raises
        ------
        ValidationError
            If any entry is empty or whitespace-only.
        ProviderError
            If any provider call fails or returns malformed data.
        """
        if not texts:
            return []
        for index, text in enumerate(texts):
            if not isinstance(text, str) or not text.strip():
                raise ValidationError("Empty text in embedding batch", {"index": index})

        embeddings: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            batch = texts[start : start + self._batch_size]
            embeddings.extend(await self._call_provider(batch))
        return embeddings

    def chunk_text(
        self,
        text: str,
        chunk_size: int | None = None,
        overlap: int | None = None,
    ) -> list[str]:
        """Split *text* into overlapping character-bounded chunks.

        See :func:`notebrain.search.chunker.chunk_text`.
        """
        return _chunk_text(
            text,
            self._chunk_size if chunk_size is None else chunk_size,
            self._chunk_overlap if overlap is None else overlap,
        )

    async def embed_chunks(self, text: str) -> list[tuple[str, list[float]]]:
        """Chunk *text* and embed each chunk.

        Returns a list of ``(chunk_text, embedding)`` tuples.
        Returns ``[]`` for empty input.
        """
        chunks = self.chunk_text(text)
        if not chunks:
            return []

        embeddings = await self.embed_texts(chunks)
        return list(zip(chunks, embeddings, strict=True))

    @staticmethod
    def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
        """See :func:`cosine_similarity`."""
        return cosine_similarity(vec1, vec2)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _call_provider(self, texts: list[str]) -> list[list[float]]:
        """Call the provider with a timeout and validate its response.

        Raises
        ------
        ProviderError
            On provider failure, timeout, count mismatch or a malformed vector.
        """
        try:
            vectors = await asyncio.wait_for(self._provider.embed(texts), timeout=self._timeout)
        except ProviderError:
            raise
        except TimeoutError as exc:
            logger.warning("Embedding provider timed out after %.1fs (%d texts)", self._timeout, len(texts))
            raise ProviderError("Embedding provider timed out", {"timeout": self._timeout}) from exc
        except Exception as exc:
            logger.error("Embedding provider failed: %s", exc)
            raise ProviderError(f"Embedding provider failed: {exc}") from exc

        if not isinstance(vectors, list) or len(vectors) != len(texts):
            raise ProviderError(
                "Embedding provider returned the wrong number of vectors",
                {"expected": len(texts), "received": len(vectors) if isinstance(vectors, list) else None},
            )

        result: list[list[float]] = []
        for index, vector in enumerate(vectors):
            if not is_valid_vector(vector, self._dimensions):
                raise ProviderError(
                    "Embedding provider returned a malformed vector",
                    {"index": index, "dimensions": self._dimensions},
                )
            result.append([float(value) for value in vector])
        return result
