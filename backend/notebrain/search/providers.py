"""Embedding provider adapters.

Two backends are supported:

* **OpenAI API mode** (default): uses the OpenAI embeddings endpoint.
* **Local HTTP mode**: when ``EMBEDDING_SERVICE_URL`` is configured, all
  requests are forwarded to a local embedding service instead.

Providers only talk to the backend and translate its failures into
:class:`~notebrain.errors.ProviderError`. Response validation, batching and
timeouts live in :class:`~notebrain.search.embeddings.EmbeddingService`.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx
import tiktoken
from openai import APIError, AsyncOpenAI

from notebrain.config import Settings
from notebrain.errors import ProviderError

logger = logging.getLogger(__name__)

# Input window of the OpenAI text-embedding-3 models
OPENAI_MAX_INPUT_TOKENS = 8191


class EmbeddingProvider(Protocol):
    """Anything that turns a batch of texts into vectors, in input order."""

    async def embed(self, texts: list[str]) -> list[list[float]]: ...


class OpenAIEmbeddingProvider:
    """Call the OpenAI embeddings API.

    Parameters
    ----------
    api_key : str
        OpenAI API key.
    model : str
        Embedding model name (default: ``text-embedding-3-small``).
    dimensions : int
        Output vector dimensions (default: 1536).
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = "text-embedding-3-small",
        dimensions: int = 1536,
    ) -> None:
        self._model = model
        self._dimensions = dimensions
        self._client = AsyncOpenAI(api_key=api_key)
        self._encoding: tiktoken.Encoding | None = None

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in one request.

        Raises
        ------
        ProviderError
            Wraps any ``openai.APIError``.
        """
        inputs = [self._truncate(text) for text in texts]
        try:
            response = await self._client.embeddings.create(
                input=inputs,
                model=self._model,
                dimensions=self._dimensions,
            )
        except APIError as exc:
            logger.error("Embedding API error: %s", exc)
            raise ProviderError(str(exc), {"model": self._model}) from exc

        # The response data is ordered by index; sort to be safe.
        sorted_data = sorted(response.data, key=lambda d: d.index)
        return [item.embedding for item in sorted_data]

    def _truncate(self, text: str) -> str:
        """Cut *text* down to the model's input window."""
        # Fewer characters than tokens can never overflow; skip the tokenizer
        if len(text) <= OPENAI_MAX_INPUT_TOKENS:
            return text
        encoding = self._get_encoding()
        tokens = encoding.encode(text)
        if len(tokens) <= OPENAI_MAX_INPUT_TOKENS:
            return text
        logger.debug("Truncating embedding input from %d to %d tokens", len(tokens), OPENAI_MAX_INPUT_TOKENS)
        return encoding.decode(tokens[:OPENAI_MAX_INPUT_TOKENS])

    def _get_encoding(self) -> tiktoken.Encoding:
        if self._encoding is None:
            try:
                self._encoding = tiktoken.encoding_for_model(self._model)
            except KeyError:
                self._encoding = tiktoken.get_encoding("cl100k_base")
        return self._encoding


class HttpEmbeddingProvider:
    """Call a local HTTP embedding service.

    Expects the service to expose a ``POST /embed`` endpoint that
    accepts ``{"input": [...], "dimensions": N}`` and returns
    ``{"embeddings": [[...], ...]}``.
    """

    def __init__(self, base_url: str, dimensions: int = 1536, timeout: float = 60.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._dimensions = dimensions
        self._timeout = timeout

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* via the local service.

        Raises
        ------
        ProviderError
            If the HTTP request fails or returns an unexpected response.
        """
        url = f"{self._base_url}/embed"
        payload = {"input": texts, "dimensions": self._dimensions}

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                data = response.json()
                return data["embeddings"]
        except httpx.HTTPStatusError as exc:
            logger.error("Local embedding HTTP error: %s", exc)
            raise ProviderError(str(exc), {"url": url}) from exc
        except httpx.RequestError as exc:
            logger.error("Local embedding request error: %s", exc)
            raise ProviderError(str(exc), {"url": url}) from exc
        except (KeyError, TypeError, ValueError) as exc:
            logger.error("Local embedding response parse error: %s", exc)
            raise ProviderError(
                f"Unexpected response from local embedding service: {exc}", {"url": url}
            ) from exc


def build_provider(settings: Settings) -> EmbeddingProvider:
    """Pick the provider the settings ask for."""
    if settings.EMBEDDING_SERVICE_URL:
        logger.info("Embedding provider: local mode enabled (%s)", settings.EMBEDDING_SERVICE_URL)
        return HttpEmbeddingProvider(
            settings.EMBEDDING_SERVICE_URL,
            dimensions=settings.EMBEDDING_DIMENSION,
            timeout=settings.EMBEDDING_TIMEOUT_SECONDS,
        )
    if not settings.OPENAI_API_KEY:
        logger.warning("No OpenAI API key configured for the embedding provider")
    return OpenAIEmbeddingProvider(
        api_key=settings.OPENAI_API_KEY,
        model=settings.EMBEDDING_MODEL,
        dimensions=settings.EMBEDDING_DIMENSION,
    )
