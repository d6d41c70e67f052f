import os
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing package modules
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("OPENAI_API_KEY", "test-api-key-fake")

from notebrain.database import create_engine, create_session_factory, create_tables  # noqa: E402
from notebrain.errors import ProviderError  # noqa: E402
from notebrain.models import Note  # noqa: E402
from notebrain.repository import NoteRepository  # noqa: E402
from notebrain.search.embeddings import EmbeddingService  # noqa: E402
from notebrain.services.note_service import NoteService  # noqa: E402

TEST_DIMENSIONS = 8
BASE_TIME = datetime(2020, 1, 1, tzinfo=UTC)


class FakeEmbeddingProvider:
    """Deterministic in-process embedding provider.

    Texts listed in ``vectors`` get that vector; anything else gets a
    bag-of-words hash vector. Every call is recorded in ``calls``.
    """

    def __init__(self, dimensions: int = TEST_DIMENSIONS) -> None:
        self.dimensions = dimensions
        self.vectors: dict[str, list[float]] = {}
        self.fail_texts: set[str] = set()
        self.fail = False
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail or any(text in self.fail_texts for text in texts):
            raise ProviderError("Embedding provider is down")
        return [self.vectors.get(text) or self._hash_vector(text) for text in texts]

    def _hash_vector(self, text: str) -> list[float]:
        vector = [0.0] * self.dimensions
        for word in text.lower().split():
            vector[sum(map(ord, word)) % self.dimensions] += 1.0
        if not any(vector):
            vector[0] = 1.0
        return vector


def axis_vector(index: int, dimensions: int = TEST_DIMENSIONS) -> list[float]:
    vector = [0.0] * dimensions
    vector[index] = 1.0
    return vector


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest_asyncio.fixture(scope="function")
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Provide a fresh in-memory SQLite database with all tables created.

    StaticPool keeps the single in-memory connection alive across sessions.
    """
    engine = create_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(test_engine)


@pytest.fixture
def repository(session_factory: async_sessionmaker[AsyncSession]) -> NoteRepository:
    return NoteRepository(session_factory)


@pytest.fixture
def fake_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def embedding_service(fake_provider: FakeEmbeddingProvider) -> EmbeddingService:
    return EmbeddingService(fake_provider, dimensions=TEST_DIMENSIONS, timeout=5.0)


@pytest.fixture
def note_service(
    session_factory: async_sessionmaker[AsyncSession],
    embedding_service: EmbeddingService,
) -> NoteService:
    return NoteService(session_factory, embedding_service, chunk_threshold=1000)


@pytest.fixture
def add_note(repository: NoteRepository):
    """Insert a note directly, with ``updated_at`` ``minutes`` after a fixed base time."""

    async def _add(
        title: str = "Note",
        content: str = "",
        tags: list[str] | None = None,
        embedding: list[float] | None = None,
        minutes: int = 0,
    ) -> str:
        timestamp = BASE_TIME + timedelta(minutes=minutes)
        note = Note(
            title=title,
            content=content,
            tags=tags or [],
            embedding=embedding,
            created_at=timestamp,
            updated_at=timestamp,
        )
        return await repository.insert(note)

    return _add
