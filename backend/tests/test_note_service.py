"""End-to-end tests of the NoteService facade."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import TEST_DIMENSIONS, axis_vector
from notebrain.config import Settings
from notebrain.errors import StoreError, ValidationError
from notebrain.repository import NoteRepository
from notebrain.search.providers import HttpEmbeddingProvider
from notebrain.services.note_service import NoteService


@pytest.mark.asyncio
async def test_create_search_and_relate(note_service: NoteService, fake_provider):
    fake_provider.vectors["Gel electrophoresis Run the agarose gel at 100V"] = axis_vector(0)
    fake_provider.vectors["Gel staining Stain the agarose gel with SYBR"] = [1.0, 0.3] + [0.0] * (TEST_DIMENSIONS - 2)
    fake_provider.vectors["Lunch Sandwiches"] = axis_vector(4)
    fake_provider.vectors["agarose gel"] = axis_vector(0)

    run_id = await note_service.create_note({"title": "Gel electrophoresis", "content": "Run the agarose gel at 100V"})
    stain_id = await note_service.create_note({"title": "Gel staining", "content": "Stain the agarose gel with SYBR"})
    lunch_id = await note_service.create_note({"title": "Lunch", "content": "Sandwiches"})

    assert await note_service.count() == 3
    assert [note.id for note in await note_service.search(query="agarose gel", limit=2)] == [run_id, stain_id]
    assert [note.id for note in await note_service.related(run_id, max_results=2)] == [stain_id, lunch_id]
    assert [note.id for note in await note_service.related_by_vector(axis_vector(4), 1)] == [lunch_id]


@pytest.mark.asyncio
async def test_backfill_after_provider_outage(note_service: NoteService, fake_provider):
    fake_provider.fail = True
    first = await note_service.create_note({"title": "First", "content": "written offline"})
    second = await note_service.create_note({"title": "Second", "content": "also offline"})
    fake_provider.fail = False

    result = await note_service.backfill_embeddings()

    assert (result.updated, result.failed) == (2, 0)
    assert (await note_service.get_note(first)).embedding is not None
    assert (await note_service.get_note(second)).embedding is not None


@pytest.mark.asyncio
async def test_get_note_and_update_note(note_service: NoteService):
    note_id = await note_service.create_note({"title": "Draft", "content": "body"})

    updated = await note_service.update_note(note_id, title="Final")

    assert updated.title == "Final"
    assert (await note_service.get_note(note_id)).title == "Final"
    assert await note_service.get_note("missing") is None
    with pytest.raises(ValidationError):
        await note_service.get_note("  ")


@pytest.mark.asyncio
async def test_recent(note_service: NoteService, add_note):
    ids = [await add_note(minutes=i) for i in range(4)]

    assert [note.id for note in await note_service.recent(limit=2)] == [ids[3], ids[2]]
    with pytest.raises(ValidationError):
        await note_service.recent(limit="2")


@pytest.mark.asyncio
async def test_recent_store_failure_gives_empty_list(note_service: NoteService):
    note_service._repository = MagicMock(spec=NoteRepository)
    note_service._repository.list_recent = AsyncMock(side_effect=StoreError("db down"))

    assert await note_service.recent() == []


@pytest.mark.asyncio
async def test_from_settings_round_trip(tmp_path):
    settings = Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'notes.db'}",
        EMBEDDING_SERVICE_URL="http://embedder:8001",
        EMBEDDING_DIMENSION=3,
        CHUNK_THRESHOLD=50,
    )
    service = NoteService.from_settings(settings)
    try:
        await service.init_schema()
        assert isinstance(service._embedding_service._provider, HttpEmbeddingProvider)

        note_id = await service.create_note({"title": "Imported", "content": "body", "embedding": [0.1, 0.2, 0.3]})

        assert await service.count() == 1
        assert (await service.get_note(note_id)).embedding == [0.1, 0.2, 0.3]
    finally:
        await service.close()


@pytest.mark.asyncio
async def test_init_schema_requires_engine(note_service: NoteService):
    with pytest.raises(RuntimeError):
        await note_service.init_schema()
