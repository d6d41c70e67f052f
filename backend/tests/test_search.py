"""Tests for keyword search, semantic search and the fallback policy."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import TEST_DIMENSIONS, axis_vector
from notebrain.errors import StoreError, ValidationError
from notebrain.repository import NoteRepository
from notebrain.search.embeddings import EmbeddingService
from notebrain.search.engine import (
    KeywordSearchEngine,
    NoteSearchEngine,
    ScoredNote,
    SemanticOutcome,
    SemanticSearchEngine,
    rank_by_similarity,
)
from notebrain.search.params import MAX_SEARCH_LIMIT, SearchOptions
from notebrain.services.note_service import NoteService


def _ids(notes) -> list[str]:
    return [note.id for note in notes]


# ---------------------------------------------------------------------------
# SearchOptions
# ---------------------------------------------------------------------------


class TestSearchOptions:
    def test_defaults(self):
        options = SearchOptions.parse()

        assert (options.query, options.tags, options.limit, options.offset, options.semantic) == (
            None,
            None,
            10,
            0,
            True,
        )
        assert options.has_filters is False

    def test_clamps_out_of_range_values(self):
        assert SearchOptions.parse(limit=500).limit == MAX_SEARCH_LIMIT
        assert SearchOptions.parse(limit=0).limit == 1
        assert SearchOptions.parse(limit=-3).limit == 1
        assert SearchOptions.parse(offset=-10).offset == 0

    def test_normalizes_query_and_tags(self):
        options = SearchOptions.parse(query="  pcr  ", tags=[" lab ", "", "lab"])

        assert options.query == "pcr"
        assert options.tags == ["lab"]
        assert SearchOptions.parse(query="   ", tags=["  "]).has_filters is False

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"limit": "10"},
            {"limit": 2.5},
            {"offset": "1"},
            {"query": 42},
            {"tags": "lab"},
            {"semantic": "yes"},
            {"unknown": 1},
        ],
    )
    def test_wrong_types_raise(self, kwargs):
        with pytest.raises(ValidationError):
            SearchOptions.parse(**kwargs)


# ---------------------------------------------------------------------------
# Keyword search
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_no_query_returns_most_recent(note_service: NoteService, add_note):
    ids = [await add_note(title=f"note {i}", minutes=i) for i in range(15)]

    results = await note_service.search(limit=5)

    assert _ids(results) == list(reversed(ids))[:5]


@pytest.mark.asyncio
async def test_keyword_search_matches_title_content_and_tags(note_service: NoteService, add_note):
    in_title = await add_note(title="Western blot", minutes=1)
    in_content = await add_note(content="we ran a western", minutes=2)
    in_tags = await add_note(tags=["western"], minutes=3)
    await add_note(title="Unrelated", content="nothing here", minutes=4)

    results = await note_service.search(query="WESTERN", semantic=False)

    assert _ids(results) == [in_tags, in_content, in_title]


@pytest.mark.asyncio
async def test_keywords_are_ored(note_service: NoteService, add_note):
    pcr = await add_note(content="pcr protocol", minutes=1)
    elisa = await add_note(content="elisa plate", minutes=2)
    await add_note(content="microscopy", minutes=3)

    results = await note_service.search(query="pcr elisa", semantic=False)

    assert set(_ids(results)) == {pcr, elisa}


@pytest.mark.asyncio
async def test_tags_are_anded(note_service: NoteService, add_note):
    both = await add_note(content="gel", tags=["lab", "dna"], minutes=1)
    await add_note(content="gel", tags=["lab"], minutes=2)

    results = await note_service.search(tags=["lab", "dna"], semantic=False)

    assert _ids(results) == [both]


@pytest.mark.asyncio
async def test_query_and_tags_combine(note_service: NoteService, add_note):
    match = await add_note(content="agarose gel", tags=["lab"], minutes=1)
    await add_note(content="agarose gel", tags=["home"], minutes=2)
    await add_note(content="buffer", tags=["lab"], minutes=3)

    results = await note_service.search(query="agarose", tags=["lab"], semantic=False)

    assert _ids(results) == [match]


@pytest.mark.asyncio
async def test_percent_in_query_is_literal(note_service: NoteService, add_note):
    literal = await add_note(title="Yield was 100% today", minutes=1)
    await add_note(title="Counted 100 colonies", minutes=2)
    await add_note(title="1000 samples", minutes=3)

    results = await note_service.search(query="100%", semantic=False)

    assert _ids(results) == [literal]


@pytest.mark.asyncio
async def test_underscore_in_query_is_literal(note_service: NoteService, add_note):
    literal = await add_note(content="renamed sample_id column", minutes=1)
    await add_note(content="renamed sampleXid column", minutes=2)

    results = await note_service.search(query="sample_id", semantic=False)

    assert _ids(results) == [literal]


@pytest.mark.asyncio
async def test_short_query_matches_whole_string(note_service: NoteService, add_note):
    match = await add_note(title="pH 7 buffer", minutes=1)
    await add_note(title="ph7", tags=["ph 7"], minutes=2)

    results = await note_service.search(query="ph 7", semantic=False)

    assert _ids(results) == [match]


@pytest.mark.asyncio
async def test_lone_percent_query_matches_nothing(note_service: NoteService, add_note):
    await add_note(title="Plasmid prep", content="no wildcards here", tags=["lab"], minutes=1)
    await add_note(title="Gel", content="ran at 120 volts", minutes=2)

    assert await note_service.search(query="%", semantic=False) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("query", ['lab"', '"lab', 'lab","dna', '["lab'])
async def test_keyword_does_not_match_json_syntax_of_tags(note_service: NoteService, add_note, query):
    await add_note(title="Bench notes", content="gel run", tags=["lab", "dna"])

    assert await note_service.search(query=query, semantic=False) == []


@pytest.mark.asyncio
async def test_tag_filter_matches_single_tag_elements(note_service: NoteService, add_note):
    match = await add_note(content="gel", tags=["lab", "dna"], minutes=1)

    assert _ids(await note_service.search(tags=["LA"], semantic=False)) == [match]
    assert await note_service.search(tags=['lab", "dna'], semantic=False) == []
    assert await note_service.search(tags=['b", "d'], semantic=False) == []


@pytest.mark.asyncio
async def test_keyword_search_pagination(note_service: NoteService, add_note):
    ids = [await add_note(content=f"assay run {i}", minutes=i) for i in range(6)]

    first = await note_service.search(query="assay", semantic=False, limit=4)
    second = await note_service.search(query="assay", semantic=False, limit=4, offset=4)

    assert _ids(first) == list(reversed(ids))[:4]
    assert _ids(second) == list(reversed(ids))[4:]


@pytest.mark.asyncio
async def test_keyword_search_with_no_match(note_service: NoteService, add_note):
    await add_note(content="something")

    assert await note_service.search(query="nonexistent", semantic=False) == []


@pytest.mark.asyncio
async def test_keyword_engine_delegates_recent_to_repository():
    repository = MagicMock(spec=NoteRepository)
    repository.list_recent = AsyncMock(return_value=[])
    engine = KeywordSearchEngine(repository)

    await engine.search(SearchOptions.parse(limit=3, offset=2))

    repository.list_recent.assert_awaited_once_with(limit=3, offset=2)


# ---------------------------------------------------------------------------
# Semantic search
# ---------------------------------------------------------------------------


def test_rank_by_similarity_is_stable_and_descending():
    first = MagicMock(embedding=axis_vector(1))
    second = MagicMock(embedding=axis_vector(0))
    third = MagicMock(embedding=axis_vector(1))
    fourth = MagicMock(embedding=None)

    ranked = rank_by_similarity(axis_vector(0), [first, second, third, fourth])

    assert [item.note for item in ranked] == [second, first, third, fourth]
    assert ranked[0].score == pytest.approx(1.0)
    assert ranked[-1].score == 0.0


@pytest.mark.asyncio
async def test_semantic_search_ranks_by_similarity(note_service: NoteService, fake_provider, add_note):
    fake_provider.vectors["cell culture"] = axis_vector(0)
    best = await add_note(title="best", embedding=axis_vector(0), minutes=1)
    worst = await add_note(title="worst", embedding=axis_vector(1), minutes=2)
    middle = await add_note(title="middle", embedding=[1.0, 1.0] + [0.0] * (TEST_DIMENSIONS - 2), minutes=3)
    await add_note(title="cell culture without embedding", minutes=4)

    results = await note_service.search(query="cell culture")

    assert _ids(results) == [best, middle, worst]
    assert fake_provider.calls == [["cell culture"]]


@pytest.mark.asyncio
async def test_semantic_search_filters_tags_before_scoring(note_service: NoteService, fake_provider, add_note):
    fake_provider.vectors["imaging"] = axis_vector(0)
    await add_note(title="closest", embedding=axis_vector(0), tags=["home"], minutes=1)
    tagged = await add_note(title="tagged", embedding=axis_vector(1), tags=["lab"], minutes=2)

    results = await note_service.search(query="imaging", tags=["lab"], limit=1)

    assert _ids(results) == [tagged]


@pytest.mark.asyncio
async def test_semantic_search_pagination(note_service: NoteService, fake_provider, add_note):
    fake_provider.vectors["query"] = axis_vector(0)
    ids = []
    for i in range(4):
        weight = float(4 - i)
        ids.append(await add_note(embedding=[weight, 1.0] + [0.0] * (TEST_DIMENSIONS - 2), minutes=i))

    page = await note_service.search(query="query", limit=2, offset=1)

    assert _ids(page) == ids[1:3]


@pytest.mark.asyncio
async def test_semantic_engine_reports_provider_failure(repository, fake_provider):
    fake_provider.fail = True
    engine = SemanticSearchEngine(repository, EmbeddingService(fake_provider, dimensions=TEST_DIMENSIONS))

    outcome = await engine.search(SearchOptions.parse(query="anything"))

    assert outcome.ok is False
    assert outcome.failure == "provider"
    assert outcome.results == []


@pytest.mark.asyncio
async def test_semantic_engine_reports_store_failure(embedding_service):
    repository = MagicMock(spec=NoteRepository)
    repository.list_with_embedding = AsyncMock(side_effect=StoreError("db down"))
    engine = SemanticSearchEngine(repository, embedding_service)

    outcome = await engine.search(SearchOptions.parse(query="anything"))

    assert outcome.failure == "store"


# ---------------------------------------------------------------------------
# Fallback policy
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_provider_failure_falls_back_to_keyword(note_service: NoteService, fake_provider, add_note):
    await add_note(content="centrifuge settings", embedding=axis_vector(0), minutes=1)
    await add_note(content="centrifuge rotor", minutes=2)
    await add_note(content="pipette", minutes=3)
    fake_provider.fail = True

    semantic = await note_service.search(query="centrifuge", semantic=True)
    keyword = await note_service.search(query="centrifuge", semantic=False)

    assert _ids(semantic) == _ids(keyword)
    assert len(semantic) == 2


@pytest.mark.asyncio
async def test_failed_outcome_triggers_keyword_search():
    keyword_engine = MagicMock(spec=KeywordSearchEngine)
    keyword_engine.search = AsyncMock(return_value=["keyword-result"])
    semantic_engine = MagicMock(spec=SemanticSearchEngine)
    semantic_engine.search = AsyncMock(return_value=SemanticOutcome.failed("provider", "down"))
    engine = NoteSearchEngine(keyword_engine, semantic_engine)

    results = await engine.search(query="pcr")

    assert results == ["keyword-result"]
    keyword_engine.search.assert_awaited_once()


@pytest.mark.asyncio
async def test_successful_outcome_skips_keyword_search():
    note = MagicMock()
    keyword_engine = MagicMock(spec=KeywordSearchEngine)
    keyword_engine.search = AsyncMock()
    semantic_engine = MagicMock(spec=SemanticSearchEngine)
    semantic_engine.search = AsyncMock(return_value=SemanticOutcome(results=[ScoredNote(note=note, score=0.9)]))
    engine = NoteSearchEngine(keyword_engine, semantic_engine)

    assert await engine.search(query="pcr") == [note]
    keyword_engine.search.assert_not_awaited()


@pytest.mark.asyncio
async def test_semantic_false_never_calls_provider(note_service: NoteService, fake_provider, add_note):
    await add_note(content="spectrometer", embedding=axis_vector(0))

    await note_service.search(query="spectrometer", semantic=False)

    assert fake_provider.calls == []


@pytest.mark.asyncio
async def test_store_failure_yields_empty_list():
    keyword_engine = MagicMock(spec=KeywordSearchEngine)
    keyword_engine.search = AsyncMock(side_effect=StoreError("db down"))
    semantic_engine = MagicMock(spec=SemanticSearchEngine)
    engine = NoteSearchEngine(keyword_engine, semantic_engine)

    assert await engine.search(query="pcr", semantic=False) == []


@pytest.mark.asyncio
async def test_invalid_arguments_raise(note_service: NoteService):
    with pytest.raises(ValidationError):
        await note_service.search(query="pcr", limit="ten")


@pytest.mark.asyncio
async def test_semantic_search_on_empty_corpus(note_service: NoteService):
    assert await note_service.search(query="anything") == []

