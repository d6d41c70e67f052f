"""Search package: embeddings, chunking, keyword and semantic search."""

from notebrain.search.embeddings import EmbeddingService, cosine_similarity
from notebrain.search.engine import (
    KeywordSearchEngine,
    NoteSearchEngine,
    ScoredNote,
    SemanticOutcome,
    SemanticSearchEngine,
)
from notebrain.search.indexer import BackfillResult, NoteIndexer
from notebrain.search.params import SearchOptions

__all__ = [
    "BackfillResult",
    "EmbeddingService",
    "KeywordSearchEngine",
    "NoteIndexer",
    "NoteSearchEngine",
    "ScoredNote",
    "SearchOptions",
    "SemanticOutcome",
    "SemanticSearchEngine",
    "cosine_similarity",
]
