"""Semantic index layer — index, change detection, extraction, stores, providers."""

from noteindex.search._changes import content_hash, needs_regeneration
from noteindex.search._index import EmbeddingIndex
from noteindex.search._similarity import cosine_similarity, rank
from noteindex.search.extractors import (
    EmbeddableUnit,
    clean_content,
    extract_units,
    split_sections,
)
from noteindex.search.progress import ProgressReporter
from noteindex.search.protocols import EmbeddingProvider
from noteindex.search.stores.local import LocalIndexStore
from noteindex.search.types import (
    EmbeddingRecord,
    IndexState,
    IndexStats,
    ProgressState,
    SearchResult,
    SyncResult,
)

__all__ = [
    "EmbeddableUnit",
    "EmbeddingIndex",
    "EmbeddingProvider",
    "EmbeddingRecord",
    "IndexState",
    "IndexStats",
    "LocalIndexStore",
    "ProgressReporter",
    "ProgressState",
    "SearchResult",
    "SyncResult",
    "clean_content",
    "content_hash",
    "cosine_similarity",
    "extract_units",
    "needs_regeneration",
    "rank",
    "split_sections",
]
