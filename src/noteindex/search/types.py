"""Search layer data types."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from noteindex.ref import DocumentRef


# ------------------------------------------------------------------
# Records
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EmbeddingRecord:
    """One indexed unit: a whole document or one section of it.

    Attributes:
        key: ``path`` or ``path#section``.
        vector: Embedding vector.
        content: Cleaned text the vector was generated from.
        content_hash: Hex digest of *content*.
        last_modified: Source document mtime (epoch ms) at generation time.
        document: Reference to the owning document.
        section_name: Heading text for section records, None otherwise.
    """

    key: str
    vector: list[float]
    content: str
    content_hash: str
    last_modified: int
    document: DocumentRef
    section_name: str | None = None

    @property
    def path(self) -> str:
        """Path of the owning document."""
        return self.document.path


def document_path(key: str) -> str:
    """Return the document path part of a record *key*."""
    return key.split("#", 1)[0]


def belongs_to(key: str, path: str) -> bool:
    """Return True if *key* is the record of *path* or one of its sections."""
    return key == path or key.startswith(path + "#")


@dataclass(frozen=True, slots=True)
class IndexSnapshot:
    """A persisted, versioned, model-tagged copy of the index."""

    version: str
    model: str
    model_dimensions: int
    created_at: int
    updated_at: int
    records: dict[str, EmbeddingRecord] = field(default_factory=dict)


class LoadStatus(Enum):
    """Outcome of reading a persisted snapshot."""

    LOADED = "loaded"
    MISSING = "missing"
    INVALIDATED = "invalidated"


@dataclass(frozen=True, slots=True)
class LoadResult:
    """Result of :meth:`LocalIndexStore.load`.

    ``snapshot`` is set only when ``status`` is ``LOADED``.
    """

    status: LoadStatus
    snapshot: IndexSnapshot | None = None
    reason: str = ""

    @property
    def loaded(self) -> bool:
        return self.status is LoadStatus.LOADED


# ------------------------------------------------------------------
# Progress and stats
# ------------------------------------------------------------------


class IndexState(Enum):
    """Lifecycle state of an :class:`EmbeddingIndex`."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


@dataclass(frozen=True, slots=True)
class ProgressState:
    """Batch progress counters."""

    total: int = 0
    processed: int = 0
    errors: int = 0
    is_running: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class IndexStats:
    """Aggregate statistics about the in-memory index."""

    total_embeddings: int = 0
    total_files: int = 0
    average_sections_per_file: float = 0.0
    embedding_dimensions: int = 0
    disk_usage_estimate: str = "0 B"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class SyncResult:
    """Counters from :meth:`EmbeddingIndex.sync`."""

    added: int = 0
    updated: int = 0
    removed: int = 0


# ------------------------------------------------------------------
# Results
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SearchResult:
    """A single similarity search hit.

    Attributes:
        key: Record key that matched.
        document: Reference to the owning document.
        content: Leading excerpt of the matched text.
        similarity: Cosine similarity with the query (higher is closer).
        section_name: Section heading if the match is a section record.
    """

    key: str
    document: DocumentRef
    content: str
    similarity: float
    section_name: str | None = None
