"""noteindex: semantic embedding index for a live notes vault.

Change-aware, persisted vector embeddings of notes and their sections,
kept in sync with document edits and queried by cosine similarity.
"""

__version__ = "0.1.0"

from noteindex.config import IndexConfig
from noteindex.context import (
    format_conversation_context,
    format_notes_context,
    render_template,
    validate_template,
)
from noteindex.events import (
    DocumentEvent,
    DocumentEventType,
    EventBus,
    IndexEvent,
    IndexEventType,
    Subscription,
)
from noteindex.exceptions import (
    BackendUnreachableError,
    CacheInvalidError,
    ConfigurationError,
    GenerationError,
    NoteIndexError,
    NotInitializedError,
    TemplateError,
    TooManyErrorsError,
)
from noteindex.ref import (
    Document,
    DocumentRef,
    DocumentSnapshot,
    DocumentStat,
    LiveRef,
    StaleRef,
)
from noteindex.search._index import EmbeddingIndex
from noteindex.search.protocols import EmbeddingProvider
from noteindex.search.providers.openai import OpenAIEmbedding
from noteindex.search.stores.local import LocalIndexStore
from noteindex.search.types import (
    EmbeddingRecord,
    IndexState,
    IndexStats,
    ProgressState,
    SearchResult,
    SyncResult,
)
from noteindex.vault import DocumentStore, LocalVault, NoteContent
from noteindex.watcher import ChangeWatcher

__all__ = [
    "BackendUnreachableError",
    "CacheInvalidError",
    "ChangeWatcher",
    "ConfigurationError",
    "Document",
    "DocumentEvent",
    "DocumentEventType",
    "DocumentRef",
    "DocumentSnapshot",
    "DocumentStat",
    "DocumentStore",
    "EmbeddingIndex",
    "EmbeddingProvider",
    "EmbeddingRecord",
    "EventBus",
    "GenerationError",
    "IndexConfig",
    "IndexEvent",
    "IndexEventType",
    "IndexState",
    "IndexStats",
    "LiveRef",
    "LocalIndexStore",
    "LocalVault",
    "NoteContent",
    "NoteIndexError",
    "NotInitializedError",
    "OpenAIEmbedding",
    "ProgressState",
    "SearchResult",
    "StaleRef",
    "SyncResult",
    "TemplateError",
    "TooManyErrorsError",
    "__version__",
    "format_conversation_context",
    "format_notes_context",
    "render_template",
    "validate_template",
]
