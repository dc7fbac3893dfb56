"""EmbeddingIndex — change-aware embedding cache over a live document store."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import replace
from types import MappingProxyType
from typing import TYPE_CHECKING

from noteindex._scheduling import TrailingDebouncer
from noteindex.config import IndexConfig
from noteindex.events import IndexEventType, index_bus
from noteindex.exceptions import (
    BackendUnreachableError,
    ConfigurationError,
    GenerationError,
    NoteIndexError,
    NotInitializedError,
    TooManyErrorsError,
)
from noteindex.ref import LiveRef
from noteindex.search._changes import can_reuse_vector, content_hash, needs_regeneration
from noteindex.search._similarity import rank
from noteindex.search.extractors import extract_units
from noteindex.search.progress import ProgressReporter
from noteindex.search.stores.local import LocalIndexStore
from noteindex.search.types import (
    EmbeddingRecord,
    IndexState,
    IndexStats,
    LoadStatus,
    ProgressState,
    SearchResult,
    SyncResult,
    belongs_to,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from noteindex.events import EventBus
    from noteindex.ref import Document
    from noteindex.search.protocols import EmbeddingProvider
    from noteindex.vault.protocol import DocumentStore

logger = logging.getLogger(__name__)

_BYTES_PER_FLOAT = 4
_SIZE_UNITS = ("B", "KB", "MB", "GB")


def format_bytes(size: int) -> str:
    """Format *size* as ``"12.5 KB"`` (binary units, two decimals at most)."""
    if size <= 0:
        return "0 B"
    value = float(size)
    exponent = 0
    while value >= 1024 and exponent < len(_SIZE_UNITS) - 1:
        value /= 1024
        exponent += 1
    return f"{round(value, 2):g} {_SIZE_UNITS[exponent]}"


class EmbeddingIndex:
    """In-memory map of record key → :class:`EmbeddingRecord`, kept in sync
    with a :class:`~noteindex.vault.protocol.DocumentStore`.

    Lifecycle: ``UNINITIALIZED → INITIALIZING → READY → cleanup() →
    UNINITIALIZED``.  The index owns its records exclusively: the
    persistence store only serializes snapshots of them, and progress is
    published through the injected event bus.

    Usage::

        index = EmbeddingIndex(LocalVault("~/notes"), OpenAIEmbedding(), config=config)
        await index.initialize()
        results = await index.search("what did I write about tides?")
    """

    def __init__(
        self,
        store: DocumentStore,
        provider: EmbeddingProvider,
        *,
        config: IndexConfig | None = None,
        persistence: LocalIndexStore | None = None,
        events: EventBus[IndexEventType] | None = None,
    ) -> None:
        self._config = config or IndexConfig()
        self._store = store
        self._provider = provider
        self._persistence = persistence or LocalIndexStore(self._config.cache_path)
        self._events = events if events is not None else index_bus()
        self._model = self._config.embedding_model

        self._records: dict[str, EmbeddingRecord] = {}
        self._state = IndexState.UNINITIALIZED
        # Bumped by cleanup(); work started under an older epoch is discarded.
        self._epoch = 0
        # Bumped per path on removal; a regeneration that overlaps a removal is discarded.
        self._removals: dict[str, int] = {}
        self._progress = ProgressReporter(self._events, self.stats)
        self._save_debouncer = TrailingDebouncer(
            self._save_now, self._config.save_delay, name="snapshot save"
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> IndexConfig:
        return self._config

    @property
    def model(self) -> str:
        """Identity of the active embedding model."""
        return self._model

    @property
    def state(self) -> IndexState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is IndexState.READY

    @property
    def events(self) -> EventBus[IndexEventType]:
        """Bus on which index notifications are published."""
        return self._events

    @property
    def persistence(self) -> LocalIndexStore:
        return self._persistence

    @property
    def progress(self) -> ProgressState:
        return self._progress.state

    @property
    def records(self) -> Mapping[str, EmbeddingRecord]:
        """Read-only view of the current records."""
        return MappingProxyType(self._records)

    @property
    def dimensions(self) -> int:
        """Dimensionality of the stored vectors (0 when empty)."""
        for record in self._records.values():
            return len(record.vector)
        return 0

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def get(self, key: str) -> EmbeddingRecord | None:
        return self._records.get(key)

    def keys(self) -> list[str]:
        return list(self._records)

    def stats(self) -> IndexStats:
        """Aggregate statistics over the current records."""
        count = len(self._records)
        files = {record.path for record in self._records.values()}
        dimensions = self.dimensions
        return IndexStats(
            total_embeddings=count,
            total_files=len(files),
            average_sections_per_file=count / len(files) if files else 0.0,
            embedding_dimensions=dimensions,
            disk_usage_estimate=format_bytes(count * dimensions * _BYTES_PER_FLOAT),
        )

    def is_ignored(self, path: str) -> bool:
        """Return True for non-Markdown paths and paths under an ignored folder."""
        if not path.endswith(".md"):
            return True
        return any(path.startswith(folder + "/") for folder in self._config.ignored_folders)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Validate configuration, reach the backend, and load or build the index.

        No-op while initializing or ready.  On failure the index returns to
        ``UNINITIALIZED`` so the call can be retried.

        Raises:
            ConfigurationError: No embedding model is configured.
            BackendUnreachableError: The connectivity check failed.
        """
        if self._state is not IndexState.UNINITIALIZED:
            return

        self._state = IndexState.INITIALIZING
        logger.info("Initializing embedding index (model=%s)", self._model or "<none>")
        try:
            if not self._model:
                msg = "No embedding model configured"
                raise ConfigurationError(msg)
            if not await self._check_connection():
                msg = "Cannot connect to the embedding backend"
                raise BackendUnreachableError(msg)
            cache_loaded = await self._load_cache()
        except Exception as e:
            self._state = IndexState.UNINITIALIZED
            logger.warning("Failed to initialize embedding index: %s", e)
            await self._progress.emit(IndexEventType.GENERATION_ERROR, error=e)
            raise

        self._state = IndexState.READY
        logger.info("Embedding index initialized")
        await self._progress.emit(
            IndexEventType.SERVICE_INITIALIZED, stats=self.stats().to_dict()
        )
        await self._progress.publish()

        if cache_loaded:
            logger.info("Using %d cached embeddings", len(self._records))
        else:
            logger.info("No usable cache, generating embeddings")
            await self.regenerate_all()

    async def cleanup(self) -> None:
        """Flush pending persistence, drop all records, and return to ``UNINITIALIZED``.

        A running batch stops before its next document; its in-flight result
        is discarded.
        """
        await self._save_debouncer.flush()
        self._records.clear()
        self._epoch += 1
        self._removals.clear()
        self._state = IndexState.UNINITIALIZED
        await self._progress.reset()

    async def update_model(self, model: str) -> bool:
        """Switch to *model*, dropping the cache built with the previous one.

        Re-initializes if the index was ready.  Returns False if *model* is
        already active.
        """
        if model == self._model:
            return False
        was_ready = self.is_ready
        logger.info("Embedding model changed from %s to %s", self._model, model)
        await self.cleanup()
        await asyncio.to_thread(self._persistence.clear)
        self._model = model
        if was_ready:
            await self.initialize()
        return True

    # ------------------------------------------------------------------
    # Batch operations
    # ------------------------------------------------------------------

    async def regenerate_all(self) -> None:
        """Bring every eligible document up to date.

        Unchanged documents are skipped.  Per-document failures are counted
        and skipped; once failures exceed ``config.max_errors`` the batch
        stops.

        Raises:
            TooManyErrorsError: The batch aborted on the error threshold.
        """
        if self._state is not IndexState.READY:
            logger.warning("Generation postponed: index not ready")
            return
        if self._progress.is_running:
            logger.warning("Generation already running")
            return

        epoch = self._epoch
        documents = await self._eligible_documents()
        await self._progress.update(
            total=len(documents), processed=0, errors=0, is_running=True
        )
        logger.info("Starting embeddings generation for %d documents", len(documents))

        try:
            for document in documents:
                if epoch != self._epoch:
                    break
                failure: Exception | None = None
                try:
                    changed = await self._process(document, epoch)
                except Exception as e:
                    failure = e
                    changed = False
                if epoch != self._epoch:
                    break

                if failure is not None:
                    logger.warning(
                        "Error processing %s", document.path, exc_info=failure
                    )
                    await self._progress.emit(
                        IndexEventType.FILE_PROCESSED, path=document.path, success=False
                    )
                    state = await self._advance(failed=True)
                    if state.errors > self._config.max_errors:
                        error = TooManyErrorsError(state.errors, state.processed)
                        logger.error("%s; stopping embedding generation", error)
                        await self._progress.emit(IndexEventType.GENERATION_ERROR, error=error)
                        raise error from failure
                    continue

                if changed:
                    await self._progress.emit(
                        IndexEventType.FILE_PROCESSED, path=document.path, success=True
                    )
                else:
                    logger.debug("Skipped (no changes): %s", document.path)

                state = await self._advance(failed=False)
                if state.processed % self._config.throttle_every == 0:
                    await asyncio.sleep(self._config.throttle_delay)
        finally:
            if epoch == self._epoch:
                await self._progress.update(is_running=False)
                self._log_completion()
            else:
                logger.info("Generation stopped: index was cleaned up")

    async def rebuild(self) -> None:
        """Drop every record and the persisted cache, then regenerate everything."""
        self._require_ready()
        if self._progress.is_running:
            logger.warning("Generation already running")
            return
        self._save_debouncer.cancel()
        self._records.clear()
        await asyncio.to_thread(self._persistence.clear)
        await self._progress.publish()
        await self.regenerate_all()

    async def sync(self) -> SyncResult:
        """Remove records of vanished documents and refresh changed ones.

        Per-document failures are logged and skipped.  The snapshot is
        written immediately.
        """
        self._require_ready()
        documents = await self._eligible_documents()
        current = {document.path for document in documents}

        removed = 0
        for path in sorted({record.path for record in self._records.values()} - current):
            removed += self._drop_document(path)

        added = updated = 0
        for document in documents:
            indexed = any(belongs_to(key, document.path) for key in self._records)
            try:
                changed = await self._process(document, self._epoch)
            except Exception:
                logger.warning("Error syncing %s", document.path, exc_info=True)
                continue
            if changed:
                if indexed:
                    updated += 1
                else:
                    added += 1

        self._save_debouncer.cancel()
        await self._save_now()
        await self._progress.publish()

        result = SyncResult(added=added, updated=updated, removed=removed)
        logger.info("Sync completed: %s", result)
        return result

    # ------------------------------------------------------------------
    # Incremental operations
    # ------------------------------------------------------------------

    async def regenerate_one(self, document: Document) -> bool:
        """Bring a single document up to date.

        Returns True if its records changed.  Ignored paths are skipped.

        Raises:
            NotInitializedError: The index is not ready.
            GenerationError: An embedding call failed (also
                :class:`BackendUnreachableError` from the provider).
        """
        self._require_ready()
        if self.is_ignored(document.path):
            return False

        try:
            changed = await self._process(document, self._epoch)
        except Exception:
            await self._progress.emit(
                IndexEventType.FILE_PROCESSED, path=document.path, success=False
            )
            raise

        if changed:
            await self._progress.emit(
                IndexEventType.FILE_PROCESSED, path=document.path, success=True
            )
            if not self._progress.is_running:
                await self._progress.publish()
        return changed

    async def remove_for_document(self, path: str) -> int:
        """Delete every record keyed ``path`` or ``path#…``.  Returns the count."""
        removed = self._drop_document(path)
        if removed:
            logger.debug("Removed %d embeddings for %s", removed, path)
            self._schedule_save()
            if not self._progress.is_running:
                await self._progress.publish()
        return removed

    def needs_regeneration(self, key: str, cleaned_content: str, source_mtime: int) -> bool:
        """Apply the change policy to the record stored under *key*."""
        return needs_regeneration(self._records.get(key), cleaned_content, source_mtime)

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    async def search(
        self,
        text: str,
        top_k: int | None = None,
        min_similarity: float | None = None,
    ) -> list[SearchResult]:
        """Return the records most similar to *text*, best first.

        Empty when the index is not ready or holds no records.
        """
        if self._state is not IndexState.READY or not self._records:
            return []

        query = await self._embed(text)
        return rank(
            query,
            list(self._records.values()),
            top_k=self._config.max_relevant_notes if top_k is None else top_k,
            min_similarity=(
                self._config.min_similarity if min_similarity is None else min_similarity
            ),
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def flush(self) -> bool:
        """Write a pending snapshot now.  Returns False if none was pending."""
        return await self._save_debouncer.flush()

    def _schedule_save(self) -> None:
        self._save_debouncer.schedule()

    async def _save_now(self) -> None:
        records = dict(self._records)
        if not records and not self._persistence.exists():
            return
        try:
            await asyncio.to_thread(self._persistence.save, records, model=self._model)
        except (OSError, TypeError, ValueError):
            logger.warning("Failed to save embeddings cache", exc_info=True)

    async def _load_cache(self) -> bool:
        result = await asyncio.to_thread(self._persistence.load, model=self._model)
        if result.status is LoadStatus.INVALIDATED:
            logger.info("Cache invalidated (%s), a full rebuild is required", result.reason)
        if result.snapshot is None or not result.snapshot.records:
            return False

        resolved: dict[str, Document | None] = {}
        records: dict[str, EmbeddingRecord] = {}
        for key, record in result.snapshot.records.items():
            path = record.path
            if path not in resolved:
                try:
                    resolved[path] = await self._store.resolve(path)
                except OSError:
                    logger.debug("Could not resolve %s", path, exc_info=True)
                    resolved[path] = None
            live = resolved[path]
            records[key] = replace(record, document=LiveRef(live)) if live else record

        self._records = records
        logger.info("Restored %d embeddings from cache", len(records))
        await self._progress.publish()
        return True

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _require_ready(self) -> None:
        if self._state is not IndexState.READY:
            msg = "Embedding index not initialized"
            raise NotInitializedError(msg)

    async def _eligible_documents(self) -> list[Document]:
        documents = await self._store.list_documents()
        return [d for d in documents if not self.is_ignored(d.path)]

    async def _advance(self, *, failed: bool) -> ProgressState:
        """Count one processed document; notify every ``progress_every`` documents."""
        state = self._progress.state
        processed = state.processed + 1
        return await self._progress.update(
            processed=processed,
            errors=state.errors + (1 if failed else 0),
            notify=processed % self._config.progress_every == 0,
        )

    def _log_completion(self) -> None:
        state = self._progress.state
        rate = round(state.processed / state.total * 100) if state.total else 100
        if state.errors:
            logger.warning(
                "Embeddings completed: %d records (%d errors, %d%% processed)",
                len(self._records),
                state.errors,
                rate,
            )
        else:
            logger.info("Embeddings completed: %d records", len(self._records))

    async def _process(self, document: Document, epoch: int) -> bool:
        """Regenerate *document*'s records if anything changed.

        New vectors are computed first; the old keys are then swapped for
        the new records without an intervening await, so a failure leaves
        the previous records in place.
        """
        removals = self._removals.get(document.path, 0)
        note = await self._store.read(document)
        units = extract_units(document.path, note)
        mtime = document.stat.mtime

        indexed = {key for key in self._records if belongs_to(key, document.path)}
        if indexed == {unit.key for unit in units} and not any(
            needs_regeneration(self._records.get(unit.key), unit.content, mtime)
            for unit in units
        ):
            return False

        ref = LiveRef(document)
        fresh: list[EmbeddingRecord] = []
        for unit in units:
            previous = self._records.get(unit.key)
            if previous is not None and can_reuse_vector(previous, unit.content):
                vector = previous.vector
            else:
                vector = await self._embed(unit.content)
            fresh.append(
                EmbeddingRecord(
                    key=unit.key,
                    vector=vector,
                    content=unit.content,
                    content_hash=content_hash(unit.content),
                    last_modified=mtime,
                    document=ref,
                    section_name=unit.section_name,
                )
            )

        if epoch != self._epoch:
            return False
        if removals != self._removals.get(document.path, 0):
            logger.debug("Discarding embeddings for %s: removed while generating", document.path)
            return False

        self._remove_keys(document.path)
        for record in fresh:
            self._records[record.key] = record
            logger.debug("Stored embedding for %s (%dD)", record.key, len(record.vector))
        self._schedule_save()
        return True

    def _drop_document(self, path: str) -> int:
        self._removals[path] = self._removals.get(path, 0) + 1
        return self._remove_keys(path)

    def _remove_keys(self, path: str) -> int:
        doomed = [key for key in self._records if belongs_to(key, path)]
        for key in doomed:
            del self._records[key]
        return len(doomed)

    async def _check_connection(self) -> bool:
        result = self._provider.check_connection()
        if inspect.isawaitable(result):
            result = await result
        return bool(result)

    async def _embed(self, text: str) -> list[float]:
        """Embed *text* (truncated), handling both sync and async providers."""
        truncated = text[: self._config.max_input_chars]
        try:
            result = self._provider.embed(truncated, model=self._model)
            if inspect.isawaitable(result):
                result = await result
        except NoteIndexError:
            raise
        except Exception as e:
            msg = f"Embedding generation error: {e}"
            raise GenerationError(msg) from e

        if not result:
            msg = "Invalid embedding response"
            raise GenerationError(msg)
        vector = [float(x) for x in result]
        dimensions = self.dimensions
        if dimensions and len(vector) != dimensions:
            msg = f"Embedding has {len(vector)} dimensions, index uses {dimensions}"
            raise GenerationError(msg)
        return vector
