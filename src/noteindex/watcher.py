"""ChangeWatcher — routes host document events to the embedding index."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from noteindex._scheduling import KeyedDebouncer
from noteindex.events import DocumentEventType, IndexEvent, IndexEventType

if TYPE_CHECKING:
    from collections.abc import Callable

    from noteindex.events import DocumentEvent, EventBus, Subscription
    from noteindex.ref import Document
    from noteindex.search._index import EmbeddingIndex

logger = logging.getLogger(__name__)


class ChangeWatcher:
    """Keeps an :class:`EmbeddingIndex` consistent with host edits.

    Modifications and creations trigger a leading-edge debounced
    :meth:`EmbeddingIndex.regenerate_one` per path: the first event runs at
    once, later events for the same path inside *debounce_window* seconds
    are dropped.  Deletions remove records immediately; renames remove the
    old path's records and regenerate under the new path.

    Every callback is a no-op while the index is not ready, and ignored
    paths are skipped.
    """

    def __init__(
        self,
        index: EmbeddingIndex,
        *,
        debounce_window: float | None = None,
        trailing: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._index = index
        window = index.config.debounce_window if debounce_window is None else debounce_window
        self._debouncer = KeyedDebouncer(
            self._regenerate,
            window,
            trailing=trailing,
            clock=clock,
            on_error=self._on_error,
        )
        self._subscriptions: list[Subscription] = []

    @property
    def debounce_window(self) -> float:
        return self._debouncer.window

    @property
    def attached(self) -> bool:
        return bool(self._subscriptions)

    # ------------------------------------------------------------------
    # Bus wiring
    # ------------------------------------------------------------------

    def attach(self, bus: EventBus[DocumentEventType]) -> list[Subscription]:
        """Subscribe to the host's document events on *bus*."""
        routes = {
            DocumentEventType.MODIFIED: self._handle_modified,
            DocumentEventType.CREATED: self._handle_created,
            DocumentEventType.DELETED: self._handle_deleted,
            DocumentEventType.RENAMED: self._handle_renamed,
        }
        subscriptions = [bus.subscribe(et, handler) for et, handler in routes.items()]
        self._subscriptions.extend(subscriptions)
        return subscriptions

    def detach(self) -> int:
        """Unsubscribe every handle taken by :meth:`attach`.  Returns the count."""
        detached = sum(1 for sub in self._subscriptions if sub.unsubscribe())
        self._subscriptions.clear()
        return detached

    async def _handle_modified(self, event: DocumentEvent) -> None:
        await self.on_modified(event.document)

    async def _handle_created(self, event: DocumentEvent) -> None:
        await self.on_created(event.document)

    async def _handle_deleted(self, event: DocumentEvent) -> None:
        await self.on_deleted(event.document)

    async def _handle_renamed(self, event: DocumentEvent) -> None:
        if event.old_path is None:
            logger.warning("Rename event for %s without an old path", event.path)
            return
        await self.on_renamed(event.document, event.old_path)

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    async def on_modified(self, document: Document) -> bool:
        """Schedule regeneration of *document*.  Returns True if it fired now."""
        return self._schedule(document)

    async def on_created(self, document: Document) -> bool:
        """Schedule indexing of a new *document*.  Returns True if it fired now."""
        return self._schedule(document)

    async def on_deleted(self, document: Document) -> int:
        """Remove *document*'s records.  Returns the number removed."""
        if not self._index.is_ready or self._index.is_ignored(document.path):
            return 0
        self._debouncer.cancel(document.path)
        return await self._index.remove_for_document(document.path)

    async def on_renamed(self, document: Document, old_path: str) -> bool:
        """Drop records under *old_path* and schedule *document* under its new path."""
        if not self._index.is_ready:
            return False
        self._debouncer.cancel(old_path)
        removed = await self._index.remove_for_document(old_path)
        logger.debug("Renamed %s -> %s (%d records dropped)", old_path, document.path, removed)
        return self._schedule(document)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def wait_idle(self) -> None:
        """Wait for every scheduled regeneration to finish."""
        await self._debouncer.wait_idle()

    async def close(self) -> None:
        """Detach from the bus and cancel scheduled regenerations."""
        self.detach()
        self._debouncer.cancel_all()
        await self._debouncer.wait_idle()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _schedule(self, document: Document) -> bool:
        if not self._index.is_ready or self._index.is_ignored(document.path):
            return False
        fired = self._debouncer.trigger(document.path, document)
        if not fired:
            logger.debug("Debounced change for %s", document.path)
        return fired

    async def _regenerate(self, document: Document) -> None:
        if not self._index.is_ready:
            return
        changed = await self._index.regenerate_one(document)
        if changed:
            logger.info("Updated embeddings for %s", document.path)

    async def _on_error(self, path: str, error: Exception) -> None:
        logger.warning("Failed to update embeddings for %s", path, exc_info=error)
        await self._index.events.emit(
            IndexEvent(
                event_type=IndexEventType.GENERATION_ERROR,
                data={"error": error, "path": path},
            )
        )
