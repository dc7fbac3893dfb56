"""Tests for ChangeWatcher — routing host document events into the index."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest
from conftest import FakeProvider, FakeStore

from noteindex.events import DocumentEvent, DocumentEventType, IndexEventType, document_bus
from noteindex.search._index import EmbeddingIndex
from noteindex.search.stores.local import LocalIndexStore
from noteindex.watcher import ChangeWatcher

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from conftest import EventRecorder

    from noteindex.config import IndexConfig
    from noteindex.events import EventBus


# =========================================================================
# Helpers
# =========================================================================


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class GatedProvider(FakeProvider):
    """Provider whose embed calls wait for ``gate`` once it is closed."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()
        self.gate.set()
        self.entered = asyncio.Event()

    async def embed(self, text: str, *, model: str) -> list[float]:
        self.entered.set()
        await self.gate.wait()
        return await super().embed(text, model=model)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def ready_index(index: EmbeddingIndex, store: FakeStore) -> EmbeddingIndex:
    store.put("a.md", "first version")
    await index.initialize()
    return index


# =========================================================================
# Leading-edge debounce
# =========================================================================


class TestModified:
    @pytest.mark.asyncio
    async def test_first_event_fires_immediately(
        self, ready_index: EmbeddingIndex, store: FakeStore, clock: FakeClock
    ) -> None:
        watcher = ChangeWatcher(ready_index, clock=clock)
        doc = store.put("a.md", "second version")

        assert await watcher.on_modified(doc)
        await watcher.wait_idle()

        assert ready_index.get("a.md").content == "second version"

    @pytest.mark.asyncio
    async def test_events_inside_window_are_suppressed(
        self, ready_index: EmbeddingIndex, store: FakeStore, clock: FakeClock
    ) -> None:
        watcher = ChangeWatcher(ready_index, clock=clock)
        assert watcher.debounce_window == 10.0

        assert await watcher.on_modified(store.put("a.md", "second version"))
        await watcher.wait_idle()
        clock.advance(5.0)
        assert not await watcher.on_modified(store.put("a.md", "third version"))
        await watcher.wait_idle()
        assert ready_index.get("a.md").content == "second version"

        clock.advance(5.0)
        assert await watcher.on_modified(store.put("a.md", "fourth version"))
        await watcher.wait_idle()
        assert ready_index.get("a.md").content == "fourth version"

    @pytest.mark.asyncio
    async def test_windows_are_per_document(
        self, ready_index: EmbeddingIndex, store: FakeStore, clock: FakeClock
    ) -> None:
        watcher = ChangeWatcher(ready_index, clock=clock)

        assert await watcher.on_modified(store.put("a.md", "edited"))
        assert await watcher.on_created(store.put("b.md", "brand new"))
        await watcher.wait_idle()

        assert ready_index.get("a.md").content == "edited"
        assert ready_index.get("b.md").content == "brand new"

    @pytest.mark.asyncio
    async def test_trailing_mode_applies_last_suppressed_edit(
        self, ready_index: EmbeddingIndex, store: FakeStore, clock: FakeClock
    ) -> None:
        watcher = ChangeWatcher(ready_index, debounce_window=0.05, trailing=True, clock=clock)

        assert await watcher.on_modified(store.put("a.md", "second version"))
        assert not await watcher.on_modified(store.put("a.md", "third version"))
        await watcher.wait_idle()

        assert ready_index.get("a.md").content == "third version"

    @pytest.mark.asyncio
    async def test_noop_when_index_not_ready(
        self, index: EmbeddingIndex, store: FakeStore, provider: FakeProvider, clock: FakeClock
    ) -> None:
        watcher = ChangeWatcher(index, clock=clock)

        assert not await watcher.on_modified(store.put("a.md", "hello"))
        await watcher.wait_idle()
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_ignored_paths_are_skipped(
        self, ready_index: EmbeddingIndex, store: FakeStore, clock: FakeClock
    ) -> None:
        watcher = ChangeWatcher(ready_index, clock=clock)
        assert not await watcher.on_created(store.put("diagram.canvas", "{}"))

    @pytest.mark.asyncio
    async def test_failures_are_reported_not_raised(
        self,
        ready_index: EmbeddingIndex,
        store: FakeStore,
        provider: FakeProvider,
        recorder: EventRecorder,
        clock: FakeClock,
    ) -> None:
        watcher = ChangeWatcher(ready_index, clock=clock)
        provider.fail_on = {"boom"}

        assert await watcher.on_modified(store.put("a.md", "boom"))
        await watcher.wait_idle()

        errors = recorder.of(IndexEventType.GENERATION_ERROR)
        assert len(errors) == 1
        assert errors[0].path == "a.md"
        assert ready_index.get("a.md").content == "first version"


# =========================================================================
# Deletes and renames
# =========================================================================


class TestDeleteAndRename:
    @pytest.mark.asyncio
    async def test_delete_removes_immediately(
        self, ready_index: EmbeddingIndex, store: FakeStore, clock: FakeClock
    ) -> None:
        watcher = ChangeWatcher(ready_index, clock=clock)
        doc = store.document("a.md")
        store.delete("a.md")

        assert await watcher.on_deleted(doc) == 1
        assert "a.md" not in ready_index

    @pytest.mark.asyncio
    async def test_rename_moves_records(
        self, ready_index: EmbeddingIndex, store: FakeStore, clock: FakeClock
    ) -> None:
        watcher = ChangeWatcher(ready_index, clock=clock)
        store.delete("a.md")
        renamed = store.put("notes/b.md", "first version")

        assert await watcher.on_renamed(renamed, "a.md")
        assert "a.md" not in ready_index
        await watcher.wait_idle()

        assert ready_index.keys() == ["notes/b.md"]


class TestRemovalDuringGeneration:
    @pytest.fixture
    def gated(self) -> GatedProvider:
        return GatedProvider()

    @pytest.fixture
    async def gated_index(
        self,
        store: FakeStore,
        gated: GatedProvider,
        config: IndexConfig,
        bus: EventBus[IndexEventType],
    ) -> AsyncIterator[EmbeddingIndex]:
        store.put("a.md", "first version")
        idx = EmbeddingIndex(
            store,
            gated,
            config=config,
            persistence=LocalIndexStore(config.cache_path),
            events=bus,
        )
        await idx.initialize()
        gated.gate.clear()
        gated.entered.clear()
        yield idx
        gated.gate.set()
        await idx.cleanup()

    @pytest.mark.asyncio
    async def test_delete_wins_over_in_flight_regeneration(
        self,
        gated_index: EmbeddingIndex,
        gated: GatedProvider,
        store: FakeStore,
        clock: FakeClock,
    ) -> None:
        watcher = ChangeWatcher(gated_index, clock=clock)
        assert await watcher.on_modified(store.put("a.md", "second version"))
        await gated.entered.wait()

        doc = store.document("a.md")
        store.delete("a.md")
        assert await watcher.on_deleted(doc) == 1
        gated.gate.set()
        await watcher.wait_idle()

        assert "a.md" not in gated_index
        assert gated_index.keys() == []

    @pytest.mark.asyncio
    async def test_rename_wins_over_in_flight_regeneration(
        self,
        gated_index: EmbeddingIndex,
        gated: GatedProvider,
        store: FakeStore,
        clock: FakeClock,
    ) -> None:
        watcher = ChangeWatcher(gated_index, clock=clock)
        assert await watcher.on_modified(store.put("a.md", "second version"))
        await gated.entered.wait()

        store.delete("a.md")
        renamed = store.put("notes/b.md", "second version")
        assert await watcher.on_renamed(renamed, "a.md")
        gated.gate.set()
        await watcher.wait_idle()

        assert gated_index.keys() == ["notes/b.md"]
        assert gated_index.get("notes/b.md").content == "second version"


# =========================================================================
# Bus wiring
# =========================================================================


class TestAttach:
    @pytest.mark.asyncio
    async def test_routes_bus_events(
        self, ready_index: EmbeddingIndex, store: FakeStore, clock: FakeClock
    ) -> None:
        bus = document_bus()
        watcher = ChangeWatcher(ready_index, clock=clock)
        subscriptions = watcher.attach(bus)
        assert len(subscriptions) == 4
        assert watcher.attached

        await bus.emit(DocumentEvent(DocumentEventType.CREATED, store.put("c.md", "created")))
        await watcher.wait_idle()
        assert "c.md" in ready_index

        doc = store.document("a.md")
        store.delete("a.md")
        await bus.emit(DocumentEvent(DocumentEventType.DELETED, doc))
        assert "a.md" not in ready_index

        moved = store.put("d.md", "created")
        store.delete("c.md")
        await bus.emit(DocumentEvent(DocumentEventType.RENAMED, moved, old_path="c.md"))
        await watcher.wait_idle()
        assert ready_index.keys() == ["d.md"]

    @pytest.mark.asyncio
    async def test_detach_stops_routing(
        self, ready_index: EmbeddingIndex, store: FakeStore, clock: FakeClock
    ) -> None:
        bus = document_bus()
        watcher = ChangeWatcher(ready_index, clock=clock)
        watcher.attach(bus)

        assert watcher.detach() == 4
        assert bus.handler_count == 0
        await bus.emit(DocumentEvent(DocumentEventType.CREATED, store.put("c.md", "created")))
        await watcher.wait_idle()
        assert "c.md" not in ready_index

    @pytest.mark.asyncio
    async def test_close_detaches(self, ready_index: EmbeddingIndex, clock: FakeClock) -> None:
        bus = document_bus()
        watcher = ChangeWatcher(ready_index, clock=clock)
        watcher.attach(bus)

        await watcher.close()

        assert not watcher.attached
        assert bus.handler_count == 0
