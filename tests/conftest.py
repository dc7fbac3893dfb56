"""Shared fixtures for noteindex tests."""

from __future__ import annotations

import hashlib
import math
from typing import TYPE_CHECKING

import pytest

from noteindex.config import IndexConfig
from noteindex.events import IndexEvent, IndexEventType, index_bus
from noteindex.exceptions import GenerationError
from noteindex.ref import Document, DocumentStat
from noteindex.search._index import EmbeddingIndex
from noteindex.search.stores.local import LocalIndexStore
from noteindex.vault.local import parse_note

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from noteindex.events import EventBus
    from noteindex.vault.protocol import NoteContent

FAKE_DIM = 32
FAKE_MODEL = "fake-embed"


def hash_vector(text: str, dim: int = FAKE_DIM) -> list[float]:
    """Deterministic unit vector derived from the SHA-256 of *text*."""
    h = hashlib.sha256(text.encode()).digest()
    raw = [float(b) + 1.0 for b in h[:dim]]
    norm = math.sqrt(sum(x * x for x in raw))
    return [x / norm for x in raw]


class FakeProvider:
    """Deterministic async embedding provider that records its calls.

    ``vectors`` pins the vector for an exact text; everything else gets a
    hash-derived vector.  Texts containing any ``fail_on`` marker (or every
    text when ``fail_all``) raise :class:`GenerationError`.
    """

    def __init__(self, dim: int = FAKE_DIM) -> None:
        self.dim = dim
        self.calls: list[str] = []
        self.vectors: dict[str, list[float]] = {}
        self.fail_on: set[str] = set()
        self.fail_all = False
        self.reachable = True

    async def embed(self, text: str, *, model: str) -> list[float]:
        self.calls.append(text)
        if self.fail_all or any(marker in text for marker in self.fail_on):
            msg = f"backend refused {text[:20]!r}"
            raise GenerationError(msg)
        if text in self.vectors:
            return list(self.vectors[text])
        return hash_vector(text, self.dim)

    async def check_connection(self) -> bool:
        return self.reachable


class FakeStore:
    """In-memory :class:`~noteindex.vault.protocol.DocumentStore`.

    Every :meth:`put` bumps the document's mtime so edits look newer.
    """

    def __init__(self) -> None:
        self._texts: dict[str, str] = {}
        self._stats: dict[str, DocumentStat] = {}
        self._clock = 1_000

    def put(self, path: str, text: str, *, mtime: int | None = None) -> Document:
        self._clock += 1_000
        stamp = self._clock if mtime is None else mtime
        self._texts[path] = text
        self._stats[path] = DocumentStat(mtime=stamp, ctime=stamp, size=len(text))
        return self.document(path)

    def delete(self, path: str) -> None:
        del self._texts[path]
        del self._stats[path]

    def document(self, path: str) -> Document:
        return Document(path=path, stat=self._stats[path])

    async def list_documents(self) -> list[Document]:
        return [self.document(p) for p in sorted(self._texts)]

    async def read(self, document: Document) -> NoteContent:
        try:
            text = self._texts[document.path]
        except KeyError:
            raise FileNotFoundError(document.path) from None
        return parse_note(text)

    async def resolve(self, path: str) -> Document | None:
        if path not in self._texts:
            return None
        return self.document(path)


class EventRecorder:
    """Collects every index notification emitted on a bus."""

    def __init__(self, bus: EventBus[IndexEventType]) -> None:
        self.events: list[IndexEvent] = []
        for event_type in IndexEventType:
            bus.register(event_type, self.events.append)

    def of(self, event_type: IndexEventType) -> list[IndexEvent]:
        return [e for e in self.events if e.event_type is event_type]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def config(tmp_path: Path) -> IndexConfig:
    """No throttling; snapshots are written only on flush/cleanup; cache under tmp_path."""
    return IndexConfig(
        embedding_model=FAKE_MODEL,
        throttle_delay=0.0,
        save_delay=60.0,
        cache_path=tmp_path / "embeddings-cache.json",
    )


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def bus() -> EventBus[IndexEventType]:
    return index_bus()


@pytest.fixture
def recorder(bus: EventBus[IndexEventType]) -> EventRecorder:
    return EventRecorder(bus)


@pytest.fixture
def persistence(config: IndexConfig) -> LocalIndexStore:
    return LocalIndexStore(config.cache_path)


@pytest.fixture
async def index(
    store: FakeStore,
    provider: FakeProvider,
    config: IndexConfig,
    persistence: LocalIndexStore,
    bus: EventBus[IndexEventType],
) -> AsyncIterator[EmbeddingIndex]:
    """Uninitialized index wired to the fakes; cleaned up after the test."""
    idx = EmbeddingIndex(store, provider, config=config, persistence=persistence, events=bus)
    yield idx
    await idx.cleanup()
