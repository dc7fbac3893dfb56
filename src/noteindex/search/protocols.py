"""Search layer protocols — the inference backend as the index sees it."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Async-first protocol for text-to-vector embedding.

    Implementations must raise
    :class:`~noteindex.exceptions.BackendUnreachableError` when the backend
    cannot be reached and :class:`~noteindex.exceptions.GenerationError`
    when it answers with an error or an empty/malformed vector.  Sync
    implementations are accepted as well.
    """

    async def embed(self, text: str, *, model: str) -> list[float]:
        """Embed a single text string into a vector using *model*."""
        ...

    async def check_connection(self) -> bool:
        """Return True if the backend answers."""
        ...
