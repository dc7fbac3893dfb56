"""Content fingerprints and the regeneration policy."""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from noteindex.search.types import EmbeddingRecord


def content_hash(content: str) -> str:
    return hashlib.sha256(content.encode()).hexdigest()


def needs_regeneration(
    existing: EmbeddingRecord | None,
    cleaned_content: str,
    source_mtime: int,
) -> bool:
    """Return whether a unit must be (re)embedded.

    True when there is no record yet, when the cleaned text hashes
    differently, or when the record predates the source document.
    """
    if existing is None:
        return True
    if existing.content_hash != content_hash(cleaned_content):
        return True
    return existing.last_modified < source_mtime


def can_reuse_vector(existing: EmbeddingRecord | None, cleaned_content: str) -> bool:
    """Return True if *existing* was embedded from exactly *cleaned_content*."""
    return existing is not None and existing.content_hash == content_hash(cleaned_content)
