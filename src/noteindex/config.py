"""Tunables for the embedding index, watcher, and backend client."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

_ENV_PREFIX = "NOTEINDEX_"

DEFAULT_BASE_URL = "http://localhost:11434/v1"
DEFAULT_CACHE_FILE = "embeddings-cache.json"


@dataclass(frozen=True, slots=True)
class IndexConfig:
    """Configuration for an :class:`~noteindex.search.EmbeddingIndex`.

    Attributes:
        embedding_model: Name of the embedding model.  Empty means "not configured".
        base_url: OpenAI-compatible endpoint of the inference backend.
        api_key: Bearer token for the backend, if it requires one.
        ignored_folders: Folder prefixes whose documents are never indexed.
        max_relevant_notes: Default ``top_k`` for searches.
        min_similarity: Results must score strictly above this value.
        max_errors: A batch aborts once its error count exceeds this value.
        max_input_chars: Texts are truncated to this length before embedding.
        debounce_window: Seconds during which repeated edits of one document
            are suppressed after the first regeneration.
        save_delay: Seconds of quiet before a pending snapshot write is flushed.
        progress_every: Coalesce batch progress notifications to one per N documents.
        throttle_every: Pause the batch every N documents.
        throttle_delay: Length of each pause, in seconds.
        cache_path: Location of the persisted snapshot.
    """

    embedding_model: str = ""
    base_url: str = DEFAULT_BASE_URL
    api_key: str | None = None
    ignored_folders: tuple[str, ...] = field(default_factory=tuple)
    max_relevant_notes: int = 5
    min_similarity: float = 0.1
    max_errors: int = 10
    max_input_chars: int = 512
    debounce_window: float = 10.0
    save_delay: float = 5.0
    progress_every: int = 5
    throttle_every: int = 3
    throttle_delay: float = 0.2
    cache_path: Path = Path(DEFAULT_CACHE_FILE)

    def __post_init__(self) -> None:
        # Accept any iterable of folders; store a normalized tuple.
        folders = tuple(f.strip().strip("/") for f in self.ignored_folders if f.strip())
        object.__setattr__(self, "ignored_folders", folders)
        object.__setattr__(self, "cache_path", Path(self.cache_path))
        if self.max_errors < 0:
            msg = f"max_errors must be >= 0, got {self.max_errors}"
            raise ValueError(msg)
        if self.progress_every < 1 or self.throttle_every < 1:
            msg = "progress_every and throttle_every must be >= 1"
            raise ValueError(msg)

    def with_model(self, model: str) -> IndexConfig:
        """Return a copy of this config using *model*."""
        return replace(self, embedding_model=model)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides: Any) -> IndexConfig:
        """Build a config from ``NOTEINDEX_*`` environment variables.

        ``NOTEINDEX_IGNORED_FOLDERS`` is a comma-separated list.  Keyword
        *overrides* win over the environment.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for f in fields(cls):
            raw = env.get(_ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            values[f.name] = _coerce(f.name, raw)
        values.update(overrides)
        return cls(**values)


def _coerce(name: str, raw: str) -> Any:
    if name == "ignored_folders":
        return tuple(part for part in raw.split(",") if part.strip())
    if name == "cache_path":
        return Path(raw).expanduser()
    if name in ("max_relevant_notes", "max_errors", "max_input_chars",
                "progress_every", "throttle_every"):
        return int(raw)
    if name in ("min_similarity", "debounce_window", "save_delay", "throttle_delay"):
        return float(raw)
    if name == "api_key":
        return raw or None
    return raw
