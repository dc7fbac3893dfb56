"""LocalIndexStore — JSON snapshot of the embedding index on the local disk."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

from noteindex.exceptions import CacheInvalidError
from noteindex.ref import DocumentSnapshot, StaleRef
from noteindex.search.stores.codec import decode_vector, encode_vector
from noteindex.search.types import EmbeddingRecord, IndexSnapshot, LoadResult, LoadStatus

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"


def _now_ms() -> int:
    return int(time.time() * 1000)


class LocalIndexStore:
    """Reads and writes the index snapshot as a single JSON file.

    Vectors are stored as base64 float32 buffers.  A snapshot whose
    ``version`` or ``model`` does not match is reported as invalidated and
    never partially loaded.  The store never mutates the records it is
    given.
    """

    def __init__(self, path: Path | str, *, version: str = SCHEMA_VERSION) -> None:
        self._path = Path(path)
        self._version = version
        self._created_at: int | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def version(self) -> str:
        return self._version

    def exists(self) -> bool:
        return self._path.is_file()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def save(self, records: Mapping[str, EmbeddingRecord], *, model: str) -> IndexSnapshot:
        """Serialize *records* and atomically replace the snapshot file."""
        now = _now_ms()
        if self._created_at is None:
            self._created_at = now
        dimensions = len(next(iter(records.values())).vector) if records else 0

        snapshot = IndexSnapshot(
            version=self._version,
            model=model,
            model_dimensions=dimensions,
            created_at=self._created_at,
            updated_at=now,
            records=dict(records),
        )
        payload = json.dumps(self._to_json(snapshot), separators=(",", ":"))

        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self._path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            Path(tmp_path).replace(self._path)
        except Exception:
            with contextlib.suppress(OSError):
                Path(tmp_path).unlink()
            raise

        logger.info("Saved %d embeddings to %s", len(records), self._path)
        return snapshot

    def clear(self) -> bool:
        """Delete the snapshot file.  Returns True if one existed."""
        self._created_at = None
        try:
            self._path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Embeddings cache cleared: %s", self._path)
        return True

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def load(self, *, model: str) -> LoadResult:
        """Read the snapshot for *model*.

        Returns ``MISSING`` if there is no file, ``INVALIDATED`` on a
        version/model mismatch or unreadable content, else ``LOADED``.
        """
        if not self._path.is_file():
            logger.info("No embeddings cache found at %s", self._path)
            return LoadResult(LoadStatus.MISSING)

        try:
            raw = json.loads(self._path.read_text("utf-8"))
            snapshot = self._from_json(raw, model=model)
        except CacheInvalidError as e:
            logger.info("Embeddings cache invalidated: %s", e)
            return LoadResult(LoadStatus.INVALIDATED, reason=str(e))
        except (OSError, ValueError) as e:
            logger.warning("Failed to read embeddings cache %s", self._path, exc_info=True)
            return LoadResult(LoadStatus.INVALIDATED, reason=f"unreadable cache: {e}")

        self._created_at = snapshot.created_at
        logger.info("Loaded %d embeddings from %s", len(snapshot.records), self._path)
        return LoadResult(LoadStatus.LOADED, snapshot=snapshot)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    @staticmethod
    def _to_json(snapshot: IndexSnapshot) -> dict[str, Any]:
        embeddings: dict[str, dict[str, Any]] = {}
        for key, record in snapshot.records.items():
            entry: dict[str, Any] = {
                "vector": encode_vector(record.vector),
                "content": record.content,
                "lastModified": record.last_modified,
                "contentHash": record.content_hash,
                "file": record.document.snapshot().to_dict(),
            }
            if record.section_name is not None:
                entry["sectionName"] = record.section_name
            embeddings[key] = entry

        return {
            "version": snapshot.version,
            "model": snapshot.model,
            "modelDimensions": snapshot.model_dimensions,
            "createdAt": snapshot.created_at,
            "updatedAt": snapshot.updated_at,
            "embeddings": embeddings,
        }

    def _from_json(self, raw: Any, *, model: str) -> IndexSnapshot:
        if not isinstance(raw, dict):
            msg = "snapshot is not a JSON object"
            raise CacheInvalidError(msg)
        if raw.get("version") != self._version:
            msg = f"version {raw.get('version')!r} does not match {self._version!r}"
            raise CacheInvalidError(msg)
        if raw.get("model") != model:
            msg = f"model changed from {raw.get('model')!r} to {model!r}"
            raise CacheInvalidError(msg)

        records: dict[str, EmbeddingRecord] = {}
        now = _now_ms()
        try:
            dimensions = int(raw.get("modelDimensions") or 0)
            created_at = int(raw.get("createdAt", now))
            updated_at = int(raw.get("updatedAt", now))
            for key, entry in (raw.get("embeddings") or {}).items():
                vector = decode_vector(entry["vector"])
                if dimensions and len(vector) != dimensions:
                    msg = f"record {key!r} has {len(vector)} dimensions, expected {dimensions}"
                    raise CacheInvalidError(msg)
                records[key] = EmbeddingRecord(
                    key=key,
                    vector=vector,
                    content=entry["content"],
                    content_hash=entry["contentHash"],
                    last_modified=int(entry["lastModified"]),
                    document=StaleRef(DocumentSnapshot.from_dict(entry["file"])),
                    section_name=entry.get("sectionName"),
                )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            msg = f"malformed snapshot: {e!r}"
            raise CacheInvalidError(msg) from e

        if len({len(r.vector) for r in records.values()}) > 1:
            msg = "records have mixed dimensions"
            raise CacheInvalidError(msg)

        return IndexSnapshot(
            version=raw["version"],
            model=raw["model"],
            model_dimensions=dimensions,
            created_at=created_at,
            updated_at=updated_at,
            records=records,
        )
