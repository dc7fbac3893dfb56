"""Document identity — host handles and the references records keep to them."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class DocumentStat:
    """File statistics in epoch milliseconds / bytes."""

    mtime: int
    ctime: int
    size: int

    def to_dict(self) -> dict[str, int]:
        return {"mtime": self.mtime, "ctime": self.ctime, "size": self.size}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DocumentStat:
        return cls(
            mtime=int(data.get("mtime", 0)),
            ctime=int(data.get("ctime", 0)),
            size=int(data.get("size", 0)),
        )


def _name(path: str) -> str:
    return posixpath.basename(path)


def _basename(path: str) -> str:
    stem, _ext = posixpath.splitext(posixpath.basename(path))
    return stem


@dataclass(frozen=True, slots=True)
class Document:
    """Handle to a document in the host store.

    Attributes:
        path: Store-relative POSIX path (e.g. ``"notes/x.md"``).
        stat: Current statistics of the document.
    """

    path: str
    stat: DocumentStat

    @property
    def name(self) -> str:
        """File name with extension."""
        return _name(self.path)

    @property
    def basename(self) -> str:
        """File name without extension."""
        return _basename(self.path)


@dataclass(frozen=True, slots=True)
class DocumentSnapshot:
    """Denormalized copy of a document's identity, safe to persist."""

    path: str
    name: str
    basename: str
    stat: DocumentStat

    @classmethod
    def of(cls, document: Document) -> DocumentSnapshot:
        return cls(
            path=document.path,
            name=document.name,
            basename=document.basename,
            stat=document.stat,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "name": self.name,
            "basename": self.basename,
            "stat": self.stat.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DocumentSnapshot:
        path = str(data["path"])
        return cls(
            path=path,
            name=str(data.get("name") or _name(path)),
            basename=str(data.get("basename") or _basename(path)),
            stat=DocumentStat.from_dict(data.get("stat") or {}),
        )


@dataclass(frozen=True, slots=True)
class LiveRef:
    """Reference to a document the host store currently resolves."""

    document: Document

    @property
    def path(self) -> str:
        return self.document.path

    @property
    def name(self) -> str:
        return self.document.name

    @property
    def basename(self) -> str:
        return self.document.basename

    @property
    def stat(self) -> DocumentStat:
        return self.document.stat

    def snapshot(self) -> DocumentSnapshot:
        return DocumentSnapshot.of(self.document)


@dataclass(frozen=True, slots=True)
class StaleRef:
    """Reference restored from a snapshot whose document is no longer resolvable."""

    snapshot_data: DocumentSnapshot

    @property
    def path(self) -> str:
        return self.snapshot_data.path

    @property
    def name(self) -> str:
        return self.snapshot_data.name

    @property
    def basename(self) -> str:
        return self.snapshot_data.basename

    @property
    def stat(self) -> DocumentStat:
        return self.snapshot_data.stat

    def snapshot(self) -> DocumentSnapshot:
        return self.snapshot_data


DocumentRef = LiveRef | StaleRef


def is_live(ref: DocumentRef) -> bool:
    """Return True if *ref* points at a live host document."""
    return isinstance(ref, LiveRef)
