"""Host document store protocol — what the index needs from the note store."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from noteindex.ref import Document


@dataclass(frozen=True, slots=True)
class Heading:
    """A structural heading with character offsets into the note text.

    Attributes:
        heading: Heading text without the ``#`` markers.
        level: Heading depth (1-6).
        start: Offset of the first character of the heading line.
        end: Offset just past the last character of the heading line.
    """

    heading: str
    level: int
    start: int
    end: int


@dataclass(frozen=True, slots=True)
class NoteContent:
    """Raw text of a note plus its structure.

    Attributes:
        text: Full raw text.
        headings: Headings in document order.
        frontmatter_end: Offset just past the front-matter block, if any.
    """

    text: str
    headings: list[Heading] = field(default_factory=list)
    frontmatter_end: int | None = None

    @property
    def body(self) -> str:
        """Text after the front-matter block, trimmed."""
        start = self.frontmatter_end or 0
        return self.text[start:].strip()


@runtime_checkable
class DocumentStore(Protocol):
    """Async protocol the host document store implements."""

    async def list_documents(self) -> list[Document]:
        """Return every document in the store."""
        ...

    async def read(self, document: Document) -> NoteContent:
        """Return the raw text and heading offsets of *document*."""
        ...

    async def resolve(self, path: str) -> Document | None:
        """Return the live document at *path*, or None if it does not exist."""
        ...
