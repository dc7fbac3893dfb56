"""LocalVault — a directory of Markdown notes on the local disk."""

from __future__ import annotations

import asyncio
import re
from pathlib import Path, PurePosixPath

from noteindex.ref import Document, DocumentStat
from noteindex.vault.protocol import Heading, NoteContent

_ATX_HEADING = re.compile(r"^(#{1,6})[ \t]+(.+?)(?:[ \t]+#+)?[ \t]*$", re.MULTILINE)
_FENCE = re.compile(r"^(```|~~~)", re.MULTILINE)
_FRONTMATTER = re.compile(r"\A---[ \t]*\r?\n.*?^---[ \t]*(?:\r?\n|\Z)", re.MULTILINE | re.DOTALL)

DEFAULT_EXTENSIONS = frozenset({".md"})


def parse_headings(text: str) -> list[Heading]:
    """Return ATX headings of *text*, ignoring lines inside fenced code blocks."""
    fenced: list[tuple[int, int]] = []
    opening: int | None = None
    for match in _FENCE.finditer(text):
        if opening is None:
            opening = match.start()
        else:
            fenced.append((opening, match.end()))
            opening = None
    if opening is not None:
        fenced.append((opening, len(text)))

    headings: list[Heading] = []
    for match in _ATX_HEADING.finditer(text):
        if any(lo <= match.start() < hi for lo, hi in fenced):
            continue
        headings.append(
            Heading(
                heading=match.group(2).strip(),
                level=len(match.group(1)),
                start=match.start(),
                end=match.end(),
            )
        )
    return headings


def frontmatter_end(text: str) -> int | None:
    """Return the offset just past a leading ``---`` front-matter block, if any."""
    match = _FRONTMATTER.match(text)
    return match.end() if match else None


def parse_note(text: str) -> NoteContent:
    """Parse raw Markdown into :class:`NoteContent`."""
    fm_end = frontmatter_end(text)
    headings = [h for h in parse_headings(text) if fm_end is None or h.start >= fm_end]
    return NoteContent(text=text, headings=headings, frontmatter_end=fm_end)


def _stat_of(path: Path) -> DocumentStat:
    st = path.stat()
    return DocumentStat(
        mtime=int(st.st_mtime * 1000),
        ctime=int(st.st_ctime * 1000),
        size=st.st_size,
    )


class LocalVault:
    """Implements :class:`~noteindex.vault.protocol.DocumentStore` for a directory.

    Document paths are POSIX paths relative to *root*.  Paths that would
    resolve outside *root* are treated as missing.
    """

    def __init__(
        self,
        root: Path | str,
        *,
        extensions: frozenset[str] = DEFAULT_EXTENSIONS,
    ) -> None:
        self.root = Path(root).resolve()
        self.extensions = extensions

        if not self.root.exists():
            raise FileNotFoundError(f"Vault directory does not exist: {self.root}")
        if not self.root.is_dir():
            raise NotADirectoryError(f"Vault path is not a directory: {self.root}")

    # ------------------------------------------------------------------
    # DocumentStore protocol
    # ------------------------------------------------------------------

    async def list_documents(self) -> list[Document]:
        def _scan() -> list[Document]:
            documents: list[Document] = []
            for candidate in self.root.rglob("*"):
                if candidate.suffix not in self.extensions or not candidate.is_file():
                    continue
                try:
                    documents.append(
                        Document(path=self._to_vault_path(candidate), stat=_stat_of(candidate))
                    )
                except OSError:
                    continue
            documents.sort(key=lambda d: d.path)
            return documents

        return await asyncio.to_thread(_scan)

    async def read(self, document: Document) -> NoteContent:
        resolved = self._resolve_path(document.path)
        text = await asyncio.to_thread(resolved.read_text, "utf-8")
        return parse_note(text)

    async def resolve(self, path: str) -> Document | None:
        try:
            resolved = self._resolve_path(path)
        except PermissionError:
            return None

        def _stat() -> Document | None:
            try:
                if not resolved.is_file():
                    return None
                return Document(path=self._to_vault_path(resolved), stat=_stat_of(resolved))
            except OSError:
                return None

        return await asyncio.to_thread(_stat)

    # ------------------------------------------------------------------
    # Path resolution
    # ------------------------------------------------------------------

    def _resolve_path(self, vault_path: str) -> Path:
        rel = PurePosixPath(vault_path.lstrip("/"))
        resolved = (self.root / rel).resolve()
        try:
            resolved.relative_to(self.root)
        except ValueError:
            raise PermissionError(
                f"Path traversal detected: {vault_path} resolves outside the vault"
            ) from None
        return resolved

    def _to_vault_path(self, physical_path: Path) -> str:
        return physical_path.resolve().relative_to(self.root).as_posix()
