"""Text extraction — bridge between raw notes and the embedding index."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from noteindex.vault.protocol import Heading, NoteContent

_CODE_BLOCK = re.compile(r"```[\s\S]*?```")
_IMAGE = re.compile(r"!\[.*?\]\(.*?\)")
_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_MARKUP = re.compile(r"[#*_`]")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class EmbeddableUnit:
    """A unit of cleaned text ready for embedding.

    Attributes:
        key: Record key (``path`` or ``path#section``).
        content: Cleaned text to embed.
        section_name: Heading text for section units.
    """

    key: str
    content: str
    section_name: str | None = None


def clean_content(text: str) -> str:
    """Strip code blocks, images, link syntax, and markup; collapse whitespace."""
    text = _CODE_BLOCK.sub("", text)
    text = _IMAGE.sub("", text)
    text = _LINK.sub(r"\1", text)
    text = _MARKUP.sub("", text)
    text = _WHITESPACE.sub(" ", text)
    return text.strip()


def split_sections(text: str, headings: Sequence[Heading]) -> dict[str, str]:
    """Slice *text* into ``{heading: body}`` between consecutive headings.

    A section runs from the end of its heading line to the start of the next
    heading (or the end of the text).  A repeated heading keeps its first
    position but takes the body of its last occurrence.
    """
    sections: dict[str, str] = {}
    for index, heading in enumerate(headings):
        end = headings[index + 1].start if index + 1 < len(headings) else len(text)
        sections[heading.heading] = text[heading.end : end].strip()
    return sections


def section_key(path: str, section_name: str) -> str:
    return f"{path}#{section_name}"


def extract_units(path: str, note: NoteContent) -> list[EmbeddableUnit]:
    """Derive the embeddable units of a note.

    One unit per non-empty section when the note has headings, otherwise a
    single whole-document unit.  Units whose cleaned text is empty are
    dropped.
    """
    if note.headings:
        units: list[EmbeddableUnit] = []
        for name, body in split_sections(note.text, note.headings).items():
            cleaned = clean_content(body)
            if cleaned:
                units.append(EmbeddableUnit(section_key(path, name), cleaned, name))
        return units

    cleaned = clean_content(note.body)
    if not cleaned:
        return []
    return [EmbeddableUnit(path, cleaned)]
