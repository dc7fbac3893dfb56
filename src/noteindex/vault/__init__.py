"""Host document store — protocol and a local Markdown implementation."""

from noteindex.vault.local import LocalVault, parse_headings, parse_note
from noteindex.vault.protocol import DocumentStore, Heading, NoteContent

__all__ = [
    "DocumentStore",
    "Heading",
    "LocalVault",
    "NoteContent",
    "parse_headings",
    "parse_note",
]
