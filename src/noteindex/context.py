"""Format search results and chat history as prompt context."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from noteindex.exceptions import TemplateError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from noteindex.search.types import SearchResult

NOTES_PLACEHOLDER = "{notes_context}"
CONVERSATION_PLACEHOLDER = "{conversation_context}"
PLACEHOLDERS = (CONVERSATION_PLACEHOLDER, NOTES_PLACEHOLDER)
DEFAULT_TEMPLATE = NOTES_PLACEHOLDER + CONVERSATION_PLACEHOLDER

_PLACEHOLDER_RE = re.compile(r"\{[^}]+\}")
_NOTE_SEPARATOR = "\n\n---\n\n"


def format_notes_context(results: Sequence[SearchResult]) -> str:
    """Render *results* as a numbered notes block (empty string for no results).

    Each note is headed with its document basename and the similarity as a
    rounded percentage::

        NOTE 1 - tides (87% pertinence):
        <excerpt>
    """
    if not results:
        return ""
    notes = [
        f"NOTE {i} - {result.document.basename} "
        f"({round(result.similarity * 100)}% pertinence):\n{result.content}"
        for i, result in enumerate(results, start=1)
    ]
    return f"CONTEXT OF THE NOTES:\n{_NOTE_SEPARATOR.join(notes)}\n\n"


def format_conversation_context(messages: Iterable[Mapping[str, str]]) -> str:
    """Render chat *messages* (``{"role", "content"}`` mappings) as a history block."""
    lines = [
        f"{'USER' if message.get('role') == 'user' else 'ASSISTANT'}: {message.get('content', '')}"
        for message in messages
    ]
    if not lines:
        return ""
    return "CONVERSATION HISTORY:\n" + "\n\n".join(lines) + "\n\n"


def validate_template(template: str) -> None:
    """Raise :class:`TemplateError` if *template* uses an unknown placeholder."""
    for placeholder in _PLACEHOLDER_RE.findall(template):
        if placeholder not in PLACEHOLDERS:
            msg = (
                f"Unknown placeholder: {placeholder}. "
                f"Available placeholders: {', '.join(PLACEHOLDERS)}"
            )
            raise TemplateError(msg)


def render_template(
    template: str,
    *,
    notes_context: str = "",
    conversation_context: str = "",
) -> str:
    """Validate *template* and substitute both context blocks into it."""
    validate_template(template)
    values = {
        NOTES_PLACEHOLDER: notes_context,
        CONVERSATION_PLACEHOLDER: conversation_context,
    }
    # Single pass: substituted text is never rescanned for placeholders.
    return _PLACEHOLDER_RE.sub(lambda m: values[m.group(0)], template)
