"""Note-specific utility functions."""

from __future__ import annotations

from collections.abc import Iterable

from notebrain.errors import ValidationError

DEFAULT_TITLE = "Untitled Note"
MAX_TITLE_LENGTH = 500


def normalize_tags(tags: Iterable[object] | None) -> list[str]:
    """Normalize a tag collection to stripped, non-empty, unique strings.

    Order of first appearance is kept; it carries no meaning.
    """
    if tags is None:
        return []
    seen: set[str] = set()
    result: list[str] = []
    for tag in tags:
        if not isinstance(tag, str):
            continue
        cleaned = tag.strip()
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            result.append(cleaned)
    return result


def build_embedding_text(title: str | None, content: str | None) -> str:
    """Combine title and content into the text embedded for a whole note."""
    return f"{title or ''} {content or ''}".strip()


def truncate_snippet(text: str | None, limit: int = 200) -> str:
    """Trim text to a short snippet for log lines and list views."""
    if not text:
        return ""
    stripped = " ".join(text.split())
    if len(stripped) <= limit:
        return stripped
    return stripped[:limit].rstrip() + "..."


def require_note_id(note_id: object) -> str:
    """Return *note_id* if it is a non-blank string.

    Raises:
        ValidationError: Otherwise.
    """
    if not isinstance(note_id, str) or not note_id.strip():
        raise ValidationError("note_id must be a non-empty string", {"note_id": note_id})
    return note_id
