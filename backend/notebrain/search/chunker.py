"""Character-bounded text chunker with word-level overlap.

Each chunk is a substring of the input made of two parts:

* an overlap prefix: the trailing words of the previous chunk that fit
  in ``overlap`` characters (empty for the first chunk), and
* a body of new words spanning at most ``chunk_size`` characters.

Every word lands in exactly one body, so the chunks cover the whole text,
and no chunk is longer than ``chunk_size + overlap``. Words are only split
when a single word is longer than ``chunk_size``.
"""

from __future__ import annotations

import re

from notebrain.errors import ValidationError

_WORD_RE = re.compile(r"\S+")
_SENTENCE_END_CHARS = ".!?"


def _word_spans(text: str, chunk_size: int) -> list[tuple[int, int]]:
    """Return ``(start, end)`` offsets of words, hard-splitting oversized ones."""
    spans: list[tuple[int, int]] = []
    for match in _WORD_RE.finditer(text):
        start, end = match.span()
        while end - start > chunk_size:
            spans.append((start, start + chunk_size))
            start += chunk_size
        spans.append((start, end))
    return spans


def chunk_text(text: str, chunk_size: int, overlap: int) -> list[str]:
    """Split *text* into ordered, overlapping, bounded chunks.

    Args:
        text: The text to split.
        chunk_size: Maximum number of characters of new text per chunk.
        overlap: Maximum number of characters repeated from the previous
            chunk.

    Returns:
        Non-empty chunks in document order. ``[]`` for blank input.

    Raises:
        ValidationError: If ``chunk_size < 1`` or ``overlap < 0``.
    """
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size < 1:
        raise ValidationError("chunk_size must be a positive integer", {"chunk_size": chunk_size})
    if isinstance(overlap, bool) or not isinstance(overlap, int) or overlap < 0:
        raise ValidationError("overlap must be a non-negative integer", {"overlap": overlap})

    if not text or not text.strip():
        return []

    spans = _word_spans(text, chunk_size)
    chunks: list[str] = []
    i = 0

    while i < len(spans):
        body_start = spans[i][0]

        # Grow the body while it stays within chunk_size characters
        j = i
        while j + 1 < len(spans) and spans[j + 1][1] - body_start <= chunk_size:
            j += 1

        # Prefer ending on a sentence boundary in the second half of the body
        if j + 1 < len(spans):
            for k in range(j, i, -1):
                end = spans[k][1]
                if end - body_start < chunk_size // 2:
                    break
                if text[end - 1] in _SENTENCE_END_CHARS:
                    j = k
                    break

        # Pull trailing words of the previous chunk back in as overlap
        start_idx = i
        if chunks and overlap > 0:
            while start_idx > 0 and body_start - spans[start_idx - 1][0] <= overlap:
                start_idx -= 1

        chunks.append(text[spans[start_idx][0] : spans[j][1]])
        i = j + 1

    return chunks
