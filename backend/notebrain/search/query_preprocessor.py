"""Query preprocessing for keyword search and keyword relatedness.

Turns raw query strings into LIKE-safe search terms, and pulls a short
list of distinctive keywords out of note bodies.
"""

from __future__ import annotations

import re
from typing import NamedTuple

LIKE_ESCAPE_CHAR = "\\"

# Query tokens must be longer than this to count as keywords
MIN_QUERY_KEYWORD_LENGTH = 2
# Body words must be longer than this to count as relatedness keywords
MIN_CONTENT_KEYWORD_LENGTH = 4
DEFAULT_MAX_KEYWORDS = 10

_MARKDOWN_RE = re.compile(r"[#*_`>+=\[\](){}|\\]")

_STOP_WORDS = frozenset(
    {"the", "and", "that", "have", "for", "not", "with", "you", "this", "but"}
)


class QueryAnalysis(NamedTuple):
    """Result of analyzing a keyword search query.

    Attributes:
        original: The stripped query string.
        keywords: Lower-cased tokens longer than two characters.
        terms: Terms to match; the keywords, or the whole query when
            tokenizing produced none.
        used_raw_query: True when ``terms`` fell back to the whole query.
    """

    original: str
    keywords: list[str]
    terms: list[str]
    used_raw_query: bool


def analyze_query(query: str) -> QueryAnalysis:
    """Split *query* into OR-combined keyword search terms."""
    stripped = query.strip()
    keywords = [token for token in stripped.lower().split() if len(token) > MIN_QUERY_KEYWORD_LENGTH]
    if keywords:
        return QueryAnalysis(original=stripped, keywords=keywords, terms=keywords, used_raw_query=False)
    terms = [stripped] if stripped else []
    return QueryAnalysis(original=stripped, keywords=[], terms=terms, used_raw_query=bool(terms))


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so *term* only matches literally.

    The result must be used with ``escape=LIKE_ESCAPE_CHAR``.
    """
    return (
        term.replace(LIKE_ESCAPE_CHAR, LIKE_ESCAPE_CHAR * 2)
        .replace("%", f"{LIKE_ESCAPE_CHAR}%")
        .replace("_", f"{LIKE_ESCAPE_CHAR}_")
    )


def contains_pattern(term: str) -> str:
    """Build an escaped ``%term%`` substring pattern."""
    return f"%{escape_like(term)}%"


def extract_keywords(text: str, max_keywords: int = DEFAULT_MAX_KEYWORDS) -> list[str]:
    """Extract up to *max_keywords* distinctive words from a note body.

    Markdown punctuation is stripped, words are lower-cased, and only words
    longer than four characters that are not stop words survive.
    Duplicates are removed keeping first-seen order.
    """
    if not text or not text.strip() or max_keywords < 1:
        return []

    cleaned = _MARKDOWN_RE.sub(" ", text).lower()
    seen: set[str] = set()
    keywords: list[str] = []
    for word in cleaned.split():
        if len(word) <= MIN_CONTENT_KEYWORD_LENGTH or word in _STOP_WORDS or word in seen:
            continue
        seen.add(word)
        keywords.append(word)
        if len(keywords) >= max_keywords:
            break
    return keywords
