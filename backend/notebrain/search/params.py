"""Search parameter limits and boundary validation.

Every public search/related entry point validates its arguments here once;
the engines behind it can then trust their inputs.

Usage::

    from notebrain.search.params import SearchOptions
    options = SearchOptions.parse(query="pcr protocol", limit=500)
    options.limit  # 100
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError

from notebrain.errors import ValidationError
from notebrain.utils.note_utils import normalize_tags

DEFAULT_SEARCH_LIMIT = 10
MAX_SEARCH_LIMIT = 100
DEFAULT_RELATED_RESULTS = 5
MAX_RELATED_RESULTS = 50
MAX_RELATED_KEYWORDS = 10


def clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(value, upper))


def clamp_max_results(value: object, default: int = DEFAULT_RELATED_RESULTS) -> int:
    """Validate a related-notes ``max_results`` and clamp it to ``[1, 50]``.

    ``None`` means *default*.

    Raises:
        ValidationError: If *value* is not an integer.
    """
    if value is None:
        value = default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("max_results must be an integer", {"max_results": value})
    return clamp(value, 1, MAX_RELATED_RESULTS)


class SearchOptions(BaseModel):
    """Validated, clamped arguments of a note search.

    Attributes:
        query: Stripped query text, or ``None`` when blank.
        tags: Normalized tag filters, or ``None`` when none remain.
        limit: Page size clamped to ``[1, 100]``.
        offset: Page offset clamped to ``>= 0``.
        semantic: Whether to try embedding search first.
    """

    model_config = ConfigDict(strict=True, frozen=True, extra="forbid")

    query: str | None = None
    tags: list[str] | None = None
    limit: int = DEFAULT_SEARCH_LIMIT
    offset: int = 0
    semantic: bool = True

    @field_validator("query")
    @classmethod
    def _strip_query(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return normalize_tags(value) or None

    @field_validator("limit")
    @classmethod
    def _clamp_limit(cls, value: int) -> int:
        return clamp(value, 1, MAX_SEARCH_LIMIT)

    @field_validator("offset")
    @classmethod
    def _clamp_offset(cls, value: int) -> int:
        return max(0, value)

    @property
    def has_filters(self) -> bool:
        return self.query is not None or bool(self.tags)

    @classmethod
    def parse(cls, **kwargs: Any) -> SearchOptions:
        """Build options, raising the package's ``ValidationError`` on bad input."""
        # None means "use the default" for the numeric/bool knobs
        cleaned = {key: value for key, value in kwargs.items() if value is not None or key in ("query", "tags")}
        try:
            return cls(**cleaned)
        except PydanticValidationError as exc:
            raise ValidationError(
                "Invalid note search options",
                {"errors": exc.errors(include_url=False, include_context=False)},
            ) from exc
