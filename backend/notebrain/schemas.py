"""Pydantic models validating note writes at the public boundary."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from notebrain.errors import ValidationError
from notebrain.utils.note_utils import DEFAULT_TITLE, MAX_TITLE_LENGTH, normalize_tags


class _NoteInput(BaseModel):
    model_config = ConfigDict(extra="forbid", allow_inf_nan=False, str_strict=True)

    @classmethod
    def parse(cls, data: Any):
        """Validate *data*, raising the package's ``ValidationError``."""
        if isinstance(data, cls):
            return data
        if not isinstance(data, Mapping):
            raise ValidationError(f"{cls.__name__} expects a mapping", {"type": type(data).__name__})
        try:
            return cls.model_validate(dict(data))
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Invalid {cls.__name__} data",
                {"errors": exc.errors(include_url=False, include_context=False)},
            ) from exc


class NoteCreate(_NoteInput):
    """Input for creating a note.

    A missing or blank title becomes ``"Untitled Note"``. A supplied
    ``embedding`` is stored as-is and skips the provider call.
    """

    id: str | None = None
    title: str | None = Field(default=None, max_length=MAX_TITLE_LENGTH, validate_default=True)
    content: str = ""
    tags: list[str] | None = Field(default=None, validate_default=True)
    embedding: list[float] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("id")
    @classmethod
    def _strip_id(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @field_validator("title")
    @classmethod
    def _default_title(cls, value: str | None) -> str:
        if value is None:
            return DEFAULT_TITLE
        return value.strip() or DEFAULT_TITLE

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, value: list[str] | None) -> list[str]:
        return normalize_tags(value)

    @field_validator("embedding")
    @classmethod
    def _non_empty_embedding(cls, value: list[float] | None) -> list[float] | None:
        if value is not None and not value:
            raise ValueError("embedding must not be empty")
        return value


class NoteUpdate(_NoteInput):
    """Partial edit of a note; ``None`` fields are left unchanged."""

    title: str | None = Field(default=None, max_length=MAX_TITLE_LENGTH)
    content: str | None = None
    tags: list[str] | None = None

    @field_validator("title")
    @classmethod
    def _default_title(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or DEFAULT_TITLE

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return normalize_tags(value)

    @property
    def changes_text(self) -> bool:
        return self.title is not None or self.content is not None
