"""Error taxonomy for the retrieval core.

* :class:`ValidationError`: malformed caller input. Always raised to the
  caller.
* :class:`StoreError`: the note store failed. Read paths degrade to an
  empty result, write paths raise.
* :class:`ProviderError`: the embedding backend failed, timed out or
  returned a malformed vector. Read paths fall back to keyword strategies.
"""

from __future__ import annotations

from typing import Any


class NoteBrainError(Exception):
    """Base class for all errors raised by this package."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = details or {}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        extras = ", ".join(f"{key}={value!r}" for key, value in self.details.items())
        return f"{self.message} ({extras})"


class ValidationError(NoteBrainError):
    """Raised when a caller passes malformed input."""


class StoreError(NoteBrainError):
    """Raised when the note store cannot complete an operation."""


class ProviderError(NoteBrainError):
    """Raised when an embedding provider call fails."""
