"""Error taxonomy shared by the memory runtime."""

from __future__ import annotations


class LimbicError(RuntimeError):
    """Base class for all runtime memory errors."""


class ProviderError(LimbicError):
    """Raised when an extraction, embedding or scoring call fails."""


class StoreError(LimbicError):
    """Raised when the backing vector store rejects or fails an operation."""


class InvalidInputError(LimbicError, ValueError):
    """Raised when a malformed Fact or Pattern is handed to a memory component."""


class NotFoundError(LimbicError, KeyError):
    """Raised when an operation references an unknown pattern or fact id."""

    def __str__(self) -> str:  # KeyError quotes its message otherwise
        return str(self.args[0]) if self.args else ""


__all__ = [
    "LimbicError",
    "ProviderError",
    "StoreError",
    "InvalidInputError",
    "NotFoundError",
]
