"""
OCI layout error classes.

Provides a clear taxonomy of errors that can occur during layout operations.
The content store and the indexer raise these directly; the layout re-raises
them with operation context while keeping the error kind, so callers can
branch on the class and humans still get a readable chain.
"""
from __future__ import annotations

from typing import TypeVar

E = TypeVar("E", bound="LayoutError")


class LayoutError(Exception):
    """
    Base class for all layout errors.
    """

    def with_context(self: E, context: str) -> E:
        """
        Return an error of the same kind with ``context`` prefixed.

        The returned error is meant to be raised ``from self`` so the
        original traceback stays attached.
        """
        return type(self)(f"{context}: {self}")


class NotFound(LayoutError):
    """
    Requested content does not exist.

    Raised when:
    - A digest is absent from the content store
    - No index entry satisfies a matcher
    """
    pass


class Ambiguous(LayoutError):
    """
    More than one index entry satisfies a single-result query.
    """
    pass


class Conflict(LayoutError):
    """
    A mutation would break index uniqueness.

    Raised when:
    - add() is called with a digest already present in the index
    - replace() would leave two entries with the same digest
    """
    pass


class IOFailure(LayoutError):
    """
    Persistence or filesystem failure.

    Raised when:
    - A blob or the index cannot be written, fsynced or renamed
    - The index lock cannot be acquired in time
    """
    pass


class IndexCorrupt(IOFailure):
    """
    The index file exists but is not a valid image index document.
    """
    pass


class DigestMismatch(LayoutError):
    """
    Content digest validation failed.

    Raised when:
    - Written content does not match the descriptor it was expected to have
    - Stored content no longer hashes to its digest
    """

    def __init__(self, message: str, expected: str | None = None, actual: str | None = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual

    def with_context(self, context: str) -> DigestMismatch:
        return DigestMismatch(f"{context}: {self}", expected=self.expected, actual=self.actual)


class Cancelled(LayoutError):
    """
    The caller aborted the operation before it was applied.
    """
    pass


__all__ = [
    "LayoutError",
    "NotFound",
    "Ambiguous",
    "Conflict",
    "IOFailure",
    "IndexCorrupt",
    "DigestMismatch",
    "Cancelled",
]
