"""Domain-specific exceptions for the notes source database."""

from __future__ import annotations

from pathlib import Path


class SourceDatabaseError(RuntimeError):
    """Base error for notes database failures."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class SourceDatabaseOpenError(SourceDatabaseError):
    """Raised when the notes database cannot be opened."""


class SourceDatabaseReadError(SourceDatabaseError):
    """Raised when a query or pragma against the database fails."""


__all__ = [
    "SourceDatabaseError",
    "SourceDatabaseOpenError",
    "SourceDatabaseReadError",
]
