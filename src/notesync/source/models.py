"""Data models for documents pulled from the notes database."""

from __future__ import annotations

from dataclasses import dataclass

# Source modification timestamps are SQLite REAL or INTEGER columns.
Timestamp = int | float


@dataclass(frozen=True, slots=True)
class Document:
    """A note as returned by the source database.

    Example:
        >>> Document(id="n1", title="A", content=None, modified=1500).modified
        1500
    """

    id: str
    title: str | None
    content: str | None
    modified: Timestamp


__all__ = ["Document", "Timestamp"]
