"""Notes database collaborator used as the synchronization source."""

from __future__ import annotations

from .database import (
    NotesDatabase,
    SqliteNotesDatabase,
    default_database_path,
    open_database,
)
from .errors import (
    SourceDatabaseError,
    SourceDatabaseOpenError,
    SourceDatabaseReadError,
)
from .models import Document, Timestamp

__all__ = [
    "Document",
    "NotesDatabase",
    "SourceDatabaseError",
    "SourceDatabaseOpenError",
    "SourceDatabaseReadError",
    "SqliteNotesDatabase",
    "Timestamp",
    "default_database_path",
    "open_database",
]
