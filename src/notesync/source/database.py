"""Read-only access to the externally owned notes database."""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Protocol, Sequence, runtime_checkable

from notesync.source.errors import (
    SourceDatabaseOpenError,
    SourceDatabaseReadError,
)
from notesync.source.models import Document, Timestamp

__all__ = [
    "NotesDatabase",
    "SqliteNotesDatabase",
    "default_database_path",
    "open_database",
]

_BEAR_CONTAINER = (
    "Library/Group Containers/9K33E3U3T4.net.shinyfrog.bear/"
    "Application Data/database.sqlite"
)

_MODIFIED_SINCE_QUERY = """
    SELECT
        ZUNIQUEIDENTIFIER AS id,
        ZTITLE AS title,
        ZTEXT AS content,
        ZMODIFICATIONDATE AS modified
    FROM ZSFNOTE
    WHERE ZTRASHED = 0 AND ZMODIFICATIONDATE > ?
    ORDER BY ZMODIFICATIONDATE ASC
"""

_ALL_NOTES_QUERY = """
    SELECT
        ZUNIQUEIDENTIFIER AS id,
        ZTITLE AS title,
        ZTEXT AS content,
        ZMODIFICATIONDATE AS modified
    FROM ZSFNOTE
    WHERE ZTRASHED = 0
    ORDER BY ZMODIFICATIONDATE ASC
"""


@runtime_checkable
class NotesDatabase(Protocol):
    """Boundary contract for the notes database collaborator."""

    @property
    def path(self) -> Path: ...

    def fetch_modified_since(self, watermark: Timestamp) -> Sequence[Document]:
        """Return notes modified after ``watermark`` in ascending order."""

    def fetch_all(self) -> Sequence[Document]:
        """Return every live note for a full rebuild."""

    def data_version(self) -> int:
        """Return the database's monotonic change counter."""

    def close(self) -> None:
        """Release the underlying connection; safe to call twice."""


def default_database_path(home: Path | None = None) -> Path:
    """Return the Bear database location under ``home``.

    Example:
        >>> from pathlib import Path
        >>> default_database_path(Path("/Users/me")).name
        'database.sqlite'
    """

    return (home or Path.home()) / _BEAR_CONTAINER


class SqliteNotesDatabase:
    """SQLite-backed :class:`NotesDatabase` over a read-only connection.

    The connection is shared across watcher, poll, and timer threads, so
    every statement runs under an internal lock.
    """

    def __init__(self, connection: sqlite3.Connection, *, path: Path) -> None:
        self._connection: sqlite3.Connection | None = connection
        self._path = path
        self._lock = threading.Lock()

    @classmethod
    def open(cls, path: Path) -> "SqliteNotesDatabase":
        """Open ``path`` read-only.

        Raises:
            SourceDatabaseOpenError: If the file is missing or unreadable.
        """

        if not path.exists():
            raise SourceDatabaseOpenError(
                f"Notes database not found at {path}",
                path=path,
            )
        uri = f"file:{path}?mode=ro"
        try:
            connection = sqlite3.connect(
                uri,
                uri=True,
                check_same_thread=False,
            )
        except sqlite3.Error as exc:
            raise SourceDatabaseOpenError(
                f"Failed to open notes database {path}: {exc}",
                path=path,
            ) from exc
        connection.row_factory = sqlite3.Row
        return cls(connection, path=path)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def closed(self) -> bool:
        return self._connection is None

    def fetch_modified_since(self, watermark: Timestamp) -> list[Document]:
        rows = self._query(_MODIFIED_SINCE_QUERY, (watermark,))
        return [_row_to_document(row) for row in rows]

    def fetch_all(self) -> list[Document]:
        rows = self._query(_ALL_NOTES_QUERY, ())
        return [_row_to_document(row) for row in rows]

    def data_version(self) -> int:
        rows = self._query("PRAGMA data_version", ())
        if not rows:
            raise SourceDatabaseReadError(
                "PRAGMA data_version returned no rows",
                path=self._path,
            )
        return int(rows[0][0])

    def close(self) -> None:
        with self._lock:
            connection = self._connection
            self._connection = None
        if connection is not None:
            connection.close()

    def _query(
        self,
        sql: str,
        params: tuple[object, ...],
    ) -> list[sqlite3.Row]:
        with self._lock:
            connection = self._connection
            if connection is None:
                raise SourceDatabaseReadError(
                    "Notes database connection is closed",
                    path=self._path,
                )
            try:
                return connection.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise SourceDatabaseReadError(
                    f"Query against {self._path} failed: {exc}",
                    path=self._path,
                ) from exc


def _row_to_document(row: sqlite3.Row) -> Document:
    identifier = row["id"]
    return Document(
        id=str(identifier) if identifier is not None else "",
        title=row["title"],
        content=row["content"],
        modified=row["modified"] if row["modified"] is not None else 0,
    )


def open_database(path: Path | None) -> SqliteNotesDatabase:
    """Open the configured database, falling back to the Bear location."""

    return SqliteNotesDatabase.open(path or default_database_path())
