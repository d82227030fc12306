"""File-watch and poll producers feeding the version check."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from notesync.core.logging import Logger, get_logger

__all__ = [
    "DEFAULT_POLL_INTERVAL_SECONDS",
    "DatabaseEventHandler",
    "DatabaseFileWatcher",
    "VersionPoller",
    "watched_names",
]

DEFAULT_POLL_INTERVAL_SECONDS = 30.0
_SQLITE_COMPANIONS = ("-wal", "-shm", "-journal")


def watched_names(database_path: Path) -> frozenset[str]:
    """Return the file names whose changes may mean new database content.

    Example:
        >>> sorted(watched_names(Path("/tmp/db.sqlite")))
        ['db.sqlite', 'db.sqlite-journal', 'db.sqlite-shm', 'db.sqlite-wal']
    """

    name = database_path.name
    return frozenset({name, *(f"{name}{suffix}" for suffix in _SQLITE_COMPANIONS)})


class DatabaseEventHandler(FileSystemEventHandler):
    """Forward writes to the database file (or its journals) to a callback."""

    def __init__(
        self,
        database_path: Path,
        on_change: Callable[[], None],
        *,
        logger: Logger,
    ) -> None:
        super().__init__()
        self._names = watched_names(database_path)
        self._on_change = on_change
        self._logger = logger

    def _handle(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        paths = [event.src_path, getattr(event, "dest_path", "")]
        if not any(path and Path(str(path)).name in self._names for path in paths):
            return
        try:
            self._on_change()
        except Exception:
            self._logger.exception(
                "watch-handler-failed",
                event_type=event.event_type,
                path=str(event.src_path),
            )

    def on_created(self, event: FileSystemEvent) -> None:
        self._handle(event)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._handle(event)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._handle(event)


class DatabaseFileWatcher:
    """Watch the notes database directory with a watchdog observer.

    ``on_change`` runs on the observer thread for every event touching the
    database file or its SQLite companions.
    """

    def __init__(
        self,
        database_path: Path,
        on_change: Callable[[], None],
        *,
        observer_factory: Callable[[], BaseObserver] = Observer,
        logger: Logger | None = None,
    ) -> None:
        self._database_path = database_path
        self._on_change = on_change
        self._observer_factory = observer_factory
        self._logger = logger or get_logger(__name__, component="watcher")
        self._observer: BaseObserver | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        with self._lock:
            return self._observer is not None

    def start(self) -> bool:
        """Begin watching; return ``False`` when the watch cannot be set up."""

        with self._lock:
            if self._observer is not None:
                return True
            handler = DatabaseEventHandler(
                self._database_path,
                self._on_change,
                logger=self._logger,
            )
            try:
                observer = self._observer_factory()
                observer.schedule(
                    handler,
                    str(self._database_path.parent),
                    recursive=False,
                )
                observer.start()
            except (OSError, RuntimeError) as exc:
                self._logger.warning(
                    "watch-start-failed",
                    path=str(self._database_path),
                    error=str(exc),
                )
                return False
            self._observer = observer

        self._logger.info("watch-started", path=str(self._database_path))
        return True

    def stop(self, *, timeout: float = 2.0) -> None:
        """Stop the observer; safe to call repeatedly."""

        with self._lock:
            observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        observer.join(timeout=timeout)
        self._logger.info("watch-stopped", path=str(self._database_path))


class VersionPoller:
    """Call ``check`` every ``interval`` seconds on a daemon thread.

    The poll always runs alongside the file watch since filesystem events
    can be dropped or coalesced.
    """

    def __init__(
        self,
        check: Callable[[], object],
        *,
        interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        logger: Logger | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._check = check
        self._interval = interval
        self._logger = logger or get_logger(__name__, component="poller")
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None:
                return
            self._stop.clear()
            self._thread = threading.Thread(
                target=self._run,
                name="notesync-poller",
                daemon=True,
            )
            self._thread.start()
        self._logger.info("poll-started", interval=self._interval)

    def stop(self, *, timeout: float = 2.0) -> None:
        """Stop polling; safe to call repeatedly or before :meth:`start`."""

        self._stop.set()
        with self._lock:
            thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            self._logger.info("poll-stopped")

    def tick(self) -> None:
        """Run one guarded check."""

        try:
            self._check()
        except Exception:
            self._logger.exception("poll-check-failed")

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            self.tick()
