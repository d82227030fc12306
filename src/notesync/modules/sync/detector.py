"""Version-counter change detection shared by every trigger."""

from __future__ import annotations

import threading

from notesync.core.logging import Logger, get_logger
from notesync.modules.sync.scheduler import Synchronizer
from notesync.source import SourceDatabaseReadError

__all__ = ["ChangeDetector"]


class ChangeDetector:
    """Decide whether the notes database changed since the last check.

    Both the file watcher and the poller call :meth:`check_version`; a file
    event without a counter change is a no-op.
    """

    def __init__(
        self,
        synchronizer: Synchronizer,
        *,
        logger: Logger | None = None,
    ) -> None:
        self._synchronizer = synchronizer
        self._logger = logger or get_logger(__name__, component="detector")
        self._lock = threading.Lock()

    def check_version(self) -> bool:
        """Return ``True`` when the database version counter moved.

        A changed counter is recorded in the metadata and a pass is requested.
        Read failures are logged and reported as unchanged.
        """

        metadata = self._synchronizer.metadata
        with self._lock:
            try:
                current = self._synchronizer.database.data_version()
            except SourceDatabaseReadError as exc:
                self._logger.warning("version-check-failed", error=str(exc))
                return False

            previous = metadata.last_version
            if current == previous:
                self._logger.debug("version-unchanged", version=current)
                return False
            metadata.last_version = current

        scheduled = self._synchronizer.notify_change()
        self._logger.info(
            "version-changed",
            previous=previous,
            current=current,
            scheduled=scheduled,
        )
        return True
