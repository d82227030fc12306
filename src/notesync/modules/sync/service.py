"""Wire the database, index, scheduler, and triggers into one service."""

from __future__ import annotations

import threading
from typing import Callable

from notesync.core.config import AppConfig
from notesync.core.logging import Logger, get_logger
from notesync.core.paths import WorkspacePaths
from notesync.modules.sync.detector import ChangeDetector
from notesync.modules.sync.metadata import MetadataStore, SyncMetadata
from notesync.modules.sync.rebuild import rebuild_index
from notesync.modules.sync.scheduler import (
    SyncPassResult,
    Synchronizer,
    TimerFactory,
    thread_timer,
)
from notesync.modules.sync.watcher import DatabaseFileWatcher, VersionPoller
from notesync.modules.vdb import (
    IndexMutator,
    PositionMap,
    VectorIndex,
    VectorIndexMissingError,
    build_embedder,
    load_index,
)
from notesync.modules.vdb.mutator import TextEmbedder
from notesync.source import (
    NotesDatabase,
    SourceDatabaseReadError,
    open_database,
)

__all__ = ["SyncService"]


class SyncService:
    """Long-running incremental synchronization of the notes index.

    Example:
        >>> service = SyncService(config, paths)  # doctest: +SKIP
        >>> service.start()  # doctest: +SKIP
        >>> service.stop()  # doctest: +SKIP
    """

    def __init__(
        self,
        config: AppConfig,
        paths: WorkspacePaths,
        *,
        database: NotesDatabase | None = None,
        embedder: TextEmbedder | None = None,
        timer_factory: TimerFactory = thread_timer,
        watcher_factory: Callable[..., DatabaseFileWatcher] = DatabaseFileWatcher,
        poller_factory: Callable[..., VersionPoller] = VersionPoller,
        logger: Logger | None = None,
    ) -> None:
        self._config = config
        self._paths = paths
        self._database = database
        self._embedder = embedder
        self._timer_factory = timer_factory
        self._watcher_factory = watcher_factory
        self._poller_factory = poller_factory
        self._logger = logger or get_logger(__name__, component="service")

        self._synchronizer: Synchronizer | None = None
        self._detector: ChangeDetector | None = None
        self._watcher: DatabaseFileWatcher | None = None
        self._poller: VersionPoller | None = None
        self._lock = threading.Lock()
        self._stopped = False

    @property
    def synchronizer(self) -> Synchronizer | None:
        return self._synchronizer

    @property
    def detector(self) -> ChangeDetector | None:
        return self._detector

    @property
    def watching(self) -> bool:
        return self._watcher is not None and self._watcher.running

    def start(self) -> None:
        """Prepare state, start both triggers, and schedule a catch-up pass.

        Raises:
            SourceDatabaseOpenError: If the notes database cannot be opened.
            VectorIndexMissingError: If no index exists and auto-indexing is
                disabled.
        """

        synchronizer = self._prepare()
        detector = ChangeDetector(synchronizer, logger=self._logger.bind(component="detector"))
        self._detector = detector

        settings = self._config.sync
        if settings.watch_enabled:
            watcher = self._watcher_factory(
                synchronizer.database.path,
                self._on_file_event,
                logger=self._logger.bind(component="watcher"),
            )
            if watcher.start():
                self._watcher = watcher
            else:
                self._logger.warning("watch-unavailable", mode="poll-only")

        poller = self._poller_factory(
            detector.check_version,
            interval=settings.poll_interval_seconds,
            logger=self._logger.bind(component="poller"),
        )
        poller.start()
        self._poller = poller

        detector.check_version()
        # data_version restarts per connection; the watermark covers downtime.
        synchronizer.schedule_update()
        self._logger.info(
            "sync-service-started",
            database=str(synchronizer.database.path),
            watching=self.watching,
            poll_interval=settings.poll_interval_seconds,
        )

    def run_once(self) -> SyncPassResult:
        """Run one synchronous pass without triggers, then tear down."""

        try:
            synchronizer = self._prepare()
            try:
                synchronizer.metadata.last_version = synchronizer.database.data_version()
            except SourceDatabaseReadError as exc:
                self._logger.warning("version-check-failed", error=str(exc))
            return synchronizer.run_pass()
        finally:
            self.stop()

    def stop(self) -> None:
        """Tear everything down; safe to call repeatedly or after a failed start.

        An in-flight pass is not awaited.
        """

        with self._lock:
            if self._stopped:
                return
            self._stopped = True

        if self._synchronizer is not None:
            self._synchronizer.cancel()
        if self._poller is not None:
            self._poller.stop()
        if self._watcher is not None:
            self._watcher.stop()
        if self._synchronizer is not None:
            self._synchronizer.save_metadata()
        if self._database is not None:
            self._database.close()
        self._logger.info("sync-service-stopped")

    def _on_file_event(self) -> None:
        synchronizer = self._synchronizer
        detector = self._detector
        if synchronizer is None or detector is None:
            return
        synchronizer.mark_change_observed()
        if not synchronizer.in_progress:
            detector.check_version()

    def _prepare(self) -> Synchronizer:
        if self._synchronizer is not None:
            return self._synchronizer

        if self._database is None:
            self._database = open_database(self._config.database.path)
        database = self._database

        embedder = self._embedder
        if embedder is None:
            embedder = build_embedder(self._config.embeddings, logger=self._logger)
            self._embedder = embedder
        mutator = IndexMutator(embedder)

        store = MetadataStore(
            self._paths.metadata_path,
            logger=self._logger.bind(component="metadata"),
        )
        metadata = store.load()
        index, mapping, metadata = self._load_or_rebuild(database, mutator, store, metadata)

        self._synchronizer = Synchronizer(
            database=database,
            mutator=mutator,
            index=index,
            mapping=mapping,
            metadata=metadata,
            metadata_store=store,
            paths=self._paths,
            debounce_seconds=self._config.sync.debounce_seconds,
            timer_factory=self._timer_factory,
            logger=self._logger.bind(component="scheduler"),
        )
        return self._synchronizer

    def _load_or_rebuild(
        self,
        database: NotesDatabase,
        mutator: IndexMutator,
        store: MetadataStore,
        metadata: SyncMetadata,
    ) -> tuple[VectorIndex, PositionMap, SyncMetadata]:
        try:
            index, mapping = load_index(
                index_path=self._paths.index_path,
                mapping_path=self._paths.mapping_path,
                metric=self._config.index.metric,
            )
        except VectorIndexMissingError as exc:
            if not self._config.sync.auto_index:
                raise
            self._logger.warning("index-missing-rebuilding", error=str(exc))
            result = rebuild_index(
                database,
                mutator,
                paths=self._paths,
                dim=self._config.embeddings.dim,
                metric=self._config.index.metric,
                metadata_store=store,
                logger=self._logger.bind(component="rebuild"),
            )
            return result.index, result.mapping, result.metadata
        return index, mapping, metadata
