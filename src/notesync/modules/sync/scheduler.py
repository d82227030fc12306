"""Debounced, single-flight synchronization passes."""

from __future__ import annotations

import itertools
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol

import structlog

from notesync.core.logging import Logger, get_logger
from notesync.core.paths import WorkspacePaths
from notesync.modules.sync.metadata import (
    MetadataPersistenceError,
    MetadataStore,
    SyncMetadata,
)
from notesync.modules.vdb import (
    IndexMutator,
    PositionMap,
    VectorIndex,
    VectorIndexPersistenceError,
    save_index,
)
from notesync.source import NotesDatabase, SourceDatabaseReadError, Timestamp

__all__ = [
    "DEFAULT_DEBOUNCE_SECONDS",
    "SyncPassResult",
    "Synchronizer",
    "TimerFactory",
    "TimerHandle",
    "thread_timer",
]

DEFAULT_DEBOUNCE_SECONDS = 1.0


class TimerHandle(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]
"""Build an unstarted one-shot timer calling the function after a delay."""


def thread_timer(interval: float, function: Callable[[], None]) -> TimerHandle:
    timer = threading.Timer(interval, function)
    timer.daemon = True
    return timer


def _epoch_millis() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True)
class SyncPassResult:
    """Outcome of one :meth:`Synchronizer.run_pass` call."""

    skipped: bool = False
    fetched: int = 0
    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    unidentified: int = 0
    last_update: Timestamp | None = None
    index_saved: bool = False
    metadata_saved: bool = False
    error: str | None = None

    @property
    def processed(self) -> int:
        return len(self.added) + len(self.updated)


class Synchronizer:
    """Own the pass guard, the change flag, and the single debounce timer.

    Only :meth:`run_pass` mutates the index and mapping. Every flag and the
    pending timer are read and written under one lock, so at most one pass is
    ever in flight across the watcher, poll, and timer threads.
    """

    def __init__(
        self,
        *,
        database: NotesDatabase,
        mutator: IndexMutator,
        index: VectorIndex,
        mapping: PositionMap,
        metadata: SyncMetadata,
        metadata_store: MetadataStore,
        paths: WorkspacePaths,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        timer_factory: TimerFactory = thread_timer,
        now: Callable[[], int] = _epoch_millis,
        logger: Logger | None = None,
    ) -> None:
        self._database = database
        self._mutator = mutator
        self._index = index
        self._mapping = mapping
        self._metadata = metadata
        self._metadata_store = metadata_store
        self._paths = paths
        self._debounce = debounce_seconds
        self._timer_factory = timer_factory
        self._now = now
        self._logger = logger or get_logger(__name__, component="scheduler")

        self._lock = threading.Lock()
        self._in_progress = False
        self._change_observed = False
        self._timer: TimerHandle | None = None
        self._generation = 0
        self._closed = False
        self._pass_ids = itertools.count(1)

    @property
    def database(self) -> NotesDatabase:
        return self._database

    @property
    def metadata(self) -> SyncMetadata:
        return self._metadata

    @property
    def index(self) -> VectorIndex:
        return self._index

    @property
    def mapping(self) -> PositionMap:
        return self._mapping

    @property
    def in_progress(self) -> bool:
        with self._lock:
            return self._in_progress

    @property
    def change_observed(self) -> bool:
        with self._lock:
            return self._change_observed

    @property
    def pending(self) -> bool:
        """Whether a debounce timer is armed and has not fired yet."""

        with self._lock:
            return self._timer is not None

    def mark_change_observed(self) -> None:
        with self._lock:
            self._change_observed = True

    def notify_change(self) -> bool:
        """React to a detected content change.

        Schedules a pass when idle. While a pass runs, only flags the change
        so the running pass reschedules itself when it completes. Returns
        whether a pass was scheduled.
        """

        with self._lock:
            if self._in_progress:
                self._change_observed = True
                return False
        self.schedule_update()
        return True

    def schedule_update(self) -> None:
        """Cancel any pending timer and arm a fresh one."""

        with self._lock:
            if self._closed:
                return
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            generation = self._generation
            timer = self._timer_factory(
                self._debounce,
                lambda: self._on_timer(generation),
            )
            self._timer = timer
            timer.start()
        self._logger.debug(
            "sync-scheduled",
            delay=self._debounce,
            generation=generation,
        )

    def cancel(self) -> None:
        """Cancel the pending timer and refuse further scheduling."""

        with self._lock:
            self._closed = True
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def save_metadata(self) -> bool:
        """Persist the in-memory metadata unless a pass is mid-flight."""

        with self._lock:
            if self._in_progress:
                self._logger.info("metadata-save-deferred", reason="pass-running")
                return False
        try:
            self._metadata_store.save(self._metadata)
        except MetadataPersistenceError as exc:
            self._logger.error("metadata-save-failed", error=str(exc))
            return False
        return True

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
        try:
            self.run_pass()
        except Exception:
            self._logger.exception("sync-pass-crashed")

    def run_pass(self) -> SyncPassResult:
        """Run one guarded synchronization pass.

        Skips immediately when another pass holds the guard. Per-note
        failures are logged and do not stop the batch.
        """

        with self._lock:
            if self._in_progress:
                self._logger.info("sync-pass-skipped", reason="in-progress")
                return SyncPassResult(skipped=True)
            self._in_progress = True
            self._change_observed = False

        try:
            with structlog.contextvars.bound_contextvars(
                sync_pass=next(self._pass_ids),
            ):
                result = self._apply()
        finally:
            with self._lock:
                self._in_progress = False
                rerun = self._change_observed
                self._change_observed = False

        if rerun:
            self._logger.info("sync-rescheduled", reason="change-during-pass")
            self.schedule_update()
        return result

    def _apply(self) -> SyncPassResult:
        result = SyncPassResult()
        metadata = self._metadata
        watermark = metadata.last_update

        try:
            documents = self._database.fetch_modified_since(watermark)
        except SourceDatabaseReadError as exc:
            self._logger.warning("sync-fetch-failed", error=str(exc))
            result.error = str(exc)
            return result

        result.fetched = len(documents)
        if not documents:
            self._logger.debug("sync-pass-empty", watermark=watermark)
            return result

        self._logger.info("sync-pass-start", documents=len(documents), watermark=watermark)
        newest: Timestamp | None = None
        for document in documents:
            if not document.id:
                # Never indexable; let the watermark move past it.
                result.unidentified += 1
                self._logger.warning(
                    "sync-document-skipped",
                    reason="missing-id",
                    modified=document.modified,
                )
                if newest is None or document.modified > newest:
                    newest = document.modified
                continue
            known = document.id in metadata.indexed_notes
            apply = self._mutator.update_document if known else self._mutator.add_document
            try:
                apply(
                    self._index,
                    self._mapping,
                    document.id,
                    document.title,
                    document.content,
                )
            except (RuntimeError, ValueError) as exc:
                result.failed.append(document.id)
                self._logger.warning(
                    "sync-document-failed",
                    document_id=document.id,
                    operation="update" if known else "add",
                    error=str(exc),
                )
                continue

            metadata.indexed_notes[document.id] = self._now()
            (result.updated if known else result.added).append(document.id)
            if newest is None or document.modified > newest:
                newest = document.modified

        if newest is not None:
            metadata.advance_watermark(newest)
        result.last_update = metadata.last_update

        if result.processed:
            try:
                save_index(
                    self._index,
                    self._mapping,
                    index_path=self._paths.index_path,
                    mapping_path=self._paths.mapping_path,
                )
                result.index_saved = True
            except VectorIndexPersistenceError as exc:
                self._logger.error("index-save-failed", error=str(exc))

        try:
            self._metadata_store.save(metadata)
            result.metadata_saved = True
        except MetadataPersistenceError as exc:
            self._logger.error("metadata-save-failed", error=str(exc))

        self._logger.info(
            "sync-pass-complete",
            added=len(result.added),
            updated=len(result.updated),
            unidentified=result.unidentified,
            failed=len(result.failed),
            last_update=result.last_update,
            index_saved=result.index_saved,
        )
        return result
