"""Incremental synchronization of the notes index."""

from __future__ import annotations

from .detector import ChangeDetector
from .metadata import MetadataPersistenceError, MetadataStore, SyncMetadata
from .rebuild import RebuildResult, rebuild_index
from .scheduler import (
    DEFAULT_DEBOUNCE_SECONDS,
    SyncPassResult,
    Synchronizer,
    TimerFactory,
    TimerHandle,
    thread_timer,
)
from .service import SyncService
from .watcher import (
    DEFAULT_POLL_INTERVAL_SECONDS,
    DatabaseEventHandler,
    DatabaseFileWatcher,
    VersionPoller,
    watched_names,
)

__all__ = [
    "ChangeDetector",
    "MetadataPersistenceError",
    "MetadataStore",
    "SyncMetadata",
    "RebuildResult",
    "rebuild_index",
    "DEFAULT_DEBOUNCE_SECONDS",
    "SyncPassResult",
    "Synchronizer",
    "TimerFactory",
    "TimerHandle",
    "thread_timer",
    "SyncService",
    "DEFAULT_POLL_INTERVAL_SECONDS",
    "DatabaseEventHandler",
    "DatabaseFileWatcher",
    "VersionPoller",
    "watched_names",
]
