"""Full rebuild of the vector index from every live note."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

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
    save_index,
)
from notesync.source import NotesDatabase, SourceDatabaseReadError

__all__ = ["RebuildResult", "rebuild_index"]


def _epoch_millis() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True)
class RebuildResult:
    """Outcome of :func:`rebuild_index`."""

    index: VectorIndex
    mapping: PositionMap
    metadata: SyncMetadata
    indexed: int = 0
    failed: list[str] = field(default_factory=list)
    unidentified: int = 0


def rebuild_index(
    database: NotesDatabase,
    mutator: IndexMutator,
    *,
    paths: WorkspacePaths,
    dim: int,
    metric: str = "l2",
    metadata_store: MetadataStore | None = None,
    logger: Logger | None = None,
    now: Callable[[], int] = _epoch_millis,
) -> RebuildResult:
    """Index every live note into a new index and persist it.

    The metadata record is reset to cover exactly the notes indexed here, so
    a following incremental pass starts after the newest of them. Notes that
    fail to embed are logged and left out. Notes without an identifier are
    skipped and never refetched.

    Raises:
        SourceDatabaseReadError: If the notes cannot be read.
        VectorIndexPersistenceError: If the new index cannot be written.
        MetadataPersistenceError: If the reset metadata cannot be written.
    """

    log = logger or get_logger(__name__, component="rebuild")
    store = metadata_store or MetadataStore(paths.metadata_path, logger=log)

    documents = database.fetch_all()
    index = VectorIndex.create(dim=dim, metric=metric)
    mapping: PositionMap = {}
    metadata = SyncMetadata()
    result = RebuildResult(index=index, mapping=mapping, metadata=metadata)

    log.info("rebuild-start", documents=len(documents))
    for document in documents:
        if not document.id:
            result.unidentified += 1
            log.warning(
                "rebuild-document-skipped",
                reason="missing-id",
                modified=document.modified,
            )
            metadata.advance_watermark(document.modified)
            continue
        try:
            mutator.add_document(
                index,
                mapping,
                document.id,
                document.title,
                document.content,
            )
        except (RuntimeError, ValueError) as exc:
            result.failed.append(document.id)
            log.warning(
                "rebuild-document-failed",
                document_id=document.id,
                error=str(exc),
            )
            continue
        metadata.indexed_notes[document.id] = now()
        metadata.advance_watermark(document.modified)
        result.indexed += 1

    try:
        metadata.last_version = database.data_version()
    except SourceDatabaseReadError as exc:
        log.warning("rebuild-version-read-failed", error=str(exc))

    save_index(
        index,
        mapping,
        index_path=paths.index_path,
        mapping_path=paths.mapping_path,
    )
    try:
        store.save(metadata)
    except MetadataPersistenceError:
        log.error("rebuild-metadata-write-failed", path=str(store.path))
        raise

    log.info(
        "rebuild-complete",
        indexed=result.indexed,
        failed=len(result.failed),
        unidentified=result.unidentified,
        last_update=metadata.last_update,
    )
    return result
