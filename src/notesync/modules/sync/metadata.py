"""Durable synchronization progress record."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

from notesync.core.logging import Logger, get_logger
from notesync.source.models import Timestamp

__all__ = [
    "MetadataPersistenceError",
    "MetadataStore",
    "SyncMetadata",
]


class MetadataPersistenceError(RuntimeError):
    """Raised when the metadata record cannot be written."""


class SyncMetadata(BaseModel):
    """Watermark, database version, and per-note indexing times.

    Serialized with the camelCase keys existing metadata files use.

    Example:
        >>> SyncMetadata().model_dump(by_alias=True)
        {'lastUpdate': 0, 'indexedNotes': {}, 'lastVersion': 0}
    """

    last_update: Timestamp = Field(default=0, alias="lastUpdate")
    indexed_notes: dict[str, int] = Field(
        default_factory=dict,
        alias="indexedNotes",
    )
    last_version: int = Field(default=0, alias="lastVersion")

    model_config = {
        "populate_by_name": True,
        "validate_assignment": True,
    }

    @field_validator("last_update")
    @classmethod
    def _non_negative(cls, value: Timestamp) -> Timestamp:
        if value < 0:
            raise ValueError("lastUpdate cannot be negative")
        return value

    def advance_watermark(self, candidate: Timestamp) -> bool:
        """Raise ``last_update`` to ``candidate``; never lower it."""

        if candidate > self.last_update:
            self.last_update = candidate
            return True
        return False


class MetadataStore:
    """Load and atomically persist :class:`SyncMetadata` as JSON."""

    def __init__(self, path: Path, *, logger: Logger | None = None) -> None:
        self._path = path
        self._logger = logger or get_logger(__name__, component="metadata")

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> SyncMetadata:
        """Return the stored record, or a fresh one if none is readable.

        A fresh record is written straight away; failure to do so is logged
        and does not reach the caller.
        """

        metadata = self.read()
        if metadata is not None:
            return metadata

        metadata = SyncMetadata()
        try:
            self.save(metadata)
        except MetadataPersistenceError as exc:
            self._logger.warning(
                "metadata-bootstrap-write-failed",
                path=str(self._path),
                error=str(exc),
            )
        return metadata

    def save(self, metadata: SyncMetadata) -> None:
        """Replace the stored record in one atomic write.

        Raises:
            MetadataPersistenceError: If the record cannot be written.
        """

        payload = json.dumps(metadata.model_dump(mode="json", by_alias=True), indent=2)
        temp_path: Path | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=self._path.parent,
                prefix=f".{self._path.name}-",
                delete=False,
            ) as handle:
                temp_path = Path(handle.name)
                handle.write(payload + "\n")
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_path, self._path)
        except OSError as exc:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            raise MetadataPersistenceError(
                f"Failed writing sync metadata to {self._path}: {exc}"
            ) from exc

        self._logger.debug(
            "metadata-write",
            path=str(self._path),
            last_update=metadata.last_update,
            last_version=metadata.last_version,
            indexed=len(metadata.indexed_notes),
        )

    def read(self) -> SyncMetadata | None:
        """Return the stored record without creating one."""

        if not self._path.exists():
            return None
        try:
            text = self._path.read_text(encoding="utf-8")
            return SyncMetadata.model_validate(json.loads(text))
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            self._logger.warning(
                "metadata-unreadable",
                path=str(self._path),
                error=str(exc),
            )
            return None
