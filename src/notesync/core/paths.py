"""Workspace path helpers for :mod:`notesync`."""

from __future__ import annotations

import shutil

from datetime import datetime, timezone
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable
from zipfile import ZIP_DEFLATED, ZipFile

__all__ = [
    "DEFAULT_INDEX_NAME",
    "WorkspacePaths",
    "resolve_workspace",
    "archive_workspace",
]

DEFAULT_INDEX_NAME = "note_vectors"
_METADATA_FILENAME = "index_metadata.json"


@dataclass(frozen=True, slots=True)
class WorkspacePaths:
    """Resolved locations for a workspace instance.

    Example:
        >>> from pathlib import Path
        >>> from notesync.core.paths import WorkspacePaths
        >>> paths = WorkspacePaths(
        ...     workspace=Path("/tmp/notesync"),
        ...     config_file=Path("/tmp/notesync/notesync.toml"),
        ...     logs_dir=Path("/tmp/notesync/logs"),
        ...     archives_dir=Path("/tmp/notesync/archives"),
        ...     index_dir=Path("/tmp/notesync/index"),
        ... )
        >>> paths.index_path.name
        'note_vectors.index'
    """

    workspace: Path
    config_file: Path
    logs_dir: Path
    archives_dir: Path
    index_dir: Path
    index_name: str = DEFAULT_INDEX_NAME

    def iter_all(self) -> Iterable[Path]:
        """Yield every path managed within the workspace."""

        yield from (
            self.workspace,
            self.config_file,
            self.logs_dir,
            self.archives_dir,
            self.index_dir,
        )

    @property
    def index_path(self) -> Path:
        """Return the FAISS index binary location."""

        return self.index_dir / f"{self.index_name}.index"

    @property
    def mapping_path(self) -> Path:
        """Return the position-to-document mapping location."""

        return self.index_dir / f"{self.index_name}.json"

    @property
    def metadata_path(self) -> Path:
        """Return the synchronization metadata location."""

        return self.index_dir / _METADATA_FILENAME

    def with_index_name(self, name: str) -> "WorkspacePaths":
        """Return a copy pointing at a differently named index."""

        normalized = name.strip()
        if not normalized:
            raise ValueError("index name cannot be blank")
        return WorkspacePaths(
            workspace=self.workspace,
            config_file=self.config_file,
            logs_dir=self.logs_dir,
            archives_dir=self.archives_dir,
            index_dir=self.index_dir,
            index_name=normalized,
        )


def resolve_workspace(
    *,
    workspace_override: Path | None = None,
    env_override: Path | None = None,
) -> WorkspacePaths:
    """Resolve canonical workspace locations.

    Args:
        workspace_override: Optional override provided by CLI flags.
        env_override: Optional override from environment variables.

    Returns:
        Resolved workspace paths after precedence rules are applied.

    Raises:
        ValueError: If the resolved workspace points to a regular file.
    """

    def _normalize(candidate: Path) -> Path:
        raw = Path(candidate).expanduser()
        if raw.is_absolute():
            resolved = raw.resolve(strict=False)
        else:
            resolved = (Path.cwd() / raw).resolve(strict=False)
        return resolved

    base = workspace_override or env_override or Path.home() / ".notesync"
    workspace = _normalize(base)

    if workspace.exists() and workspace.is_file():
        raise ValueError(f"Workspace file path not allowed: {workspace}")

    return WorkspacePaths(
        workspace=workspace,
        config_file=workspace / "notesync.toml",
        logs_dir=workspace / "logs",
        archives_dir=workspace / "archives",
        index_dir=workspace / "index",
    )


def _generate_archive_name(archive_root: Path, timestamp: str) -> Path:
    suffix = 0
    while True:
        suffix_part = "" if suffix == 0 else f"-{suffix:02d}"
        candidate = archive_root / f"{timestamp}{suffix_part}.zip"
        if not candidate.exists():
            return candidate
        suffix += 1


def archive_workspace(paths: WorkspacePaths) -> Path | None:
    """Zip the workspace's index and config files before a refresh.

    Logs are left in place so a refresh keeps its own history. The archived
    entries are removed once the ZIP is written.

    Returns:
        The archive path, or ``None`` when there was nothing to archive.
    """

    workspace = paths.workspace
    if not workspace.exists():
        return None
    if not workspace.is_dir():
        raise ValueError(
            f"Workspace path '{workspace}' exists but is not a directory."
        )

    candidates = [
        entry
        for entry in (paths.config_file, paths.index_dir)
        if entry.exists()
    ]
    if not candidates:
        return None

    archive_root = paths.archives_dir
    archive_root.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    archive_path = _generate_archive_name(archive_root, timestamp)

    with ZipFile(archive_path, mode="w", compression=ZIP_DEFLATED) as zf:
        for entry in candidates:
            if entry.is_dir():
                for child in sorted(entry.rglob("*")):
                    if child.is_file():
                        zf.write(child, child.relative_to(workspace).as_posix())
            else:
                zf.write(entry, entry.relative_to(workspace).as_posix())

    for entry in candidates:
        if entry.is_dir():
            shutil.rmtree(entry)
        else:
            entry.unlink()

    return archive_path
