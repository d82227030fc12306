"""Helpers for the ``notesync init`` command."""

from __future__ import annotations

from pathlib import Path
from typing import Mapping

from notesync.core.config import (
    AppConfig,
    load_config,
    load_packaged_defaults,
    render_user_config,
)
from notesync.core.paths import WorkspacePaths, archive_workspace, resolve_workspace


def _ensure_directories(paths: WorkspacePaths) -> None:
    """Create the workspace directories if they are missing."""

    for directory in (
        paths.workspace,
        paths.logs_dir,
        paths.archives_dir,
        paths.index_dir,
    ):
        directory.mkdir(parents=True, exist_ok=True)


def init_workspace(
    *,
    workspace: Path,
    refresh: bool = False,
    log_level: str | None = None,
    database: Path | None = None,
    env_overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Bootstrap the workspace directory and its ``notesync.toml``.

    Example:
        >>> from pathlib import Path
        >>> config = init_workspace(workspace=Path("/tmp/notesync-example"))
        >>> str(config.workspace).endswith("notesync-example")
        True

    Args:
        workspace: Target directory for the workspace.
        refresh: Archive the existing config and index before regenerating.
        log_level: Optional override for the configured logging level.
        database: Optional notes database path written into the config.
        env_overrides: Settings derived from ``NOTESYNC_*`` variables.

    Returns:
        The resolved configuration after applying overrides.
    """

    paths = resolve_workspace(workspace_override=workspace)

    if refresh:
        archive_workspace(paths)

    _ensure_directories(paths)

    cli_overrides: dict[str, object] = {"workspace": str(paths.workspace)}
    if log_level:
        cli_overrides["log_level"] = log_level
    if database is not None:
        cli_overrides["database"] = {"path": str(database.expanduser())}

    config = load_config(
        defaults=load_packaged_defaults(),
        env_config=env_overrides,
        cli_overrides=cli_overrides,
    )

    config_path = paths.config_file
    if refresh or not config_path.exists():
        config_path.write_text(render_user_config(config), encoding="utf-8")

    return config


__all__ = ["init_workspace"]
