"""Shared configuration and logging bootstrap for CLI commands."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import typer

from notesync.core.config import (
    AppConfig,
    env_overrides,
    load_config,
    load_packaged_defaults,
    read_user_config,
)
from notesync.core.logging import Logger, configure_logging, get_logger
from notesync.core.paths import WorkspacePaths, resolve_workspace

__all__ = ["CLIContext", "load_cli_context"]


@dataclass(slots=True)
class CLIContext:
    """Resolved state handed to every command after bootstrap."""

    paths: WorkspacePaths
    config: AppConfig
    logger: Logger


def _fail(message: str) -> typer.Exit:
    typer.secho(message, fg=typer.colors.RED)
    return typer.Exit(code=1)


def load_cli_context(
    *,
    command: str,
    workspace: Path | None = None,
    log_level: str | None = None,
    database: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> CLIContext:
    """Resolve the workspace, merge config layers, and configure logging.

    Exits with status 1 on an unusable workspace or invalid configuration.
    """

    environ = os.environ if environ is None else environ
    env_config = env_overrides(environ)
    env_workspace = env_config.get("workspace")

    try:
        paths = resolve_workspace(
            workspace_override=workspace,
            env_override=Path(env_workspace).expanduser() if env_workspace else None,
        )
    except ValueError as exc:
        raise _fail(f"Workspace error: {exc}") from exc

    cli_overrides: dict[str, object] = {"workspace": str(paths.workspace)}
    if log_level:
        cli_overrides["log_level"] = log_level
    if database is not None:
        cli_overrides["database"] = {"path": str(database.expanduser())}

    try:
        config = load_config(
            defaults=load_packaged_defaults(),
            user_config=read_user_config(paths.config_file),
            env_config=env_config,
            cli_overrides=cli_overrides,
        )
    except (ValueError, OSError) as exc:
        raise _fail(f"Failed to load configuration: {exc}") from exc

    paths = paths.with_index_name(config.index.name)
    try:
        configure_logging(level=config.log_level, workspace_path=config.workspace)
    except ValueError as exc:
        raise _fail(f"Invalid log level: {exc}") from exc
    logger = get_logger("notesync.cli", command=command)
    return CLIContext(paths=paths, config=config, logger=logger)
