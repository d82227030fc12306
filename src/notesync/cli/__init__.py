"""Command-line interface primitives for :mod:`notesync`.

This module exposes the Typer application behind the ``notesync`` console
script and wires each command into the workspace, index, and sync services.

Example:
    >>> import typer
    >>> from notesync.cli import create_app
    >>> app = create_app()
    >>> isinstance(app, typer.Typer)
    True
"""

from __future__ import annotations

import os
from pathlib import Path

import typer

from notesync.cli.init import init_workspace
from notesync.cli.sync import (
    index_command,
    search_command,
    status_command,
    sync_command,
    watch_command,
)
from notesync.core.config import AppConfig, env_overrides
from notesync.core.logging import configure_logging, get_logger
from notesync.core.paths import resolve_workspace

_app_help = (
    "Keep a semantic vector index of your notes in sync."
    "\n\n"
    "Use `notesync init` to bootstrap a workspace, `notesync index` to build "
    "the index, then `notesync watch` to follow changes."
)


def _emit_workspace_summary(
    *,
    config: AppConfig,
    config_file: Path,
    refresh: bool,
    existing: bool,
) -> None:
    """Print a human-friendly summary of bootstrap results."""

    typer.secho("Workspace initialized", fg=typer.colors.GREEN, bold=True)
    typer.echo(f"  workspace: {config.workspace}")
    typer.echo(f"  config: {config_file}")
    typer.echo(f"  database: {config.database.path or '<Bear default>'}")
    typer.echo(
        f"  embeddings: {config.embeddings.provider}:{config.embeddings.model} "
        f"(dim {config.embeddings.dim})"
    )
    typer.echo(f"  log level: {config.log_level}")

    if existing and not refresh:
        typer.echo("  note: existing workspace detected; files left untouched")
    elif refresh:
        typer.echo("  note: archived previous config and index before refresh")


def create_app() -> "typer.Typer":
    """Return the Typer application powering the ``notesync`` CLI.

    Example:
        >>> import typer
        >>> from notesync.cli import create_app
        >>> cli = create_app()
        >>> isinstance(cli, typer.Typer)
        True
    """

    app = typer.Typer(
        help=_app_help,
        no_args_is_help=True,
        rich_markup_mode="rich",
        invoke_without_command=False,
        cls=typer.core.TyperGroup,
    )

    @app.callback()
    def main_callback() -> None:
        """Top-level CLI callback ensuring subcommands are dispatched."""

        return None

    @app.command(
        "init",
        help="Bootstrap a workspace and seed configuration files.",
    )
    def init_command(
        workspace: Path | None = typer.Option(
            None,
            "--workspace",
            "-w",
            help=(
                "Override the workspace directory (defaults to $HOME/.notesync "
                "or NOTESYNC_WORKSPACE)."
            ),
        ),
        refresh: bool = typer.Option(
            False,
            "--refresh",
            help="Archive the existing config and index before regenerating.",
        ),
        log_level: str | None = typer.Option(
            None,
            "--log-level",
            "-l",
            help="Override the logging level (DEBUG/INFO/WARNING/ERROR).",
        ),
        database: Path | None = typer.Option(
            None,
            "--database",
            "-d",
            help="Notes database to record in notesync.toml.",
        ),
    ) -> None:
        """Initialize (or refresh) the local workspace."""

        env_config = env_overrides(os.environ)
        env_workspace = env_config.get("workspace")

        try:
            paths = resolve_workspace(
                workspace_override=workspace,
                env_override=Path(env_workspace).expanduser() if env_workspace else None,
            )
        except ValueError as exc:
            typer.secho(f"Workspace error: {exc}", fg=typer.colors.RED)
            raise typer.Exit(code=1) from exc

        workspace_exists = paths.workspace.exists()

        try:
            config = init_workspace(
                workspace=paths.workspace,
                refresh=refresh,
                log_level=log_level,
                database=database,
                env_overrides=env_config,
            )
        except (OSError, ValueError) as exc:
            typer.secho(f"Failed to initialize workspace: {exc}", fg=typer.colors.RED)
            raise typer.Exit(code=1) from exc

        configure_logging(
            level=config.log_level,
            workspace_path=config.workspace,
        )
        logger = get_logger(__name__, command="init")
        logger.info(
            "init-complete",
            workspace=str(config.workspace),
            refresh=refresh,
            database=str(config.database.path) if config.database.path else None,
        )

        _emit_workspace_summary(
            config=config,
            config_file=paths.config_file,
            refresh=refresh,
            existing=workspace_exists,
        )

    app.command("index", help="Rebuild the vector index from every note.")(index_command)
    app.command("sync", help="Run one incremental synchronization pass.")(sync_command)
    app.command("watch", help="Watch the notes database and sync continuously.")(watch_command)
    app.command("status", help="Show sync metadata and index counts.")(status_command)
    app.command("search", help="Semantic search over indexed notes.")(search_command)

    return app


__all__ = ["create_app"]
