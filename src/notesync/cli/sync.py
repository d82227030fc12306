"""Index, sync, watch, status, and search commands."""

from __future__ import annotations

import signal
import threading
from pathlib import Path

import typer

from notesync.cli.runtime import CLIContext, load_cli_context
from notesync.core.config import AppConfig
from notesync.core.logging import Logger
from notesync.core.paths import WorkspacePaths
from notesync.modules.sync import (
    MetadataStore,
    SyncService,
    rebuild_index,
)
from notesync.modules.vdb import (
    Embedder,
    EmbeddingProviderError,
    IndexMutator,
    ProviderRegistryError,
    VectorIndexError,
    VectorIndexMissingError,
    build_embedder,
    load_index,
)
from notesync.modules.sync.metadata import MetadataPersistenceError
from notesync.source import (
    NotesDatabase,
    SourceDatabaseError,
    open_database,
)

__all__ = [
    "index_command",
    "search_command",
    "status_command",
    "sync_command",
    "watch_command",
]

_WORKSPACE_HELP = "Override the workspace directory (defaults to NOTESYNC_WORKSPACE or ~/.notesync)."
_STARTUP_ERRORS = (
    SourceDatabaseError,
    VectorIndexError,
    EmbeddingProviderError,
    MetadataPersistenceError,
    ProviderRegistryError,
)


def _create_embedder(config: AppConfig, logger: Logger) -> Embedder:
    return build_embedder(config.embeddings, logger=logger)


def _open_database(config: AppConfig) -> NotesDatabase:
    return open_database(config.database.path)


def _build_service(context: CLIContext) -> SyncService:
    return SyncService(
        context.config,
        context.paths,
        logger=context.logger.bind(component="service"),
    )


def _wait_for_shutdown(stop: threading.Event) -> None:
    while not stop.wait(0.5):
        pass


def _abort(context: CLIContext, *, action: str, error: Exception) -> typer.Exit:
    typer.secho(f"{action} failed: {error}", fg=typer.colors.RED)
    context.logger.error("command-failed", action=action, error=str(error))
    return typer.Exit(code=1)


def index_command(
    workspace: Path | None = typer.Option(None, "--workspace", "-w", help=_WORKSPACE_HELP),
    database: Path | None = typer.Option(None, "--database", "-d", help="Notes database path."),
    log_level: str | None = typer.Option(None, "--log-level", "-l", help="Override the logging level."),
) -> None:
    """Rebuild the vector index from every note."""

    context = load_cli_context(
        command="index",
        workspace=workspace,
        log_level=log_level,
        database=database,
    )
    config = context.config
    try:
        notes = _open_database(config)
    except SourceDatabaseError as exc:
        raise _abort(context, action="index", error=exc) from exc

    try:
        result = rebuild_index(
            notes,
            IndexMutator(_create_embedder(config, context.logger)),
            paths=context.paths,
            dim=config.embeddings.dim,
            metric=config.index.metric,
            metadata_store=MetadataStore(context.paths.metadata_path, logger=context.logger),
            logger=context.logger,
        )
    except _STARTUP_ERRORS as exc:
        raise _abort(context, action="index", error=exc) from exc
    finally:
        notes.close()

    typer.secho("Index rebuilt", fg=typer.colors.GREEN, bold=True)
    typer.echo(f"  indexed: {result.indexed}")
    typer.echo(f"  failed: {len(result.failed)}")
    typer.echo(f"  index: {context.paths.index_path}")


def sync_command(
    workspace: Path | None = typer.Option(None, "--workspace", "-w", help=_WORKSPACE_HELP),
    database: Path | None = typer.Option(None, "--database", "-d", help="Notes database path."),
    log_level: str | None = typer.Option(None, "--log-level", "-l", help="Override the logging level."),
) -> None:
    """Run a single incremental synchronization pass."""

    context = load_cli_context(
        command="sync",
        workspace=workspace,
        log_level=log_level,
        database=database,
    )
    service = _build_service(context)
    try:
        result = service.run_once()
    except _STARTUP_ERRORS as exc:
        raise _abort(context, action="sync", error=exc) from exc

    if result.skipped:
        typer.secho("Sync skipped: another pass is running", fg=typer.colors.YELLOW)
        return
    if result.error:
        typer.secho(f"Sync incomplete: {result.error}", fg=typer.colors.YELLOW)
    else:
        typer.secho("Sync complete", fg=typer.colors.GREEN, bold=True)
    typer.echo(f"  added: {len(result.added)}")
    typer.echo(f"  updated: {len(result.updated)}")
    typer.echo(f"  failed: {len(result.failed)}")
    typer.echo(f"  skipped without id: {result.unidentified}")
    typer.echo(f"  last update: {result.last_update}")


def watch_command(
    workspace: Path | None = typer.Option(None, "--workspace", "-w", help=_WORKSPACE_HELP),
    database: Path | None = typer.Option(None, "--database", "-d", help="Notes database path."),
    log_level: str | None = typer.Option(None, "--log-level", "-l", help="Override the logging level."),
) -> None:
    """Keep the index synchronized until interrupted."""

    context = load_cli_context(
        command="watch",
        workspace=workspace,
        log_level=log_level,
        database=database,
    )
    service = _build_service(context)
    stop = threading.Event()

    def _request_stop(signum: int, _frame: object) -> None:
        context.logger.info("shutdown-requested", signal=signal.Signals(signum).name)
        stop.set()

    previous = {
        signum: signal.signal(signum, _request_stop)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        try:
            service.start()
        except _STARTUP_ERRORS as exc:
            raise _abort(context, action="watch", error=exc) from exc
        typer.secho(
            "Watching for note changes (Ctrl+C to stop)",
            fg=typer.colors.GREEN,
        )
        _wait_for_shutdown(stop)
    finally:
        service.stop()
        for signum, handler in previous.items():
            signal.signal(signum, handler)
    typer.echo("Stopped")


def status_command(
    workspace: Path | None = typer.Option(None, "--workspace", "-w", help=_WORKSPACE_HELP),
) -> None:
    """Show the synchronization watermark and index counts."""

    context = load_cli_context(command="status", workspace=workspace)
    paths: WorkspacePaths = context.paths

    metadata = MetadataStore(paths.metadata_path, logger=context.logger).read()
    typer.secho("Sync status", fg=typer.colors.CYAN, bold=True)
    typer.echo(f"  workspace: {paths.workspace}")
    if metadata is None:
        typer.echo("  metadata: <none>")
    else:
        typer.echo(f"  last update: {metadata.last_update}")
        typer.echo(f"  last version: {metadata.last_version}")
        typer.echo(f"  indexed notes: {len(metadata.indexed_notes)}")

    try:
        index, mapping = load_index(
            index_path=paths.index_path,
            mapping_path=paths.mapping_path,
            metric=context.config.index.metric,
        )
    except VectorIndexMissingError:
        typer.secho("  index: missing (run `notesync index`)", fg=typer.colors.YELLOW)
        return
    except VectorIndexError as exc:
        raise _abort(context, action="status", error=exc) from exc

    typer.echo(f"  index: {paths.index_path}")
    typer.echo(f"  live vectors: {len(mapping)}")
    typer.echo(f"  total vectors: {index.size}")
    typer.echo(f"  tombstones: {index.size - len(mapping)}")


def search_command(
    query: str = typer.Argument(..., help="Text to search for."),
    limit: int = typer.Option(5, "--limit", "-k", min=1, help="Number of results."),
    workspace: Path | None = typer.Option(None, "--workspace", "-w", help=_WORKSPACE_HELP),
) -> None:
    """Find the notes closest to QUERY."""

    context = load_cli_context(command="search", workspace=workspace)
    try:
        index, mapping = load_index(
            index_path=context.paths.index_path,
            mapping_path=context.paths.mapping_path,
            metric=context.config.index.metric,
        )
        vector = _create_embedder(context.config, context.logger).embed(query)
        hits = index.search(vector, k=limit, mapping=mapping)
    except (VectorIndexError, EmbeddingProviderError, ProviderRegistryError) as exc:
        raise _abort(context, action="search", error=exc) from exc

    if not hits:
        typer.echo("No matches")
        return
    for rank, hit in enumerate(hits, start=1):
        typer.echo(f"{rank}. {hit.document_id}  (distance {hit.distance:.4f})")
