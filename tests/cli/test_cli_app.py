"""Integration tests for the Typer application exposed by :mod:`notesync.cli`."""

from __future__ import annotations

import signal
import tomllib
from pathlib import Path

import pytest
from typer.testing import CliRunner

pytest.importorskip("faiss")

from notesync.cli import create_app  # noqa: E402
from notesync.modules.sync import SyncPassResult, SyncService  # noqa: E402
from notesync.modules.vdb import VectorIndexMissingError  # noqa: E402
from notesync.source import SourceDatabaseOpenError  # noqa: E402


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def env(tmp_path: Path) -> dict[str, str]:
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    (workspace / "notesync.toml").write_text(
        "[embeddings]\ndim = 4\n",
        encoding="utf-8",
    )
    return {"HOME": str(tmp_path), "NOTESYNC_WORKSPACE": str(workspace)}


@pytest.fixture()
def patched(monkeypatch: pytest.MonkeyPatch, notes_db, stub_embedder):
    monkeypatch.setattr("notesync.cli.sync._open_database", lambda config: notes_db)
    monkeypatch.setattr(
        "notesync.cli.sync._create_embedder",
        lambda config, logger: stub_embedder,
    )
    return notes_db


def test_cli_init_respects_env_and_outputs_status(
    runner: CliRunner,
    tmp_path: Path,
) -> None:
    workspace = tmp_path / "fresh"
    env = {
        "HOME": str(tmp_path),
        "NOTESYNC_WORKSPACE": str(workspace),
        "NOTESYNC_LOG_LEVEL": "warning",
    }

    result = runner.invoke(create_app(), ["init"], env=env, catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert "Workspace initialized" in result.output
    assert "log level: WARNING" in result.output
    assert "embeddings: local:all-MiniLM-L6-v2 (dim 384)" in result.output

    config = tomllib.loads((workspace / "notesync.toml").read_text(encoding="utf-8"))
    assert config["log_level"] == "WARNING"
    assert (workspace / "logs").is_dir()


def test_cli_init_existing_and_refresh_notes(runner: CliRunner, env) -> None:
    app = create_app()

    existing = runner.invoke(app, ["init"], env=env, catch_exceptions=False)
    refreshed = runner.invoke(app, ["init", "--refresh"], env=env, catch_exceptions=False)

    assert "existing workspace detected" in existing.output
    assert "archived previous config and index" in refreshed.output


def test_cli_init_rejects_file_workspace(runner: CliRunner, tmp_path: Path) -> None:
    target = tmp_path / "not-a-dir"
    target.write_text("file", encoding="utf-8")

    result = runner.invoke(create_app(), ["init", "--workspace", str(target)])

    assert result.exit_code == 1
    assert "Workspace error" in result.output


def test_status_reports_missing_index(runner: CliRunner, env) -> None:
    result = runner.invoke(create_app(), ["status"], env=env, catch_exceptions=False)

    assert result.exit_code == 0
    assert "Sync status" in result.output
    assert "metadata: <none>" in result.output
    assert "index: missing" in result.output


def test_index_status_and_search(
    runner: CliRunner, env, patched, make_document
) -> None:
    patched.documents = [
        make_document("n1", 1000, title="Groceries", content="milk"),
        make_document("n2", 2000, title="Trip", content="passport"),
    ]
    patched.version = 5
    app = create_app()

    indexed = runner.invoke(app, ["index"], env=env, catch_exceptions=False)
    assert indexed.exit_code == 0, indexed.output
    assert "Index rebuilt" in indexed.output
    assert "indexed: 2" in indexed.output
    assert patched.closed

    status = runner.invoke(app, ["status"], env=env, catch_exceptions=False)
    assert "last update: 2000" in status.output
    assert "last version: 5" in status.output
    assert "live vectors: 2" in status.output
    assert "tombstones: 0" in status.output

    found = runner.invoke(
        app,
        ["search", "Trip\npassport", "--limit", "1"],
        env=env,
        catch_exceptions=False,
    )
    assert found.exit_code == 0, found.output
    assert "1. n2  (distance 0.0000)" in found.output


def test_index_fails_cleanly_when_database_missing(
    runner: CliRunner, env, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _missing(config):
        raise SourceDatabaseOpenError("Notes database not found", path=Path("/nope"))

    monkeypatch.setattr("notesync.cli.sync._open_database", _missing)

    result = runner.invoke(create_app(), ["index"], env=env)

    assert result.exit_code == 1
    assert "index failed" in result.output


def test_search_without_index_fails(runner: CliRunner, env, patched) -> None:
    result = runner.invoke(create_app(), ["search", "anything"], env=env)

    assert result.exit_code == 1
    assert "search failed" in result.output


def test_sync_applies_new_notes(
    runner: CliRunner,
    env,
    patched,
    stub_embedder,
    make_document,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def _service(context) -> SyncService:
        return SyncService(
            context.config,
            context.paths,
            database=patched,
            embedder=stub_embedder,
        )

    monkeypatch.setattr("notesync.cli.sync._build_service", _service)
    patched.documents = [make_document("n1", 1000)]
    app = create_app()
    runner.invoke(app, ["index"], env=env, catch_exceptions=False)

    patched.documents.append(make_document("n2", 2000))
    result = runner.invoke(app, ["sync"], env=env, catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert "Sync complete" in result.output
    assert "added: 1" in result.output
    assert "last update: 2000" in result.output


class _FakeService:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.started = False
        self.stopped = False

    def start(self) -> None:
        if self.error is not None:
            raise self.error
        self.started = True

    def stop(self) -> None:
        self.stopped = True


def test_watch_runs_until_shutdown(
    runner: CliRunner, env, monkeypatch: pytest.MonkeyPatch
) -> None:
    service = _FakeService()
    monkeypatch.setattr("notesync.cli.sync._build_service", lambda context: service)
    monkeypatch.setattr("notesync.cli.sync._wait_for_shutdown", lambda stop: None)
    before = signal.getsignal(signal.SIGINT)

    result = runner.invoke(create_app(), ["watch"], env=env, catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert "Watching for note changes" in result.output
    assert "Stopped" in result.output
    assert service.started and service.stopped
    assert signal.getsignal(signal.SIGINT) is before


def test_watch_startup_failure_exits_nonzero(
    runner: CliRunner, env, monkeypatch: pytest.MonkeyPatch
) -> None:
    service = _FakeService(
        VectorIndexMissingError(
            "index missing",
            index_path=Path("/tmp/a.index"),
            mapping_path=Path("/tmp/a.json"),
        )
    )
    monkeypatch.setattr("notesync.cli.sync._build_service", lambda context: service)

    result = runner.invoke(create_app(), ["watch"], env=env)

    assert result.exit_code == 1
    assert "watch failed" in result.output
    assert service.stopped


class _OneShotService:
    def __init__(self, result: SyncPassResult) -> None:
        self.result = result

    def run_once(self) -> SyncPassResult:
        return self.result


def test_sync_reports_fetch_failure_once(
    runner: CliRunner, env, monkeypatch: pytest.MonkeyPatch
) -> None:
    service = _OneShotService(SyncPassResult(error="fetch failed"))
    monkeypatch.setattr("notesync.cli.sync._build_service", lambda context: service)

    result = runner.invoke(create_app(), ["sync"], env=env, catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert "Sync incomplete: fetch failed" in result.output
    assert "Sync complete" not in result.output


def test_sync_reports_skipped_pass(
    runner: CliRunner, env, monkeypatch: pytest.MonkeyPatch
) -> None:
    service = _OneShotService(SyncPassResult(skipped=True))
    monkeypatch.setattr("notesync.cli.sync._build_service", lambda context: service)

    result = runner.invoke(create_app(), ["sync"], env=env, catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert "Sync skipped" in result.output
    assert "Sync complete" not in result.output
    assert "Sync incomplete" not in result.output
