"""Tests for :mod:`notesync.cli.init`."""

from __future__ import annotations

import tomllib
from pathlib import Path
from zipfile import ZipFile

from notesync.cli.init import init_workspace
from notesync.core.config import DEFAULTS_RESOURCE_NAME


def test_init_workspace_seeds_config_and_directories(tmp_path: Path) -> None:
    workspace = tmp_path / "workspace"

    config = init_workspace(workspace=workspace)

    config_path = workspace / "notesync.toml"
    assert config_path.exists()
    assert not (workspace / DEFAULTS_RESOURCE_NAME).exists()
    for name in ("logs", "archives", "index"):
        assert (workspace / name).is_dir()

    rendered = tomllib.loads(config_path.read_text(encoding="utf-8"))
    assert Path(rendered["workspace"]) == config.workspace
    assert rendered["log_level"] == "INFO"
    assert rendered["sync"]["debounce_seconds"] == 1.0
    assert config.workspace == workspace.resolve()


def test_init_workspace_applies_overrides(tmp_path: Path) -> None:
    database = tmp_path / "bear" / "database.sqlite"

    config = init_workspace(
        workspace=tmp_path / "workspace",
        log_level="debug",
        database=database,
        env_overrides={"log_level": "error"},
    )

    assert config.log_level == "DEBUG"
    assert config.database.path == database
    rendered = tomllib.loads(
        (tmp_path / "workspace" / "notesync.toml").read_text(encoding="utf-8")
    )
    assert rendered["database"]["path"] == str(database)


def test_init_workspace_keeps_existing_config_without_refresh(tmp_path: Path) -> None:
    workspace = tmp_path / "workspace"
    init_workspace(workspace=workspace)
    config_path = workspace / "notesync.toml"
    config_path.write_text("# customized\n", encoding="utf-8")

    init_workspace(workspace=workspace, log_level="warning")

    assert config_path.read_text(encoding="utf-8") == "# customized\n"


def test_init_workspace_refresh_archives_config_and_index(tmp_path: Path) -> None:
    workspace = tmp_path / "workspace"
    init_workspace(workspace=workspace)
    (workspace / "index" / "note_vectors.index").write_bytes(b"faiss")

    init_workspace(workspace=workspace, refresh=True, log_level="warning")

    archives = list((workspace / "archives").iterdir())
    assert len(archives) == 1
    with ZipFile(archives[0]) as archive:
        names = set(archive.namelist())
    assert {"notesync.toml", "index/note_vectors.index"} <= names

    assert (workspace / "index").is_dir()
    assert not (workspace / "index" / "note_vectors.index").exists()
    rendered = tomllib.loads((workspace / "notesync.toml").read_text(encoding="utf-8"))
    assert rendered["log_level"] == "WARNING"
