"""Tests for :mod:`notesync.resources`."""

from __future__ import annotations

import tomllib

import pytest

from notesync.resources import get_resource


def test_get_resource_missing_file_raises() -> None:
    with pytest.raises(FileNotFoundError):
        get_resource("does-not-exist.toml")


def test_packaged_defaults_are_valid_toml() -> None:
    data = tomllib.loads(
        get_resource("notesync.defaults.toml").read_text(encoding="utf-8")
    )

    assert data["sync"]["debounce_seconds"] == 1.0
    assert data["index"]["name"] == "note_vectors"
