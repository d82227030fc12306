"""Shared pytest fixtures: workspace paths and in-memory collaborators."""

from __future__ import annotations

import hashlib
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
import pytest

from notesync.core.paths import WorkspacePaths, resolve_workspace
from notesync.source import Document, SourceDatabaseReadError

EMBED_DIM = 4


def hash_vector(text: str, dim: int = EMBED_DIM) -> list[float]:
    """Return a deterministic, non-zero vector derived from ``text``."""

    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [(byte + 1) / 256.0 for byte in digest[:dim]]


class StubEmbedder:
    """Embed text with :func:`hash_vector`; fail on configured texts."""

    def __init__(self, dim: int = EMBED_DIM) -> None:
        self.dim = dim
        self.calls: list[str] = []
        self.fail_on: set[str] = set()

    def embed(self, text: str) -> np.ndarray:
        self.calls.append(text)
        if text in self.fail_on:
            raise RuntimeError(f"embedding failed for {text!r}")
        return np.asarray(hash_vector(text, self.dim), dtype="float32")


@dataclass
class FakeNotesDatabase:
    """In-memory stand-in for the notes database."""

    documents: list[Document] = field(default_factory=list)
    version: int = 0
    path: Path = Path("/tmp/notes/database.sqlite")
    fail_version: bool = False
    fail_fetch: bool = False
    closed: bool = False
    fetch_calls: list[float] = field(default_factory=list)
    on_fetch: Callable[[], None] | None = None

    def fetch_modified_since(self, watermark) -> Sequence[Document]:
        self.fetch_calls.append(watermark)
        if self.on_fetch is not None:
            self.on_fetch()
        if self.fail_fetch:
            raise SourceDatabaseReadError("fetch failed", path=self.path)
        matching = [doc for doc in self.documents if doc.modified > watermark]
        return sorted(matching, key=lambda doc: doc.modified)

    def fetch_all(self) -> Sequence[Document]:
        return sorted(self.documents, key=lambda doc: doc.modified)

    def data_version(self) -> int:
        if self.fail_version:
            raise SourceDatabaseReadError("version read failed", path=self.path)
        return self.version

    def close(self) -> None:
        self.closed = True


class ManualTimer:
    """Timer that only fires when a test calls :meth:`fire`."""

    def __init__(self, interval: float, function: Callable[[], None]) -> None:
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.function()


class ManualTimerFactory:
    """Record every timer built by the scheduler."""

    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def __call__(self, interval: float, function: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(interval, function)
        self.timers.append(timer)
        return timer

    @property
    def active(self) -> list[ManualTimer]:
        return [timer for timer in self.timers if timer.started and not timer.cancelled]

    def fire_active(self) -> None:
        for timer in self.active:
            timer.fire()


@pytest.fixture
def workspace_paths(tmp_path: Path) -> WorkspacePaths:
    """Workspace rooted under ``tmp_path`` with its index directory created."""

    paths = resolve_workspace(workspace_override=tmp_path / "workspace")
    paths.index_dir.mkdir(parents=True, exist_ok=True)
    return paths


@pytest.fixture
def stub_embedder() -> StubEmbedder:
    return StubEmbedder()


@pytest.fixture
def notes_db() -> FakeNotesDatabase:
    return FakeNotesDatabase()


@pytest.fixture
def timers() -> ManualTimerFactory:
    return ManualTimerFactory()


@pytest.fixture
def make_document() -> Callable[..., Document]:
    def _make(
        doc_id: str,
        modified: float,
        *,
        title: str | None = "Title",
        content: str | None = "Body",
    ) -> Document:
        return Document(id=doc_id, title=title, content=content, modified=modified)

    return _make
