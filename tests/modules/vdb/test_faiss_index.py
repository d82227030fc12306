"""Unit tests for the append-only FAISS index adapter."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

faiss = pytest.importorskip("faiss")
np = pytest.importorskip("numpy")

from notesync.modules.vdb import (  # noqa: E402
    VectorIndex,
    VectorIndexError,
    VectorIndexMissingError,
    VectorIndexPersistenceError,
    load_index,
    save_index,
)


def _paths(tmp_path: Path) -> tuple[Path, Path]:
    return tmp_path / "note_vectors.index", tmp_path / "note_vectors.json"


def test_append_returns_prior_count() -> None:
    index = VectorIndex.create(dim=3)

    assert index.append([1.0, 0.0, 0.0]) == 0
    assert index.append([0.0, 1.0, 0.0]) == 1
    assert index.size == 2
    assert index.dim == 3


def test_append_rejects_wrong_dimension() -> None:
    index = VectorIndex.create(dim=3)

    with pytest.raises(ValueError, match="dimensionality mismatch"):
        index.append([1.0, 0.0])
    assert index.size == 0


def test_search_skips_tombstoned_positions() -> None:
    index = VectorIndex.create(dim=2)
    index.append([1.0, 0.0])  # stale vector for n1
    index.append([0.0, 1.0])
    index.append([0.9, 0.1])
    mapping = {1: "n2", 2: "n1"}

    hits = index.search([1.0, 0.0], k=2, mapping=mapping)

    assert [hit.document_id for hit in hits] == ["n1", "n2"]
    assert all(hit.position != 0 for hit in hits)


def test_search_with_empty_mapping_returns_nothing() -> None:
    index = VectorIndex.create(dim=2)
    index.append([1.0, 0.0])

    assert index.search([1.0, 0.0], k=3, mapping={}) == []


def test_search_requires_positive_k() -> None:
    index = VectorIndex.create(dim=2)

    with pytest.raises(ValueError):
        index.search([1.0, 0.0], k=0, mapping={0: "n1"})


def test_cosine_metric_normalizes_vectors() -> None:
    index = VectorIndex.create(dim=2, metric="cosine")
    index.append([10.0, 0.0])

    hits = index.search([3.0, 0.0], k=1, mapping={0: "n1"})

    assert hits[0].distance == pytest.approx(1.0, rel=1e-5)


def test_unknown_metric_rejected() -> None:
    with pytest.raises(ValueError, match="Unsupported FAISS metric"):
        VectorIndex.create(dim=2, metric="manhattan")


def test_save_and_load_preserve_vectors_and_mapping(tmp_path: Path) -> None:
    index_path, mapping_path = _paths(tmp_path)
    index = VectorIndex.create(dim=2)
    index.append([1.0, 0.0])
    index.append([0.0, 1.0])

    save_index(index, {1: "n2"}, index_path=index_path, mapping_path=mapping_path)
    loaded, mapping = load_index(index_path=index_path, mapping_path=mapping_path)

    assert loaded.size == 2
    assert mapping == {1: "n2"}
    assert json.loads(mapping_path.read_text(encoding="utf-8")) == {"1": "n2"}
    assert not list(tmp_path.glob(".*.tmp"))


@pytest.mark.parametrize("missing", ["index", "mapping"])
def test_load_without_either_artifact_is_missing(tmp_path: Path, missing: str) -> None:
    index_path, mapping_path = _paths(tmp_path)
    save_index(VectorIndex.create(dim=2), {}, index_path=index_path, mapping_path=mapping_path)
    (index_path if missing == "index" else mapping_path).unlink()

    with pytest.raises(VectorIndexMissingError) as excinfo:
        load_index(index_path=index_path, mapping_path=mapping_path)

    assert "notesync index" in str(excinfo.value)
    assert excinfo.value.index_path == index_path


def test_load_corrupt_index_is_missing(tmp_path: Path) -> None:
    index_path, mapping_path = _paths(tmp_path)
    index_path.write_bytes(b"not a faiss index")
    mapping_path.write_text("{}", encoding="utf-8")

    with pytest.raises(VectorIndexMissingError):
        load_index(index_path=index_path, mapping_path=mapping_path)


def test_load_invalid_mapping_is_missing(tmp_path: Path) -> None:
    index_path, mapping_path = _paths(tmp_path)
    save_index(VectorIndex.create(dim=2), {}, index_path=index_path, mapping_path=mapping_path)
    mapping_path.write_text('{"zero": "n1"}', encoding="utf-8")

    with pytest.raises(VectorIndexMissingError, match="Invalid position mapping"):
        load_index(index_path=index_path, mapping_path=mapping_path)


def test_load_with_mismatched_metric_raises(tmp_path: Path) -> None:
    index_path, mapping_path = _paths(tmp_path)
    save_index(VectorIndex.create(dim=2, metric="l2"), {}, index_path=index_path, mapping_path=mapping_path)

    with pytest.raises(VectorIndexError) as excinfo:
        load_index(index_path=index_path, mapping_path=mapping_path, metric="ip")

    assert not isinstance(excinfo.value, VectorIndexMissingError)


def test_save_failure_raises_persistence_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file", encoding="utf-8")

    with pytest.raises(VectorIndexPersistenceError):
        save_index(
            VectorIndex.create(dim=2),
            {},
            index_path=blocker / "note_vectors.index",
            mapping_path=blocker / "note_vectors.json",
        )
