"""Append-only FAISS index adapter and its on-disk artifacts."""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import numpy as np

try:  # pragma: no cover - import guard exercised in tests via functionality
    import faiss
except ImportError as exc:  # pragma: no cover - bubble missing dependency
    message = "faiss is required for vector index operations; install faiss-cpu"
    raise ImportError(message) from exc

from notesync.modules.vdb.errors import (
    VectorIndexError,
    VectorIndexMissingError,
    VectorIndexPersistenceError,
)

__all__ = [
    "PositionMap",
    "SearchHit",
    "VectorIndex",
    "VectorIndexMetric",
    "load_index",
    "save_index",
]

PositionMap = dict[int, str]
"""Live view from index position to document id; absent slots are tombstones."""


@dataclass(frozen=True)
class VectorIndexMetric:
    """Metric descriptor bridging human-readable names to FAISS IDs."""

    name: str
    faiss_metric: int

    @property
    def normalizes(self) -> bool:
        return self.name == "cosine"

    @classmethod
    def from_name(cls, name: str) -> "VectorIndexMetric":
        normalized = name.strip().lower()
        if normalized in {"l2", "euclidean"}:
            return cls(name="l2", faiss_metric=faiss.METRIC_L2)
        if normalized in {"ip", "inner_product"}:
            return cls(name="ip", faiss_metric=faiss.METRIC_INNER_PRODUCT)
        if normalized == "cosine":
            return cls(name="cosine", faiss_metric=faiss.METRIC_INNER_PRODUCT)
        raise ValueError(f"Unsupported FAISS metric: {name!r}")


@dataclass(frozen=True, slots=True)
class SearchHit:
    """A live search result."""

    document_id: str
    position: int
    distance: float


class VectorIndex:
    """Append-only flat FAISS index addressed by insertion position.

    FAISS flat indexes offer no in-place update, so callers replace a vector
    by dropping its position from the :data:`PositionMap` and appending anew.
    """

    def __init__(
        self,
        *,
        index: faiss.Index,
        metric: VectorIndexMetric,
    ) -> None:
        if index.metric_type != metric.faiss_metric:
            raise VectorIndexError(
                f"Index metric type {index.metric_type} does not match "
                f"configured metric {metric.name!r}"
            )
        self._index = index
        self._metric = metric

    @property
    def dim(self) -> int:
        return self._index.d

    @property
    def metric(self) -> VectorIndexMetric:
        return self._metric

    @property
    def size(self) -> int:
        """Number of vectors stored, live or tombstoned."""

        return self._index.ntotal

    @classmethod
    def create(cls, *, dim: int, metric: str = "l2") -> "VectorIndex":
        if dim < 1:
            raise ValueError("dim must be >= 1")
        descriptor = VectorIndexMetric.from_name(metric)
        inner = faiss.index_factory(dim, "Flat", descriptor.faiss_metric)
        return cls(index=inner, metric=descriptor)

    @classmethod
    def from_bytes(
        cls,
        data: bytes | np.ndarray,
        *,
        metric: str = "l2",
    ) -> "VectorIndex":
        descriptor = VectorIndexMetric.from_name(metric)
        if isinstance(data, (bytes, bytearray, memoryview)):
            buffer = np.frombuffer(data, dtype="uint8")
        else:
            buffer = data
        raw_index = faiss.deserialize_index(buffer)
        return cls(index=raw_index, metric=descriptor)

    def to_bytes(self) -> bytes:
        return faiss.serialize_index(self._index).tobytes()

    def append(self, vector: Sequence[float] | np.ndarray) -> int:
        """Append one vector and return its position (the prior count)."""

        array = _vectors_to_array([vector], dim=self.dim)
        if self._metric.normalizes:
            faiss.normalize_L2(array)
        position = self._index.ntotal
        self._index.add(array)
        return position

    def search(
        self,
        query: Sequence[float] | np.ndarray,
        *,
        k: int,
        mapping: Mapping[int, str],
    ) -> list[SearchHit]:
        """Return up to ``k`` hits, skipping tombstoned positions."""

        if k <= 0:
            raise ValueError("k must be positive")
        if self.size == 0 or not mapping:
            return []
        array = _vectors_to_array([query], dim=self.dim)
        if self._metric.normalizes:
            faiss.normalize_L2(array)

        tombstones = max(0, self.size - len(mapping))
        fetch = min(self.size, k + tombstones)
        distances, positions = self._index.search(array, fetch)

        hits: list[SearchHit] = []
        for distance, position in zip(distances[0], positions[0]):
            if position < 0:
                continue
            document_id = mapping.get(int(position))
            if document_id is None:
                continue
            hits.append(
                SearchHit(
                    document_id=document_id,
                    position=int(position),
                    distance=float(distance),
                )
            )
            if len(hits) >= k:
                break
        return hits


def load_index(
    *,
    index_path: Path,
    mapping_path: Path,
    metric: str = "l2",
) -> tuple[VectorIndex, PositionMap]:
    """Load the index binary and its position mapping.

    Raises:
        VectorIndexMissingError: If either artifact is absent or unreadable.
    """

    def _missing(detail: str) -> VectorIndexMissingError:
        return VectorIndexMissingError(
            f"{detail}. Run `notesync index` to build the vector index.",
            index_path=index_path,
            mapping_path=mapping_path,
        )

    if not index_path.exists():
        raise _missing(f"Vector index not found at {index_path}")
    if not mapping_path.exists():
        raise _missing(f"Position mapping not found at {mapping_path}")

    try:
        index_bytes = index_path.read_bytes()
        mapping_text = mapping_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise _missing(f"Failed reading vector index artifacts: {exc}") from exc

    if not index_bytes:
        raise _missing(f"Vector index at {index_path} is empty")

    try:
        index = VectorIndex.from_bytes(index_bytes, metric=metric)
    except RuntimeError as exc:
        if isinstance(exc, VectorIndexError):
            raise
        raise _missing(f"Failed deserializing vector index: {exc}") from exc

    try:
        mapping = _parse_mapping(mapping_text)
    except ValueError as exc:
        raise _missing(f"Invalid position mapping at {mapping_path}: {exc}") from exc

    return index, mapping


def save_index(
    index: VectorIndex,
    mapping: Mapping[int, str],
    *,
    index_path: Path,
    mapping_path: Path,
) -> None:
    """Persist the index binary and position mapping.

    Raises:
        VectorIndexPersistenceError: If either artifact cannot be written.
    """

    payload = {str(position): mapping[position] for position in sorted(mapping)}
    try:
        index_path.parent.mkdir(parents=True, exist_ok=True)
        mapping_path.parent.mkdir(parents=True, exist_ok=True)
        _atomic_write_bytes(index_path, index.to_bytes())
        _atomic_write_bytes(
            mapping_path,
            (json.dumps(payload, ensure_ascii=False, indent=2) + "\n").encode("utf-8"),
        )
    except OSError as exc:
        raise VectorIndexPersistenceError(
            f"Failed to persist vector index under {index_path.parent}: {exc}"
        ) from exc


def _parse_mapping(text: str) -> PositionMap:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError("mapping is not valid JSON") from exc
    if not isinstance(data, dict):
        raise ValueError("mapping must decode to an object")
    mapping: PositionMap = {}
    for key, value in data.items():
        try:
            position = int(key)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"mapping key {key!r} is not an integer") from exc
        if position < 0:
            raise ValueError(f"mapping key {key!r} is negative")
        mapping[position] = str(value)
    return mapping


def _atomic_write_bytes(path: Path, data: bytes) -> None:
    temp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="wb",
            dir=path.parent,
            prefix=f".{path.name}-",
            suffix=".tmp",
            delete=False,
        ) as handle:
            handle.write(data)
            temp_path = Path(handle.name)
        os.replace(temp_path, path)
    except OSError:
        if temp_path is not None:
            try:
                temp_path.unlink()
            except OSError:
                pass
        raise


def _vectors_to_array(
    vectors: Sequence[Sequence[float]] | np.ndarray,
    *,
    dim: int,
) -> np.ndarray:
    array = np.ascontiguousarray(np.asarray(vectors, dtype="float32"))
    if array.ndim == 1:
        array = array.reshape(1, -1)
    if array.ndim != 2:
        raise ValueError("vectors must be a 2-D array of shape (n, dim)")
    if array.shape[1] != dim:
        message = (
            "Vector dimensionality mismatch: expected "
            f"{dim}, got {array.shape[1]}"
        )
        raise ValueError(message)
    return array
