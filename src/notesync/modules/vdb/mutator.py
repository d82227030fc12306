"""Tombstone-and-append mutations over the vector index and its mapping."""

from __future__ import annotations

from typing import Protocol

import numpy as np

from notesync.modules.vdb.errors import EmptyDocumentError
from notesync.modules.vdb.faiss_index import PositionMap, VectorIndex

__all__ = ["IndexMutator", "TextEmbedder", "find_position", "embedding_text"]


class TextEmbedder(Protocol):
    def embed(self, text: str) -> np.ndarray: ...


def embedding_text(title: str | None, content: str | None) -> str:
    """Join title and body the way every indexed note is embedded."""

    return f"{title or ''}\n{content or ''}".strip()


def find_position(mapping: PositionMap, document_id: str) -> int | None:
    """Return the live position holding ``document_id``, if any."""

    for position, mapped_id in mapping.items():
        if mapped_id == document_id:
            return position
    return None


class IndexMutator:
    """Apply note additions and updates to an append-only index.

    The index cannot update or delete in place. An update therefore drops the
    old position from the mapping (leaving an unreachable tombstone vector)
    and appends a fresh vector. The mapping holds at most one live position
    per document id.
    """

    def __init__(self, embedder: TextEmbedder) -> None:
        self._embedder = embedder

    def add_document(
        self,
        index: VectorIndex,
        mapping: PositionMap,
        document_id: str,
        title: str | None,
        content: str | None,
    ) -> int:
        """Embed and append a note; return its new position.

        Raises:
            EmptyDocumentError: If title and content are both blank.
            EmbeddingProviderError: If embedding fails. Nothing is appended.
        """

        vector = self._embed(document_id, title, content)
        return self._append(index, mapping, document_id, vector)

    def update_document(
        self,
        index: VectorIndex,
        mapping: PositionMap,
        document_id: str,
        title: str | None,
        content: str | None,
    ) -> int:
        """Replace a note's vector, tombstoning its previous position.

        Behaves as :meth:`add_document` when the note has no live position.
        The embedding is computed first so a failed update leaves the prior
        live entry in place.
        """

        vector = self._embed(document_id, title, content)
        previous = find_position(mapping, document_id)
        if previous is not None:
            del mapping[previous]
        return self._append(index, mapping, document_id, vector)

    def _embed(
        self,
        document_id: str,
        title: str | None,
        content: str | None,
    ) -> np.ndarray:
        text = embedding_text(title, content)
        if not text:
            raise EmptyDocumentError(document_id)
        return self._embedder.embed(text)

    @staticmethod
    def _append(
        index: VectorIndex,
        mapping: PositionMap,
        document_id: str,
        vector: np.ndarray,
    ) -> int:
        position = index.append(vector)
        mapping[position] = document_id
        return position
