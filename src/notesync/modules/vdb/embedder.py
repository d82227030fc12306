"""Single-text embedding facade over a registered provider."""

from __future__ import annotations

import numpy as np

from notesync.core.config import EmbeddingSettings
from notesync.core.logging import Logger
from notesync.modules.vdb.errors import EmbeddingProviderDimMismatchError
from notesync.modules.vdb.providers import (
    EmbedRequestOptions,
    EmbeddingsProvider,
    ProviderRegistry,
    create_default_provider_registry,
)

__all__ = ["Embedder", "build_embedder"]


class Embedder:
    """Turn note text into one float32 vector of a fixed dimension."""

    def __init__(
        self,
        provider: EmbeddingsProvider,
        *,
        model: str,
        dim: int,
        timeout: float | None = None,
    ) -> None:
        self._provider = provider
        self._model = model
        self._dim = dim
        self._options = EmbedRequestOptions(max_batch_size=1, timeout=timeout)

    @property
    def dim(self) -> int:
        return self._dim

    @property
    def model(self) -> str:
        return self._model

    def embed(self, text: str) -> np.ndarray:
        """Embed ``text``.

        Raises:
            EmbeddingProviderError: If the provider fails or returns a vector
                of the wrong dimension.
        """

        matrix = self._provider.embed_texts(
            [text],
            model=self._model,
            options=self._options,
        )
        vector = np.asarray(matrix[0] if matrix else (), dtype="float32")
        if vector.shape != (self._dim,):
            raise EmbeddingProviderDimMismatchError(
                "Embedding dimension does not match the configured index.",
                provider=type(self._provider).__name__,
                model=self._model,
                expected=self._dim,
                actual=int(vector.size),
            )
        return vector


def build_embedder(
    settings: EmbeddingSettings,
    *,
    logger: Logger,
    registry: ProviderRegistry | None = None,
) -> Embedder:
    """Create an :class:`Embedder` from configuration."""

    registry = registry or create_default_provider_registry()
    provider = registry.create(
        settings.provider,
        logger=logger.bind(provider=settings.provider),
        config={"model": settings.model, "timeout": settings.timeout},
    )
    return Embedder(
        provider,
        model=settings.model,
        dim=settings.dim,
        timeout=settings.timeout,
    )
