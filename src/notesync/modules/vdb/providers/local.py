"""Local sentence-transformers embeddings provider."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Mapping, Sequence

from notesync.core.logging import Logger
from notesync.modules.vdb.errors import (
    EmbeddingProviderConfigurationError,
    EmbeddingProviderRequestError,
)

from . import (
    EmbedRequestOptions,
    EmbeddingMatrix,
    EmbeddingProviderCaps,
    EmbeddingProviderModel,
    EmbeddingsProvider,
    ProviderInitContext,
)

if TYPE_CHECKING:  # pragma: no cover - type checker imports only
    from sentence_transformers import SentenceTransformer

__all__ = [
    "LocalEmbeddingsProvider",
    "local_provider_factory",
]

_KNOWN_DIMS: Mapping[str, int] = {
    "all-MiniLM-L6-v2": 384,
    "all-MiniLM-L12-v2": 384,
    "all-mpnet-base-v2": 768,
}
_DEFAULT_MAX_BATCH = 32


class LocalEmbeddingsProvider(EmbeddingsProvider):
    """Embed texts in-process with a sentence-transformers model.

    The model is loaded on first use; vectors are L2-normalized mean-pooled
    sentence embeddings.
    """

    def __init__(
        self,
        *,
        logger: Logger,
        config: Mapping[str, object] | None = None,
        model: "SentenceTransformer | None" = None,
    ) -> None:
        self.logger = logger
        self._config = dict(config or {})
        self._models: dict[str, SentenceTransformer] = {}
        self._lock = threading.Lock()
        if model is not None:
            name = str(self._config.get("model") or "all-MiniLM-L6-v2")
            self._models[name] = model

    def describe_model(self, model: str) -> EmbeddingProviderModel:
        name = model.strip()
        dim = _KNOWN_DIMS.get(name)
        if dim is None:
            dim = self._load(name).get_sentence_embedding_dimension()
        return EmbeddingProviderModel(provider="local", name=name, dim=dim)

    def capabilities(
        self,
        *,
        model: str | None = None,
    ) -> EmbeddingProviderCaps:
        return EmbeddingProviderCaps(max_batch_size=_DEFAULT_MAX_BATCH)

    def embed_texts(
        self,
        texts: Sequence[str],
        *,
        model: str,
        options: EmbedRequestOptions,
    ) -> EmbeddingMatrix:
        if not texts:
            return ()
        encoder = self._load(model.strip())
        try:
            vectors = encoder.encode(
                list(texts),
                batch_size=min(options.max_batch_size, _DEFAULT_MAX_BATCH),
                normalize_embeddings=True,
                convert_to_numpy=True,
                show_progress_bar=False,
            )
        except (RuntimeError, ValueError) as exc:
            raise EmbeddingProviderRequestError(
                str(exc) or exc.__class__.__name__,
                provider="local",
                model=model,
            ) from exc
        return tuple(tuple(float(value) for value in row) for row in vectors)

    def _load(self, name: str) -> "SentenceTransformer":
        with self._lock:
            cached = self._models.get(name)
            if cached is not None:
                return cached
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError as exc:
                raise EmbeddingProviderConfigurationError(
                    "sentence-transformers is required for the local provider; "
                    "install notesync[local-embeddings]",
                    provider="local",
                    model=name,
                ) from exc
            self.logger.info("local-model-load", provider="local", model=name)
            try:
                loaded = SentenceTransformer(name)
            except (OSError, ValueError) as exc:
                raise EmbeddingProviderConfigurationError(
                    f"Failed to load sentence-transformers model {name!r}: {exc}",
                    provider="local",
                    model=name,
                ) from exc
            self._models[name] = loaded
            return loaded


def local_provider_factory(
    context: ProviderInitContext,
) -> LocalEmbeddingsProvider:
    """Factory registered with the provider registry."""

    return LocalEmbeddingsProvider(
        logger=context.logger,
        config=context.config,
    )
