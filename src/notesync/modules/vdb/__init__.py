"""Vector database (VDB) module primitives."""

from __future__ import annotations

from .embedder import Embedder, build_embedder
from .errors import (
    EmbeddingProviderConfigurationError,
    EmbeddingProviderDimMismatchError,
    EmbeddingProviderError,
    EmbeddingProviderInputTooLargeError,
    EmbeddingProviderRateLimitError,
    EmbeddingProviderRequestError,
    EmbeddingProviderRetryableError,
    EmbeddingProviderRetryExceededError,
    EmptyDocumentError,
    VectorIndexError,
    VectorIndexMissingError,
    VectorIndexPersistenceError,
)
from .faiss_index import (
    PositionMap,
    SearchHit,
    VectorIndex,
    VectorIndexMetric,
    load_index,
    save_index,
)
from .mutator import IndexMutator, embedding_text, find_position
from .providers import (
    EmbedRequestOptions,
    EmbeddingMatrix,
    EmbeddingProviderCaps,
    EmbeddingProviderModel,
    EmbeddingVector,
    EmbeddingsProvider,
    ProviderFactory,
    ProviderInitContext,
    ProviderNotRegisteredError,
    ProviderRegistry,
    ProviderRegistryError,
    create_default_provider_registry,
)

__all__ = [
    "Embedder",
    "build_embedder",
    "EmbeddingProviderConfigurationError",
    "EmbeddingProviderDimMismatchError",
    "EmbeddingProviderError",
    "EmbeddingProviderInputTooLargeError",
    "EmbeddingProviderRateLimitError",
    "EmbeddingProviderRequestError",
    "EmbeddingProviderRetryableError",
    "EmbeddingProviderRetryExceededError",
    "EmptyDocumentError",
    "VectorIndexError",
    "VectorIndexMissingError",
    "VectorIndexPersistenceError",
    "PositionMap",
    "SearchHit",
    "VectorIndex",
    "VectorIndexMetric",
    "load_index",
    "save_index",
    "IndexMutator",
    "embedding_text",
    "find_position",
    "EmbedRequestOptions",
    "EmbeddingMatrix",
    "EmbeddingProviderCaps",
    "EmbeddingProviderModel",
    "EmbeddingVector",
    "EmbeddingsProvider",
    "ProviderFactory",
    "ProviderInitContext",
    "ProviderNotRegisteredError",
    "ProviderRegistry",
    "ProviderRegistryError",
    "create_default_provider_registry",
]
