"""Typed error hierarchy for the vector index and embedding providers."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

__all__ = [
    "VectorIndexError",
    "VectorIndexMissingError",
    "VectorIndexPersistenceError",
    "EmptyDocumentError",
    "EmbeddingProviderError",
    "EmbeddingProviderConfigurationError",
    "EmbeddingProviderRequestError",
    "EmbeddingProviderRetryableError",
    "EmbeddingProviderRateLimitError",
    "EmbeddingProviderRetryExceededError",
    "EmbeddingProviderInputTooLargeError",
    "EmbeddingProviderDimMismatchError",
]


class VectorIndexError(RuntimeError):
    """Base error raised for vector index failures."""


class VectorIndexMissingError(VectorIndexError):
    """Raised when the index or its mapping is absent or unreadable.

    Callers decide whether to run a full rebuild; an empty index is never
    substituted.
    """

    def __init__(
        self,
        message: str,
        *,
        index_path: Path,
        mapping_path: Path,
    ) -> None:
        super().__init__(message)
        self.index_path = index_path
        self.mapping_path = mapping_path


class VectorIndexPersistenceError(VectorIndexError):
    """Raised when index artifacts cannot be written."""


class EmptyDocumentError(VectorIndexError):
    """Raised when a document has no text to embed."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Empty note content for {document_id!r}")
        self.document_id = document_id


@dataclass(slots=True)
class EmbeddingProviderError(RuntimeError):
    """Base error raised by embedding providers."""

    message: str
    provider: str
    model: str
    request_id: str | None = None
    status_code: int | None = None

    def __post_init__(self) -> None:
        RuntimeError.__init__(self, self.message)


@dataclass(slots=True)
class EmbeddingProviderConfigurationError(EmbeddingProviderError):
    """Raised when the provider is misconfigured or cannot initialize."""


@dataclass(slots=True)
class EmbeddingProviderRequestError(EmbeddingProviderError):
    """Raised for non-retryable request errors."""


@dataclass(slots=True)
class EmbeddingProviderRetryableError(EmbeddingProviderError):
    """Raised for retryable transport or server-side errors."""


@dataclass(slots=True)
class EmbeddingProviderRateLimitError(EmbeddingProviderRetryableError):
    """Raised when the provider returns a rate limiting response."""


@dataclass(slots=True)
class EmbeddingProviderRetryExceededError(EmbeddingProviderError):
    """Raised when retry attempts are exhausted."""

    attempts: int = 0


@dataclass(slots=True)
class EmbeddingProviderInputTooLargeError(EmbeddingProviderError):
    """Raised when a single input exceeds provider token limits."""

    token_count: int | None = None
    limit: int | None = None


@dataclass(slots=True)
class EmbeddingProviderDimMismatchError(EmbeddingProviderError):
    """Raised when the provider returns vectors with unexpected dimension."""

    expected: int | None = None
    actual: int | None = None
