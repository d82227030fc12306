"""Embedding provider contract and the registry that builds providers by key.

Providers embed batches of note text. The SDK behind each built-in provider
is imported only when that provider is created, so choosing ``local`` never
imports ``openai`` and vice versa.
"""

from __future__ import annotations

from dataclasses import dataclass
from importlib import import_module
from types import MappingProxyType
from typing import Callable, Mapping, Protocol, Sequence, runtime_checkable

from notesync.core.logging import Logger

__all__ = [
    "BUILTIN_PROVIDERS",
    "EmbeddingVector",
    "EmbeddingMatrix",
    "EmbedRequestOptions",
    "EmbeddingProviderCaps",
    "EmbeddingProviderModel",
    "EmbeddingsProvider",
    "ProviderFactory",
    "ProviderInitContext",
    "ProviderRegistry",
    "ProviderRegistryError",
    "ProviderNotRegisteredError",
    "register_builtin_providers",
    "create_default_provider_registry",
]

EmbeddingVector = tuple[float, ...]
EmbeddingMatrix = tuple[EmbeddingVector, ...]


def _require_positive(name: str, value: float | None) -> None:
    if value is not None and value <= 0:
        raise ValueError(f"{name} must be positive")


@dataclass(frozen=True, slots=True)
class EmbedRequestOptions:
    """Per-request limits handed to :meth:`EmbeddingsProvider.embed_texts`.

    The sync engine embeds one note at a time, hence the batch size of one.
    """

    max_batch_size: int = 1
    timeout: float | None = None
    max_input_tokens: int | None = None

    def __post_init__(self) -> None:
        _require_positive("max_batch_size", self.max_batch_size)
        _require_positive("timeout", self.timeout)
        _require_positive("max_input_tokens", self.max_input_tokens)


@dataclass(frozen=True, slots=True)
class EmbeddingProviderCaps:
    """Batch and token ceilings a provider enforces for a model."""

    max_batch_size: int
    max_input_tokens: int | None = None

    def __post_init__(self) -> None:
        _require_positive("max_batch_size", self.max_batch_size)
        _require_positive("max_input_tokens", self.max_input_tokens)


@dataclass(frozen=True, slots=True)
class EmbeddingProviderModel:
    """A provider's description of one model, including its vector width."""

    provider: str
    name: str
    dim: int | None = None

    def __post_init__(self) -> None:
        provider = self.provider.strip().lower()
        name = self.name.strip()
        if not provider or not name:
            raise ValueError("provider and model name are required")
        object.__setattr__(self, "provider", provider)
        object.__setattr__(self, "name", name)
        _require_positive("dim", self.dim)


@runtime_checkable
class EmbeddingsProvider(Protocol):
    def describe_model(self, model: str) -> EmbeddingProviderModel: ...

    def capabilities(self, *, model: str | None = None) -> EmbeddingProviderCaps: ...

    def embed_texts(
        self,
        texts: Sequence[str],
        *,
        model: str,
        options: EmbedRequestOptions,
    ) -> EmbeddingMatrix: ...


@dataclass(frozen=True, slots=True)
class ProviderInitContext:
    """What a provider factory receives: a bound logger and read-only config."""

    logger: Logger
    config: Mapping[str, object] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "config", MappingProxyType(dict(self.config or {})))


ProviderFactory = Callable[[ProviderInitContext], EmbeddingsProvider]


class ProviderRegistryError(RuntimeError):
    """Raised when a provider key cannot be registered."""


class ProviderNotRegisteredError(ProviderRegistryError):
    """Raised when ``embeddings.provider`` names an unknown provider."""


class ProviderRegistry:
    """Map normalized provider keys (``local``, ``openai``) to factories."""

    def __init__(self, factories: Mapping[str, ProviderFactory] | None = None) -> None:
        self._factories: dict[str, ProviderFactory] = {}
        for key, factory in (factories or {}).items():
            self.register(key, factory)

    @staticmethod
    def _normalize_key(key: str) -> str:
        normalized = key.strip().lower()
        if not normalized:
            raise ValueError("provider key cannot be empty")
        return normalized

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.strip().lower() in self._factories

    def keys(self) -> tuple[str, ...]:
        return tuple(sorted(self._factories))

    def register(self, key: str, factory: ProviderFactory) -> None:
        normalized = self._normalize_key(key)
        if normalized in self._factories:
            raise ProviderRegistryError(f"Provider {normalized!r} already registered")
        self._factories[normalized] = factory

    def create(
        self,
        key: str,
        *,
        logger: Logger,
        config: Mapping[str, object] | None = None,
    ) -> EmbeddingsProvider:
        """Build the provider registered under ``key``.

        Raises:
            ProviderNotRegisteredError: If nothing is registered for ``key``.
        """

        normalized = self._normalize_key(key)
        factory = self._factories.get(normalized)
        if factory is None:
            known = ", ".join(self.keys()) or "none"
            raise ProviderNotRegisteredError(
                f"Unknown embeddings provider {normalized!r} (registered: {known})"
            )
        return factory(ProviderInitContext(logger=logger, config=config))


# provider key -> (submodule, factory attribute)
BUILTIN_PROVIDERS: Mapping[str, tuple[str, str]] = MappingProxyType(
    {
        "local": ("local", "local_provider_factory"),
        "openai": ("openai", "openai_provider_factory"),
    }
)


def _deferred(module: str, attribute: str) -> ProviderFactory:
    def _factory(context: ProviderInitContext) -> EmbeddingsProvider:
        loaded = import_module(f"{__name__}.{module}")
        return getattr(loaded, attribute)(context)

    return _factory


def register_builtin_providers(registry: ProviderRegistry) -> ProviderRegistry:
    """Add the built-in providers that ``registry`` does not already have."""

    for key, (module, attribute) in BUILTIN_PROVIDERS.items():
        if key not in registry:
            registry.register(key, _deferred(module, attribute))
    return registry


def create_default_provider_registry() -> ProviderRegistry:
    return register_builtin_providers(ProviderRegistry())
