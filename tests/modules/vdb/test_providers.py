from __future__ import annotations

from typing import Mapping, Sequence

import numpy as np
import pytest
from structlog import get_logger

from notesync.core.config import EmbeddingSettings
from notesync.modules.vdb.embedder import Embedder, build_embedder
from notesync.modules.vdb.errors import EmbeddingProviderDimMismatchError
from notesync.modules.vdb.providers import (
    EmbedRequestOptions,
    EmbeddingMatrix,
    EmbeddingProviderCaps,
    EmbeddingProviderModel,
    EmbeddingsProvider,
    ProviderInitContext,
    ProviderNotRegisteredError,
    ProviderRegistry,
    ProviderRegistryError,
    create_default_provider_registry,
    register_builtin_providers,
)


class _StubProvider:
    """Minimal provider used to exercise registry and embedder wiring."""

    def __init__(self, *, logger, config: Mapping[str, object]) -> None:
        self.logger = logger
        self.config = config
        self.requests: list[tuple[tuple[str, ...], str, EmbedRequestOptions]] = []
        self.dim = 3

    def describe_model(self, model: str) -> EmbeddingProviderModel:
        return EmbeddingProviderModel(provider="stub", name=model, dim=self.dim)

    def capabilities(
        self,
        *,
        model: str | None = None,
    ) -> EmbeddingProviderCaps:
        return EmbeddingProviderCaps(max_batch_size=16)

    def embed_texts(
        self,
        texts: Sequence[str],
        *,
        model: str,
        options: EmbedRequestOptions,
    ) -> EmbeddingMatrix:
        self.requests.append((tuple(texts), model, options))
        return tuple(tuple(1.0 for _ in range(self.dim)) for _ in texts)


def _stub_factory(context: ProviderInitContext) -> _StubProvider:
    return _StubProvider(logger=context.logger, config=context.config)


def test_embedding_provider_model_normalizes_names() -> None:
    model = EmbeddingProviderModel(
        provider=" Local ",
        name=" all-MiniLM-L6-v2 ",
    )

    assert model.provider == "local"
    assert model.name == "all-MiniLM-L6-v2"

    with pytest.raises(ValueError):
        EmbeddingProviderModel(provider="", name="minilm")
    with pytest.raises(ValueError):
        EmbeddingProviderModel(provider="local", name="minilm", dim=0)


def test_embed_request_options_and_caps_validate_inputs() -> None:
    options = EmbedRequestOptions(max_batch_size=8, timeout=30.0, max_input_tokens=512)
    assert options.max_input_tokens == 512

    with pytest.raises(ValueError):
        EmbedRequestOptions(max_batch_size=0)
    with pytest.raises(ValueError):
        EmbedRequestOptions(timeout=0)
    with pytest.raises(ValueError):
        EmbedRequestOptions(max_input_tokens=0)
    with pytest.raises(ValueError):
        EmbeddingProviderCaps(max_batch_size=0)


def test_provider_registry_registers_and_creates_instances() -> None:
    registry = ProviderRegistry()
    registry.register("Stub", _stub_factory)

    logger = get_logger("test.provider.registry")
    provider = registry.create(" stub ", logger=logger, config={"model": "m"})

    assert isinstance(provider, _StubProvider)
    assert isinstance(provider, EmbeddingsProvider)
    assert provider.logger is logger
    with pytest.raises(TypeError):  # mapping proxy is immutable
        provider.config["model"] = "other"  # type: ignore[index]


def test_provider_registry_prevents_duplicates_and_handles_missing() -> None:
    registry = ProviderRegistry({"stub": _stub_factory})

    with pytest.raises(ProviderRegistryError):
        registry.register("STUB", _stub_factory)
    with pytest.raises(ProviderNotRegisteredError):
        registry.create("missing", logger=get_logger("test"))
    with pytest.raises(ValueError):
        registry.register("   ", _stub_factory)


def test_default_registry_exposes_builtin_providers() -> None:
    registry = create_default_provider_registry()

    assert registry.keys() == ("local", "openai")
    assert " OpenAI " in registry
    assert "stub" not in registry


def test_register_builtin_providers_keeps_existing_entries() -> None:
    registry = ProviderRegistry({"local": _stub_factory})

    register_builtin_providers(registry)

    provider = registry.create("local", logger=get_logger("test"))
    assert isinstance(provider, _StubProvider)
    assert registry.keys() == ("local", "openai")


def test_embedder_returns_float32_vector() -> None:
    provider = _StubProvider(logger=get_logger("test"), config={})
    embedder = Embedder(provider, model="stub-model", dim=3, timeout=5.0)

    vector = embedder.embed("hello")

    assert vector.dtype == np.float32
    assert vector.shape == (3,)
    texts, model, options = provider.requests[0]
    assert texts == ("hello",)
    assert model == "stub-model"
    assert options.timeout == 5.0


def test_embedder_rejects_wrong_dimension() -> None:
    provider = _StubProvider(logger=get_logger("test"), config={})
    provider.dim = 5
    embedder = Embedder(provider, model="stub-model", dim=3)

    with pytest.raises(EmbeddingProviderDimMismatchError) as excinfo:
        embedder.embed("hello")

    assert excinfo.value.expected == 3
    assert excinfo.value.actual == 5


def test_build_embedder_uses_registry_and_settings() -> None:
    registry = ProviderRegistry({"stub": _stub_factory})
    settings = EmbeddingSettings(provider="stub", model="tiny", dim=3)

    embedder = build_embedder(settings, logger=get_logger("test"), registry=registry)

    assert embedder.dim == 3
    assert embedder.model == "tiny"
    assert embedder.embed("note").shape == (3,)
