"""Remote embeddings through the OpenAI API."""

from __future__ import annotations

import os
import random
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Sequence

import httpx
import tiktoken
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    OpenAI,
    RateLimitError,
)

from notesync.core.logging import Logger
from notesync.modules.vdb.errors import (
    EmbeddingProviderConfigurationError,
    EmbeddingProviderDimMismatchError,
    EmbeddingProviderError,
    EmbeddingProviderInputTooLargeError,
    EmbeddingProviderRateLimitError,
    EmbeddingProviderRequestError,
    EmbeddingProviderRetryableError,
    EmbeddingProviderRetryExceededError,
)

from . import (
    EmbedRequestOptions,
    EmbeddingMatrix,
    EmbeddingProviderCaps,
    EmbeddingProviderModel,
    ProviderInitContext,
)

__all__ = [
    "OpenAIEmbeddingsProvider",
    "RetryPolicy",
    "openai_provider_factory",
]

_PROVIDER = "openai"
_DEFAULT_TIMEOUT = 30.0
_FALLBACK_ENCODING = "cl100k_base"

# model -> (dim, max batch); every listed model accepts 8191 input tokens
_MODELS: Mapping[str, tuple[int, int]] = {
    "text-embedding-3-small": (1_536, 128),
    "text-embedding-3-large": (3_072, 64),
    "text-embedding-ada-002": (1_536, 128),
}
_MAX_INPUT_TOKENS = 8_191
_UNKNOWN_MODEL_CAPS = EmbeddingProviderCaps(
    max_batch_size=128,
    max_input_tokens=_MAX_INPUT_TOKENS,
)

_TRANSIENT = (
    RateLimitError,
    APITimeoutError,
    APIConnectionError,
    httpx.TimeoutException,
    httpx.NetworkError,
)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Exponential backoff with jitter for transient API failures."""

    max_attempts: int = 5
    base_delay: float = 0.5
    max_delay: float = 8.0
    jitter: float = 0.2

    def delay(self, attempt: int, rng: random.Random) -> float:
        backoff = min(self.base_delay * 2 ** (attempt - 1), self.max_delay)
        return round(backoff * (1.0 + rng.uniform(-self.jitter, self.jitter)), 2)


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, _TRANSIENT):
        return True
    status = getattr(exc, "status_code", None)
    return isinstance(exc, APIStatusError) and isinstance(status, int) and status >= 500


def _timeout_from(config: Mapping[str, object]) -> float:
    raw = os.environ.get("OPENAI_TIMEOUT_SECONDS") or config.get("timeout")
    if raw is None:
        return _DEFAULT_TIMEOUT
    try:
        timeout = float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid OpenAI timeout: {raw!r}") from exc
    if timeout <= 0:
        raise ValueError("OpenAI timeout must be positive")
    return timeout


class OpenAIEmbeddingsProvider:
    """Embed note text via the OpenAI embeddings API.

    Inputs longer than the model's token window are truncated (and logged)
    unless ``truncate`` is disabled in the provider config, in which case
    :class:`EmbeddingProviderInputTooLargeError` is raised instead.
    Rate limits, timeouts, connection errors and 5xx responses are retried
    according to ``retry``.
    """

    def __init__(
        self,
        *,
        logger: Logger,
        config: Mapping[str, object] | None = None,
        client: OpenAI | None = None,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.logger = logger
        self._config = dict(config or {})
        self._truncate = bool(self._config.get("truncate", True))
        self._retry = retry or RetryPolicy()
        self._rng = random.Random()
        self._sleep = sleep
        self._now = now
        self._stats = {"requests": 0, "retries": 0, "failures": 0}
        self._client = client or self._connect()

    @property
    def stats(self) -> Mapping[str, int]:
        return dict(self._stats)

    def describe_model(self, model: str) -> EmbeddingProviderModel:
        spec = _MODELS.get(model.strip())
        return EmbeddingProviderModel(
            provider=_PROVIDER,
            name=model,
            dim=spec[0] if spec else None,
        )

    def capabilities(self, *, model: str | None = None) -> EmbeddingProviderCaps:
        spec = _MODELS.get(model.strip()) if model else None
        if spec is None:
            return _UNKNOWN_MODEL_CAPS
        return EmbeddingProviderCaps(
            max_batch_size=spec[1],
            max_input_tokens=_MAX_INPUT_TOKENS,
        )

    def embed_texts(
        self,
        texts: Sequence[str],
        *,
        model: str,
        options: EmbedRequestOptions,
    ) -> EmbeddingMatrix:
        if not texts:
            return ()
        model = model.strip()
        caps = self.capabilities(model=model)
        limit = min(
            caps.max_input_tokens or _MAX_INPUT_TOKENS,
            options.max_input_tokens or _MAX_INPUT_TOKENS,
        )
        batch_size = min(options.max_batch_size, caps.max_batch_size)
        expected_dim = self.describe_model(model).dim

        inputs = [self._fit_tokens(text, model=model, limit=limit) for text in texts]
        vectors: list[tuple[float, ...]] = []
        for offset in range(0, len(inputs), batch_size):
            for embedding in self._request(model, inputs[offset : offset + batch_size]):
                if expected_dim is not None and len(embedding) != expected_dim:
                    raise EmbeddingProviderDimMismatchError(
                        "OpenAI returned an embedding of unexpected width.",
                        provider=_PROVIDER,
                        model=model,
                        expected=expected_dim,
                        actual=len(embedding),
                    )
                vectors.append(tuple(float(value) for value in embedding))
        return tuple(vectors)

    def _connect(self) -> OpenAI:
        api_key = os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise EmbeddingProviderConfigurationError(
                "Set OPENAI_API_KEY to use the openai embeddings provider.",
                provider=_PROVIDER,
                model=str(self._config.get("model", "*")),
            )
        return OpenAI(
            api_key=api_key,
            base_url=os.environ.get("OPENAI_BASE_URL"),
            organization=os.environ.get("OPENAI_ORG_ID"),
            timeout=_timeout_from(self._config),
        )

    def _fit_tokens(self, text: str, *, model: str, limit: int) -> str:
        text = text.replace("\r\n", "\n").strip()
        try:
            encoding = tiktoken.encoding_for_model(model)
        except KeyError:
            encoding = tiktoken.get_encoding(_FALLBACK_ENCODING)
        tokens = encoding.encode(text)
        if len(tokens) <= limit:
            return text
        if not self._truncate:
            raise EmbeddingProviderInputTooLargeError(
                f"Note text is {len(tokens)} tokens; {model} accepts {limit}.",
                provider=_PROVIDER,
                model=model,
                token_count=len(tokens),
                limit=limit,
            )
        self.logger.warning(
            "openai-input-truncated",
            model=model,
            token_count=len(tokens),
            limit=limit,
        )
        return encoding.decode(tokens[:limit])

    def _request(self, model: str, batch: Sequence[str]) -> list[list[float]]:
        attempt = 0
        while True:
            attempt += 1
            started = self._now()
            try:
                response = self._client.embeddings.create(model=model, input=list(batch))
            except Exception as exc:
                if not _is_transient(exc) or attempt >= self._retry.max_attempts:
                    self._stats["failures"] += 1
                    raise self._wrap(exc, model=model, attempts=attempt) from exc
                delay = self._retry.delay(attempt, self._rng)
                self._stats["retries"] += 1
                self.logger.warning(
                    "openai-embed-retry",
                    model=model,
                    attempt=attempt,
                    retry_delay=delay,
                    error_type=type(exc).__name__,
                    status_code=getattr(exc, "status_code", None),
                )
                self._sleep(delay)
                continue

            self._stats["requests"] += 1
            self.logger.debug(
                "openai-embed-request",
                model=model,
                batch_size=len(batch),
                attempts=attempt,
                latency=self._now() - started,
            )
            return [list(item.embedding) for item in response.data]

    def _wrap(self, exc: Exception, *, model: str, attempts: int) -> EmbeddingProviderError:
        status = getattr(exc, "status_code", None)
        request_id = getattr(exc, "request_id", None)
        context = {
            "provider": _PROVIDER,
            "model": model,
            "status_code": status if isinstance(status, int) else None,
            "request_id": request_id if isinstance(request_id, str) else None,
        }
        message = str(exc) or type(exc).__name__
        if _is_transient(exc) and attempts >= self._retry.max_attempts:
            return EmbeddingProviderRetryExceededError(
                f"Gave up after {attempts} attempts: {message}",
                attempts=attempts,
                **context,
            )
        if isinstance(exc, RateLimitError):
            return EmbeddingProviderRateLimitError(message, **context)
        if _is_transient(exc):
            return EmbeddingProviderRetryableError(message, **context)
        return EmbeddingProviderRequestError(message, **context)


def openai_provider_factory(context: ProviderInitContext) -> OpenAIEmbeddingsProvider:
    return OpenAIEmbeddingsProvider(logger=context.logger, config=context.config)
