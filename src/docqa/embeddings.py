"""Embedding helpers backed by Sentence Transformers, with bounded retry."""
from __future__ import annotations

import hashlib
import logging
import os
import random
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Callable, List, Protocol, Sequence, TypeVar

from docqa.config import RetryConfig, get_settings, heavy_dependencies_enabled
from docqa.errors import EmbeddingError
from docqa.telemetry import emit_embeddings_event

DEFAULT_MODEL_NAME = "sentence-transformers/all-MiniLM-L6-v2"
FALLBACK_DIMENSION = 384
FALLBACK_MODEL_NAME = "deterministic-fallback"

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class EmbeddingProvider(Protocol):
    """Anything able to turn a batch of texts into vectors."""

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        """Return one embedding per input text."""


class EmbeddingModel:
    """Wrapper around a SentenceTransformer model.

    When ``INSTALL_HEAVY`` is disabled no model is loaded and every text maps to a
    deterministic pseudo-random vector seeded from its sha256 digest. Identical
    texts therefore always share a vector, which is enough for development and
    tests but carries no semantic meaning.
    """

    def __init__(
        self,
        model_name_or_path: str | None = None,
        *,
        device: str | None = None,
        heavy_enabled: bool | None = None,
    ) -> None:
        model_path = model_name_or_path or os.getenv("EMBEDDING_MODEL_PATH", DEFAULT_MODEL_NAME)
        embedding_device = device or os.getenv("EMBEDDING_DEVICE")
        enabled = heavy_dependencies_enabled() if heavy_enabled is None else heavy_enabled

        self._model = None
        self._dimension = FALLBACK_DIMENSION
        self._embedder: Callable[[Sequence[str]], List[List[float]]] = self._fallback_embed_texts
        self._model_name = FALLBACK_MODEL_NAME

        if not enabled:
            LOGGER.info("INSTALL_HEAVY is disabled; using deterministic fallback embeddings.")
            return

        try:
            from sentence_transformers import SentenceTransformer

            self._model = SentenceTransformer(model_path, device=embedding_device)
        except Exception as error:  # pragma: no cover - depends on model availability
            LOGGER.exception("Failed to initialise sentence-transformers model '%s'", model_path)
            raise EmbeddingError(
                f"Embedding model '{model_path}' could not be loaded", cause=error
            ) from error

        self._model_name = model_path
        self._dimension = int(self._model.get_sentence_embedding_dimension())
        self._embedder = self._embed_texts_with_model

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        return self._embedder(texts)

    def _embed_texts_with_model(self, texts: Sequence[str]) -> List[List[float]]:  # pragma: no cover
        embeddings = self._model.encode(  # type: ignore[union-attr]
            list(texts),
            convert_to_numpy=True,
            show_progress_bar=False,
            normalize_embeddings=False,
        )
        return embeddings.tolist()

    def _fallback_embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        return [self._deterministic_embedding(str(text)) for text in texts]

    def _deterministic_embedding(self, text: str) -> List[float]:
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest(), "big")
        rng = random.Random(seed)
        return [rng.uniform(-1.0, 1.0) for _ in range(self._dimension)]

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def dimension(self) -> int:
        return int(self._dimension)


@dataclass(slots=True)
class RetryPolicy:
    """Bounded retry with a fixed pre-call delay and linearly growing backoff.

    Every attempt is preceded by ``pre_delay`` seconds. After failed attempt ``n``
    the policy waits ``base_delay * n`` seconds (plus up to ``jitter`` seconds of
    random noise) before trying again.
    """

    max_attempts: int = 3
    base_delay: float = 0.2
    pre_delay: float = 0.05
    jitter: float = 0.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    @classmethod
    def from_config(cls, config: RetryConfig, **overrides: object) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            pre_delay=config.pre_delay,
            **overrides,  # type: ignore[arg-type]
        )

    def backoff(self, attempt: int) -> float:
        delay = self.base_delay * attempt
        if self.jitter > 0:
            delay += random.uniform(0.0, self.jitter)
        return delay

    def run(self, operation: Callable[[], T], *, description: str = "operation") -> tuple[T, int]:
        """Run *operation* until it succeeds, returning its result and the attempt count."""

        attempts = max(1, self.max_attempts)
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            if self.pre_delay > 0:
                self.sleep(self.pre_delay)
            try:
                return operation(), attempt
            except Exception as error:
                last_error = error
                LOGGER.warning(
                    "%s failed on attempt %d/%d: %s", description, attempt, attempts, error
                )
                if attempt < attempts:
                    self.sleep(self.backoff(attempt))

        raise EmbeddingError(
            f"{description} failed after {attempts} attempts: {last_error}",
            attempts=attempts,
            cause=last_error,
        )


class EmbeddingClient:
    """Embed single texts through a provider, retrying according to a policy."""

    def __init__(
        self,
        provider: EmbeddingProvider | None = None,
        *,
        policy: RetryPolicy | None = None,
    ) -> None:
        self._provider = provider or EmbeddingModel()
        self._policy = policy or RetryPolicy.from_config(get_settings().retry)

    @property
    def provider(self) -> EmbeddingProvider:
        return self._provider

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def model_name(self) -> str:
        return str(getattr(self._provider, "model_name", type(self._provider).__name__))

    def embed(self, text: str) -> List[float]:
        """Return the embedding for *text*, raising :class:`EmbeddingError` once retries run out."""

        started = time.perf_counter()
        try:
            vector, attempts = self._policy.run(
                lambda: self._embed_once(text), description="Embedding request"
            )
        except EmbeddingError as error:
            emit_embeddings_event(
                model=self.model_name,
                count=1,
                duration_ms=(time.perf_counter() - started) * 1000.0,
                attempts=error.attempts,
                errors=[str(error.__cause__ or error)],
            )
            raise

        emit_embeddings_event(
            model=self.model_name,
            count=1,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            attempts=attempts,
        )
        return vector

    def _embed_once(self, text: str) -> List[float]:
        vectors = self._provider.embed_texts([text])
        if not vectors:
            raise ValueError("Embedding provider returned no vectors")
        return [float(value) for value in vectors[0]]


@lru_cache()
def get_embedding_client() -> EmbeddingClient:
    """Return a cached embedding client using the configured model."""

    return EmbeddingClient(EmbeddingModel())


def reset_embedding_client_cache() -> None:
    """Clear the cached embedding client (primarily for testing)."""

    get_embedding_client.cache_clear()  # type: ignore[attr-defined]


__all__ = [
    "DEFAULT_MODEL_NAME",
    "EmbeddingClient",
    "EmbeddingModel",
    "EmbeddingProvider",
    "FALLBACK_DIMENSION",
    "RetryPolicy",
    "get_embedding_client",
    "reset_embedding_client_cache",
]
