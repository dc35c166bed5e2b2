"""Environment driven configuration for the document QA service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

from docqa.errors import ChunkingConfigError

LOGGER = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 200
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default


def _float_from_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default


def _str_from_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def heavy_dependencies_enabled() -> bool:
    """Return whether model-backed embeddings and generation should be initialised."""

    flag = os.getenv("INSTALL_HEAVY", "false").strip().lower()
    return flag not in {"0", "false", "no", "off", ""}


@dataclass(slots=True)
class ChunkingConfig:
    """Window size and overlap used when splitting pages into chunks."""

    chunk_size: int = DEFAULT_CHUNK_SIZE
    overlap: int = DEFAULT_CHUNK_OVERLAP

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ChunkingConfigError(f"chunk_size must be positive (got {self.chunk_size})")
        if self.overlap < 0:
            raise ChunkingConfigError(f"overlap must not be negative (got {self.overlap})")
        if self.overlap >= self.chunk_size:
            raise ChunkingConfigError(
                f"overlap ({self.overlap}) must be strictly less than chunk_size ({self.chunk_size})"
            )

    @property
    def step(self) -> int:
        return self.chunk_size - self.overlap


@dataclass(slots=True)
class RetrievalConfig:
    """Tunables applied at query time."""

    query_limit: int = 5
    search_limit: int = 10
    score_floor: float = 0.1
    citation_threshold: float = 0.1
    confidence_scale: float = 2.0
    snippet_length: int = 150
    max_query_length: int = 1000


@dataclass(slots=True)
class RetryConfig:
    """Retry budget for embedding provider calls."""

    max_attempts: int = 3
    base_delay: float = 0.2
    pre_delay: float = 0.05


@dataclass(slots=True)
class Settings:
    """Aggregated service configuration."""

    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    vector_store: str = "memory"
    vector_store_path: Path = Path("data/vector_index.json")
    chroma_persist_dir: Path = Path("chroma_db")
    document_store: str = "memory"
    document_store_path: Path = Path("data/documents.json")
    upload_dir: Path = Path("uploads")
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    llm_max_tokens: int = 256
    llm_temperature: float = 0.0


def load_settings() -> Settings:
    """Build a :class:`Settings` instance from environment variables."""

    chunking = ChunkingConfig(
        chunk_size=_int_from_env("CHUNK_SIZE", DEFAULT_CHUNK_SIZE),
        overlap=_int_from_env("CHUNK_OVERLAP", DEFAULT_CHUNK_OVERLAP),
    )
    retrieval = RetrievalConfig(
        query_limit=_int_from_env("QUERY_LIMIT", 5),
        search_limit=_int_from_env("SEARCH_LIMIT", 10),
        score_floor=_float_from_env("SIMILARITY_THRESHOLD", 0.1),
        citation_threshold=_float_from_env("CITATION_THRESHOLD", 0.1),
        confidence_scale=_float_from_env("CONFIDENCE_SCALE", 2.0),
        snippet_length=_int_from_env("SNIPPET_LENGTH", 150),
        max_query_length=_int_from_env("MAX_QUERY_LENGTH", 1000),
    )
    retry = RetryConfig(
        max_attempts=max(1, _int_from_env("EMBEDDING_MAX_ATTEMPTS", 3)),
        base_delay=_float_from_env("EMBEDDING_BASE_DELAY", 0.2),
        pre_delay=_float_from_env("EMBEDDING_PRE_DELAY", 0.05),
    )
    return Settings(
        chunking=chunking,
        retrieval=retrieval,
        retry=retry,
        vector_store=_str_from_env("VECTOR_STORE", "memory").lower(),
        vector_store_path=Path(_str_from_env("VECTOR_STORE_PATH", "data/vector_index.json")),
        chroma_persist_dir=Path(_str_from_env("CHROMA_PERSIST_DIR", "chroma_db")),
        document_store=_str_from_env("DOCUMENT_STORE", "memory").lower(),
        document_store_path=Path(_str_from_env("DOCUMENT_STORE_PATH", "data/documents.json")),
        upload_dir=Path(_str_from_env("UPLOAD_DIR", "uploads")),
        max_file_size=_int_from_env("MAX_FILE_SIZE", DEFAULT_MAX_FILE_SIZE),
        llm_max_tokens=_int_from_env("LLM_MAX_TOKENS", 256),
        llm_temperature=_float_from_env("LLM_TEMPERATURE", 0.0),
    )


@lru_cache()
def get_settings() -> Settings:
    """Return the cached service settings."""

    return load_settings()


def reset_settings_cache() -> None:
    """Clear the cached settings (primarily for testing)."""

    get_settings.cache_clear()  # type: ignore[attr-defined]


__all__ = [
    "ChunkingConfig",
    "RetrievalConfig",
    "RetryConfig",
    "Settings",
    "get_settings",
    "heavy_dependencies_enabled",
    "load_settings",
    "reset_settings_cache",
]
