"""Vector index backends selected through configuration."""

from __future__ import annotations

from functools import lru_cache

from docqa.config import get_settings

from .base import DocumentLocks, VectorIndex, cosine_similarity, rank_chunks
from .errors import VectorStoreUnavailableError
from .memory_store import InMemoryVectorIndex, JsonVectorIndex


@lru_cache()
def get_vector_index() -> VectorIndex:
    """Return a lazily initialised vector index based on ``VECTOR_STORE``."""

    settings = get_settings()
    backend = settings.vector_store

    if backend == "memory":
        return InMemoryVectorIndex()

    if backend == "json":
        return JsonVectorIndex(settings.vector_store_path)

    if backend == "chroma":
        from .chroma_store import ChromaVectorIndex

        return ChromaVectorIndex(settings.chroma_persist_dir)

    raise ValueError(f"Unsupported VECTOR_STORE backend: {backend!r}")


def reset_vector_index_cache() -> None:
    """Clear the cached vector index (primarily for testing)."""

    get_vector_index.cache_clear()  # type: ignore[attr-defined]


__all__ = [
    "DocumentLocks",
    "InMemoryVectorIndex",
    "JsonVectorIndex",
    "VectorIndex",
    "VectorStoreUnavailableError",
    "cosine_similarity",
    "get_vector_index",
    "rank_chunks",
    "reset_vector_index_cache",
]
