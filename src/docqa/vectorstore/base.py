"""Similarity scoring and locking shared by the vector index backends."""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional, Protocol, Sequence

import numpy as np

from docqa.models import Chunk, SearchResult


class VectorIndex(Protocol):
    """Contract implemented by every vector index backend."""

    backend_name: str

    def upsert(self, document_id: str, chunks: Sequence[Chunk]) -> List[str]:
        """Replace every stored chunk of *document_id* with *chunks*."""

    def search(
        self,
        query_vector: Sequence[float],
        document_id: Optional[str] = None,
        limit: int = 10,
        score_floor: float = 0.1,
    ) -> List[SearchResult]:
        """Return the chunks most similar to *query_vector*."""

    def delete(self, document_id: str) -> int:
        """Remove every chunk of *document_id*; returns how many were removed."""

    def get_chunks(self, document_id: str) -> List[Chunk]:
        """Return the stored chunks of *document_id* ordered by chunk index."""


def cosine_similarity(vec_a: Sequence[float] | None, vec_b: Sequence[float] | None) -> float:
    """Return ``dot(a, b) / (|a| * |b|)``, or ``0.0`` for empty, zero or mismatched vectors."""

    if vec_a is None or vec_b is None or len(vec_a) != len(vec_b) or len(vec_a) == 0:
        return 0.0
    a = np.asarray(vec_a, dtype=np.float64)
    b = np.asarray(vec_b, dtype=np.float64)
    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))


def rank_chunks(
    query_vector: Sequence[float],
    chunks: Iterable[Chunk],
    *,
    limit: int,
    score_floor: float,
) -> List[SearchResult]:
    """Score *chunks* against *query_vector* and keep the best ``limit`` above the floor.

    Chunks without an embedding, or whose embedding length differs from the query,
    are skipped rather than scored. Equal scores keep their input order.
    """

    if limit <= 0:
        return []

    dimension = len(query_vector)
    scored: List[SearchResult] = []
    for chunk in chunks:
        if chunk.embedding is None or len(chunk.embedding) != dimension:
            continue
        similarity = cosine_similarity(query_vector, chunk.embedding)
        if similarity < score_floor:
            continue
        scored.append(SearchResult(chunk=chunk, similarity=similarity))

    scored.sort(key=lambda result: result.similarity, reverse=True)
    return scored[:limit]


def validate_chunks(document_id: str, chunks: Sequence[Chunk]) -> None:
    """Reject chunks that belong elsewhere or were never vectorized."""

    for chunk in chunks:
        if chunk.document_id != document_id:
            raise ValueError(
                f"Chunk {chunk.id} belongs to document {chunk.document_id}, not {document_id}"
            )
        if chunk.embedding is None:
            raise ValueError(f"Chunk {chunk.id} has no embedding and cannot be indexed")


class DocumentLocks:
    """Hand out one lock per document so writes to the same document are serialized."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    @contextmanager
    def hold(self, document_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(document_id, threading.Lock())
        with lock:
            yield


__all__ = ["DocumentLocks", "VectorIndex", "cosine_similarity", "rank_chunks", "validate_chunks"]
