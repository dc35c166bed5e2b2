"""In-process vector index, optionally persisted to a JSON file."""
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from docqa.models import Chunk, SearchResult

from .base import DocumentLocks, rank_chunks, validate_chunks
from .errors import VectorStoreUnavailableError

LOGGER = logging.getLogger(__name__)


class InMemoryVectorIndex:
    """Keep chunk vectors in a dictionary keyed by document id."""

    backend_name = "memory"

    def __init__(self) -> None:
        self._documents: Dict[str, Dict[str, Chunk]] = {}
        self._index_lock = threading.RLock()
        self._document_locks = DocumentLocks()

    def upsert(self, document_id: str, chunks: Sequence[Chunk]) -> List[str]:
        validate_chunks(document_id, chunks)
        replacement = {chunk.id: chunk for chunk in chunks}
        with self._document_locks.hold(document_id):
            with self._index_lock:
                previous = self._documents.get(document_id)
                self._documents[document_id] = replacement
                try:
                    self._after_write()
                except Exception:
                    if previous is None:
                        self._documents.pop(document_id, None)
                    else:
                        self._documents[document_id] = previous
                    raise
        return list(replacement)

    def search(
        self,
        query_vector: Sequence[float],
        document_id: Optional[str] = None,
        limit: int = 10,
        score_floor: float = 0.1,
    ) -> List[SearchResult]:
        with self._index_lock:
            if document_id is not None:
                candidates = list(self._documents.get(document_id, {}).values())
            else:
                candidates = [
                    chunk for chunks in self._documents.values() for chunk in chunks.values()
                ]
        return rank_chunks(query_vector, candidates, limit=limit, score_floor=score_floor)

    def delete(self, document_id: str) -> int:
        with self._document_locks.hold(document_id):
            with self._index_lock:
                removed = self._documents.pop(document_id, None)
                if removed is None:
                    return 0
                try:
                    self._after_write()
                except Exception:
                    self._documents[document_id] = removed
                    raise
        return len(removed)

    def get_chunks(self, document_id: str) -> List[Chunk]:
        with self._index_lock:
            chunks = list(self._documents.get(document_id, {}).values())
        return sorted(chunks, key=lambda chunk: chunk.chunk_index)

    def count(self, document_id: Optional[str] = None) -> int:
        with self._index_lock:
            if document_id is not None:
                return len(self._documents.get(document_id, {}))
            return sum(len(chunks) for chunks in self._documents.values())

    def _after_write(self) -> None:
        """Hook invoked while the index lock is held after every mutation."""


class JsonVectorIndex(InMemoryVectorIndex):
    """In-memory index whose state is rewritten to disk after every mutation."""

    backend_name = "json"

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise VectorStoreUnavailableError(
                f"Failed to load vector index from {self.path}", cause=exc
            ) from exc

        for document_id, records in payload.items():
            chunks: Dict[str, Chunk] = {}
            for record in records:
                try:
                    chunk = Chunk.from_record(record)
                except (KeyError, TypeError, ValueError):
                    LOGGER.warning("Skipping malformed chunk record in %s: %r", self.path, record)
                    continue
                chunks[chunk.id] = chunk
            self._documents[document_id] = chunks
        LOGGER.info("Loaded %d documents from %s", len(self._documents), self.path)

    def _after_write(self) -> None:
        payload = {
            document_id: [chunk.to_record() for chunk in chunks.values()]
            for document_id, chunks in self._documents.items()
        }
        tmp_path = self.path.with_suffix(".tmp")
        try:
            tmp_path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as exc:
            raise VectorStoreUnavailableError(
                f"Failed to persist vector index to {self.path}", cause=exc
            ) from exc


__all__ = ["InMemoryVectorIndex", "JsonVectorIndex"]
