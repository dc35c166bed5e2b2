"""Chroma backed vector index."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

import chromadb

from docqa.models import Chunk, SearchResult

from .base import DocumentLocks, rank_chunks, validate_chunks
from .errors import VectorStoreUnavailableError

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from chromadb.api import ClientAPI
    from chromadb.api.models.Collection import Collection

LOGGER = logging.getLogger(__name__)

DEFAULT_COLLECTION_NAME = "document_chunks"


class ChromaVectorIndex:
    """Store chunks in a Chroma collection keyed by chunk id.

    Candidates are filtered by ``document_id`` inside Chroma, but the final ranking
    recomputes cosine similarity locally so the score floor and tie ordering behave
    exactly like the in-memory backend.
    """

    backend_name = "chroma"

    def __init__(
        self,
        persist_dir: str | Path,
        *,
        collection_name: str = DEFAULT_COLLECTION_NAME,
        client: Optional["ClientAPI"] = None,
    ) -> None:
        self.persist_dir = Path(persist_dir)
        self.collection_name = collection_name
        self._document_locks = DocumentLocks()
        try:
            if client is None:
                self.persist_dir.mkdir(parents=True, exist_ok=True)
                client = chromadb.PersistentClient(path=str(self.persist_dir))
            self._client = client
            self._collection: "Collection" = client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
            )
        except Exception as exc:  # pragma: no cover - depends on chromadb runtime
            raise VectorStoreUnavailableError(
                "Failed to initialise Chroma collection", cause=exc
            ) from exc

    def upsert(self, document_id: str, chunks: Sequence[Chunk]) -> List[str]:
        validate_chunks(document_id, chunks)
        ids = [chunk.id for chunk in chunks]
        with self._document_locks.hold(document_id):
            try:
                self._collection.delete(where={"document_id": document_id})
                if chunks:
                    self._collection.upsert(
                        ids=ids,
                        embeddings=[list(map(float, chunk.embedding or [])) for chunk in chunks],
                        documents=[chunk.content for chunk in chunks],
                        metadatas=[self._metadata_for(chunk) for chunk in chunks],
                    )
            except Exception as exc:
                raise VectorStoreUnavailableError(
                    "Failed to upsert chunks into Chroma", cause=exc
                ) from exc
        return ids

    def search(
        self,
        query_vector: Sequence[float],
        document_id: Optional[str] = None,
        limit: int = 10,
        score_floor: float = 0.1,
    ) -> List[SearchResult]:
        if limit <= 0:
            return []
        candidates = self._fetch(document_id)
        return rank_chunks(query_vector, candidates, limit=limit, score_floor=score_floor)

    def delete(self, document_id: str) -> int:
        with self._document_locks.hold(document_id):
            try:
                existing = self._collection.get(where={"document_id": document_id})
                ids = list(existing.get("ids") or [])
                if ids:
                    self._collection.delete(ids=ids)
            except Exception as exc:
                raise VectorStoreUnavailableError(
                    "Failed to delete chunks from Chroma", cause=exc
                ) from exc
        return len(ids)

    def get_chunks(self, document_id: str) -> List[Chunk]:
        return sorted(self._fetch(document_id), key=lambda chunk: chunk.chunk_index)

    def _fetch(self, document_id: Optional[str]) -> List[Chunk]:
        kwargs: Dict[str, Any] = {"include": ["documents", "metadatas", "embeddings"]}
        if document_id is not None:
            kwargs["where"] = {"document_id": document_id}
        try:
            records = self._collection.get(**kwargs)
        except Exception as exc:
            raise VectorStoreUnavailableError("Chroma query failed", cause=exc) from exc

        ids = records.get("ids")
        documents = records.get("documents")
        metadatas = records.get("metadatas")
        embeddings = records.get("embeddings")
        if ids is None or len(ids) == 0:
            return []

        chunks: List[Chunk] = []
        for index, chunk_id in enumerate(ids):
            metadata = metadatas[index] if metadatas is not None else {}
            embedding = embeddings[index] if embeddings is not None else None
            chunks.append(
                Chunk(
                    id=str(chunk_id),
                    document_id=str(metadata.get("document_id", "")),
                    chunk_index=int(metadata.get("chunk_index", 0)),
                    page_number=int(metadata.get("page_number", 0)),
                    start_char=int(metadata.get("start_char", 0)),
                    end_char=int(metadata.get("end_char", 0)),
                    content=str(documents[index]) if documents is not None else "",
                    embedding=[float(value) for value in embedding] if embedding is not None else None,
                )
            )
        return chunks

    @staticmethod
    def _metadata_for(chunk: Chunk) -> Dict[str, Any]:
        return {
            "document_id": chunk.document_id,
            "chunk_index": chunk.chunk_index,
            "page_number": chunk.page_number,
            "start_char": chunk.start_char,
            "end_char": chunk.end_char,
        }


__all__ = ["ChromaVectorIndex", "DEFAULT_COLLECTION_NAME"]
