from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import pytest

from docqa.models import Chunk
from docqa.vectorstore import VectorStoreUnavailableError
from docqa.vectorstore.chroma_store import ChromaVectorIndex


class FakeCollection:
    """Dictionary backed collection implementing the calls the index makes."""

    def __init__(self) -> None:
        self.records: Dict[str, Dict[str, Any]] = {}
        self.fail = False

    def _matching(self, where: Dict[str, Any] | None) -> List[str]:
        if not where:
            return list(self.records)
        return [
            record_id
            for record_id, record in self.records.items()
            if all(record["metadata"].get(key) == value for key, value in where.items())
        ]

    def upsert(self, ids, embeddings, documents, metadatas) -> None:
        if self.fail:
            raise RuntimeError("collection offline")
        for record_id, embedding, document, metadata in zip(ids, embeddings, documents, metadatas):
            self.records[record_id] = {
                "embedding": embedding,
                "document": document,
                "metadata": metadata,
            }

    def get(self, where=None, include=None) -> Dict[str, Any]:
        if self.fail:
            raise RuntimeError("collection offline")
        ids = self._matching(where)
        return {
            "ids": ids,
            "documents": [self.records[record_id]["document"] for record_id in ids],
            "metadatas": [self.records[record_id]["metadata"] for record_id in ids],
            "embeddings": [self.records[record_id]["embedding"] for record_id in ids],
        }

    def delete(self, ids=None, where=None) -> None:
        if self.fail:
            raise RuntimeError("collection offline")
        targets = ids if ids is not None else self._matching(where)
        for record_id in targets:
            self.records.pop(record_id, None)


class FakeClient:
    def __init__(self) -> None:
        self.collection = FakeCollection()
        self.requested: List[Dict[str, Any]] = []

    def get_or_create_collection(self, name: str, metadata: Dict[str, Any]) -> FakeCollection:
        self.requested.append({"name": name, "metadata": metadata})
        return self.collection


def _chunk(index: int, embedding: List[float], document_id: str = "doc-1", page: int = 1) -> Chunk:
    return Chunk(
        id=Chunk.make_id(document_id, index),
        document_id=document_id,
        chunk_index=index,
        page_number=page,
        start_char=0,
        end_char=4,
        content=f"text {index}",
        embedding=embedding,
    )


@pytest.fixture()
def client() -> FakeClient:
    return FakeClient()


def test_collection_uses_cosine_space(client: FakeClient, tmp_path: Path) -> None:
    ChromaVectorIndex(tmp_path, client=client)

    assert client.requested == [
        {"name": "document_chunks", "metadata": {"hnsw:space": "cosine"}}
    ]


def test_upsert_search_and_metadata_round_trip(client: FakeClient, tmp_path: Path) -> None:
    index = ChromaVectorIndex(tmp_path, client=client)
    index.upsert("doc-1", [_chunk(0, [1.0, 0.0], page=2), _chunk(1, [0.0, 1.0], page=3)])
    index.upsert("doc-2", [_chunk(0, [1.0, 0.0], document_id="doc-2")])

    results = index.search([1.0, 0.1], document_id="doc-1", limit=5, score_floor=0.1)

    assert [result.chunk.id for result in results] == ["doc-1_chunk_0"]
    assert results[0].chunk.page_number == 2
    assert results[0].chunk.document_id == "doc-1"


def test_upsert_replaces_existing_document_chunks(client: FakeClient, tmp_path: Path) -> None:
    index = ChromaVectorIndex(tmp_path, client=client)
    index.upsert("doc-1", [_chunk(i, [1.0, 0.0]) for i in range(3)])
    index.upsert("doc-1", [_chunk(0, [0.0, 1.0])])

    chunks = index.get_chunks("doc-1")
    assert [chunk.chunk_index for chunk in chunks] == [0]
    assert chunks[0].embedding == [0.0, 1.0]


def test_delete_returns_removed_count(client: FakeClient, tmp_path: Path) -> None:
    index = ChromaVectorIndex(tmp_path, client=client)
    index.upsert("doc-1", [_chunk(i, [1.0, 0.0]) for i in range(2)])

    assert index.delete("doc-1") == 2
    assert index.delete("doc-1") == 0


def test_backend_failures_are_reported_as_unavailable(client: FakeClient, tmp_path: Path) -> None:
    index = ChromaVectorIndex(tmp_path, client=client)
    client.collection.fail = True

    with pytest.raises(VectorStoreUnavailableError):
        index.upsert("doc-1", [_chunk(0, [1.0, 0.0])])
    with pytest.raises(VectorStoreUnavailableError):
        index.search([1.0, 0.0], document_id="doc-1")
    with pytest.raises(VectorStoreUnavailableError):
        index.delete("doc-1")
