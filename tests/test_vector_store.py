from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import List, Optional

import pytest

from docqa.models import Chunk
from docqa.vectorstore import (
    InMemoryVectorIndex,
    JsonVectorIndex,
    VectorStoreUnavailableError,
    cosine_similarity,
    get_vector_index,
    reset_vector_index_cache,
)


def _make_chunk(
    index: int,
    embedding: Optional[List[float]],
    document_id: str = "doc-1",
    page: int = 1,
    content: str = "Example text",
) -> Chunk:
    return Chunk(
        id=Chunk.make_id(document_id, index),
        document_id=document_id,
        chunk_index=index,
        page_number=page,
        start_char=index * 10,
        end_char=index * 10 + len(content),
        content=content,
        embedding=embedding,
    )


def test_cosine_similarity_edge_cases() -> None:
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0
    assert cosine_similarity([], []) == 0.0
    assert cosine_similarity(None, [1.0]) == 0.0


def test_search_orders_by_similarity_and_applies_floor() -> None:
    index = InMemoryVectorIndex()
    index.upsert(
        "doc-1",
        [
            _make_chunk(0, [1.0, 0.0]),
            _make_chunk(1, [0.7, 0.7]),
            _make_chunk(2, [0.0, 1.0]),
        ],
    )

    results = index.search([1.0, 0.0], document_id="doc-1", limit=10, score_floor=0.1)

    assert [result.chunk.chunk_index for result in results] == [0, 1]
    assert results[0].similarity == pytest.approx(1.0)
    assert results[0].similarity >= results[1].similarity


def test_search_respects_limit_and_zero_limit() -> None:
    index = InMemoryVectorIndex()
    index.upsert("doc-1", [_make_chunk(i, [1.0, float(i)]) for i in range(5)])

    assert len(index.search([1.0, 0.0], document_id="doc-1", limit=2, score_floor=0.0)) == 2
    assert index.search([1.0, 0.0], document_id="doc-1", limit=0) == []


def test_search_filters_by_document() -> None:
    index = InMemoryVectorIndex()
    index.upsert("doc-1", [_make_chunk(0, [1.0, 0.0], document_id="doc-1")])
    index.upsert("doc-2", [_make_chunk(0, [1.0, 0.0], document_id="doc-2")])

    results = index.search([1.0, 0.0], document_id="doc-2")
    assert [result.chunk.document_id for result in results] == ["doc-2"]

    assert len(index.search([1.0, 0.0])) == 2
    assert index.search([1.0, 0.0], document_id="unknown") == []


def test_search_skips_mismatched_dimensions() -> None:
    index = InMemoryVectorIndex()
    index.upsert(
        "doc-1",
        [_make_chunk(0, [1.0, 0.0, 0.0]), _make_chunk(1, [1.0, 0.0])],
    )

    results = index.search([1.0, 0.0], document_id="doc-1")
    assert [result.chunk.chunk_index for result in results] == [1]


def test_upsert_replaces_previous_chunks() -> None:
    index = InMemoryVectorIndex()
    index.upsert("doc-1", [_make_chunk(i, [1.0, 0.0]) for i in range(3)])
    index.upsert("doc-1", [_make_chunk(0, [0.0, 1.0])])

    assert index.count("doc-1") == 1
    assert index.get_chunks("doc-1")[0].embedding == [0.0, 1.0]


def test_upsert_rejects_foreign_or_unembedded_chunks() -> None:
    index = InMemoryVectorIndex()

    with pytest.raises(ValueError):
        index.upsert("doc-1", [_make_chunk(0, [1.0], document_id="doc-2")])
    with pytest.raises(ValueError):
        index.upsert("doc-1", [_make_chunk(0, None)])
    assert index.count() == 0


def test_delete_is_idempotent() -> None:
    index = InMemoryVectorIndex()
    index.upsert("doc-1", [_make_chunk(i, [1.0, 0.0]) for i in range(2)])

    assert index.delete("doc-1") == 2
    assert index.delete("doc-1") == 0
    assert index.search([1.0, 0.0], document_id="doc-1") == []


def test_get_chunks_is_ordered_by_index() -> None:
    index = InMemoryVectorIndex()
    index.upsert("doc-1", [_make_chunk(i, [1.0, 0.0]) for i in (2, 0, 1)])

    assert [chunk.chunk_index for chunk in index.get_chunks("doc-1")] == [0, 1, 2]


def test_concurrent_upserts_for_different_documents() -> None:
    index = InMemoryVectorIndex()

    def worker(document_id: str) -> None:
        index.upsert(
            document_id,
            [_make_chunk(i, [1.0, float(i)], document_id=document_id) for i in range(20)],
        )

    threads = [threading.Thread(target=worker, args=(f"doc-{n}",)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert index.count() == 160


def test_json_index_persists_between_instances(tmp_path: Path) -> None:
    path = tmp_path / "index.json"
    first = JsonVectorIndex(path)
    first.upsert("doc-1", [_make_chunk(0, [1.0, 0.0], page=3, content="Persisted text")])

    second = JsonVectorIndex(path)
    chunks = second.get_chunks("doc-1")

    assert len(chunks) == 1
    assert chunks[0].page_number == 3
    assert chunks[0].content == "Persisted text"
    record = json.loads(path.read_text(encoding="utf-8"))["doc-1"][0]
    assert record["documentId"] == "doc-1"
    assert record["pageNumber"] == 3


def test_json_index_delete_is_persisted(tmp_path: Path) -> None:
    path = tmp_path / "index.json"
    index = JsonVectorIndex(path)
    index.upsert("doc-1", [_make_chunk(0, [1.0, 0.0])])
    index.delete("doc-1")

    assert JsonVectorIndex(path).count() == 0


def test_json_index_unreadable_file_is_unavailable(tmp_path: Path) -> None:
    path = tmp_path / "index.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(VectorStoreUnavailableError):
        JsonVectorIndex(path)


def test_get_vector_index_selects_backend(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    from docqa.config import reset_settings_cache

    assert isinstance(get_vector_index(), InMemoryVectorIndex)

    monkeypatch.setenv("VECTOR_STORE", "json")
    monkeypatch.setenv("VECTOR_STORE_PATH", str(tmp_path / "vectors.json"))
    reset_settings_cache()
    reset_vector_index_cache()
    assert isinstance(get_vector_index(), JsonVectorIndex)

    monkeypatch.setenv("VECTOR_STORE", "unknown")
    reset_settings_cache()
    reset_vector_index_cache()
    with pytest.raises(ValueError):
        get_vector_index()
