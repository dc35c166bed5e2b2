from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from conftest import KeywordEmbedder, RecordingLLM, make_client
from docqa.config import Settings
from docqa.errors import DocumentStoreUnavailableError
from docqa.main import app
from docqa.services.rag import RAGService, get_rag_service
from docqa.store import InMemoryDocumentStore
from docqa.vectorstore import InMemoryVectorIndex

CONTRACT_TEXT = (
    b"The contract payment is due within thirty days of invoice. "
    b"Termination of the contract requires sixty days written notice."
)
ANSWER = "The payment is due within thirty days of invoice."


@pytest.fixture()
def service(tmp_path: Path, embedder: KeywordEmbedder) -> RAGService:
    return RAGService(
        embedding_client=make_client(embedder),
        vector_index=InMemoryVectorIndex(),
        document_store=InMemoryDocumentStore(),
        llm=RecordingLLM(
            answer=ANSWER,
            follow_ups="1. What happens if the invoice is paid late?\n2. How is notice delivered?",
        ),
        settings=Settings(upload_dir=tmp_path / "uploads"),
    )


@pytest.fixture()
def client(service: RAGService) -> Iterator[TestClient]:
    app.dependency_overrides[get_rag_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _upload(client: TestClient, content: bytes = CONTRACT_TEXT, name: str = "contract.txt") -> dict:
    response = client.post("/documents/upload", files={"file": (name, content, "text/plain")})
    assert response.status_code == 200, response.text
    return response.json()


def test_root_and_health(client: TestClient) -> None:
    assert client.get("/").text == "ok"

    health = client.get("/healthz")
    assert health.status_code == 200
    payload = health.json()
    assert payload["status"] == "ok"
    assert payload["model_loaded"] is False


def test_readiness_probe(client: TestClient) -> None:
    response = client.get("/readyz")

    assert response.status_code == 200
    assert response.text == "ok"


def test_upload_then_list_and_inspect(client: TestClient) -> None:
    uploaded = _upload(client)

    assert uploaded["filename"] == "contract.txt"
    assert uploaded["totalPages"] == 1
    assert uploaded["chunksCount"] == 1
    assert uploaded["fileSize"] == len(CONTRACT_TEXT)
    document_id = uploaded["documentId"]

    listing = client.get("/documents").json()
    assert listing["count"] == 1
    assert listing["documents"][0]["processingStatus"] == "completed"

    document = client.get(f"/documents/{document_id}").json()
    assert document["originalName"] == "contract.txt"

    content = client.get(f"/documents/{document_id}/content").json()
    assert content["chunks"][0]["pageNumber"] == 1
    assert content["chunks"][0]["contentLength"] == len(CONTRACT_TEXT)

    page = client.get(f"/documents/{document_id}/pages/1")
    assert page.status_code == 200
    assert client.get(f"/documents/{document_id}/pages/7").status_code == 404

    stats = client.get(f"/documents/{document_id}/stats").json()
    assert stats == {
        "totalChunks": 1,
        "totalChatMessages": 0,
        "processingStatus": "completed",
        "pageCount": 1,
    }


def test_upload_rejects_unsupported_type(client: TestClient) -> None:
    response = client.post("/documents/upload", files={"file": ("image.png", b"png", "image/png")})

    assert response.status_code == 400


def test_upload_rejects_oversized_file(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    from docqa.config import reset_settings_cache

    monkeypatch.setenv("MAX_FILE_SIZE", "10")
    reset_settings_cache()

    response = client.post("/documents/upload", files={"file": ("big.txt", b"x" * 11, "text/plain")})

    assert response.status_code == 400
    assert "too large" in response.json()["detail"]


def test_upload_without_text_is_bad_request(client: TestClient) -> None:
    response = client.post("/documents/upload", files={"file": ("empty.txt", b"  ", "text/plain")})

    assert response.status_code == 400
    assert "No text content" in response.json()["detail"]


def test_chat_query_returns_answer_citations_and_follow_ups(client: TestClient) -> None:
    document_id = _upload(client)["documentId"]

    response = client.post(
        "/chat/query",
        json={
            "query": "When is the payment due?",
            "documentId": document_id,
            "conversationHistory": [{"question": "What is this?", "answer": "A contract."}],
        },
    )

    assert response.status_code == 200, response.text
    payload = response.json()
    assert payload["answer"] == ANSWER
    assert payload["relevantChunks"] == 1
    assert payload["citations"][0]["pageNumber"] == 1
    assert 0.0 < payload["confidence"] <= 1.0
    assert payload["followUpQuestions"] == [
        "What happens if the invoice is paid late?",
        "How is notice delivered?",
    ]

    history = client.get(f"/chat/history/{document_id}").json()
    assert history["documentId"] == document_id
    assert [message["query"] for message in history["messages"]] == ["When is the payment due?"]


def test_chat_query_validation(client: TestClient) -> None:
    document_id = _upload(client)["documentId"]

    empty = client.post("/chat/query", json={"query": "", "documentId": document_id})
    assert empty.status_code == 422

    too_long = client.post("/chat/query", json={"query": "q" * 1001, "documentId": document_id})
    assert too_long.status_code == 400
    assert too_long.json()["detail"] == "Query too long (max 1000 characters)"

    missing = client.post("/chat/query", json={"query": "hello", "documentId": "missing"})
    assert missing.status_code == 404


def test_search_and_citations_endpoints(client: TestClient) -> None:
    document_id = _upload(client)["documentId"]

    search = client.post(
        "/chat/search", json={"query": "contract termination", "documentId": document_id, "limit": 3}
    ).json()
    assert search["totalResults"] == 1
    assert search["results"][0]["snippet"] == CONTRACT_TEXT.decode("utf-8")

    citations = client.post(
        "/chat/citations", json={"query": "contract termination", "documentId": document_id}
    ).json()
    assert citations["totalFound"] == 1
    assert citations["citations"][0]["pageNumber"] == 1


def test_suggestions(client: TestClient) -> None:
    document_id = _upload(client)["documentId"]

    response = client.get(f"/chat/suggestions/{document_id}")

    assert response.status_code == 200
    assert response.json()["documentName"] == "contract.txt"
    assert len(response.json()["suggestions"]) == 2
    assert client.get("/chat/suggestions/missing").status_code == 404


def test_delete_document(client: TestClient) -> None:
    document_id = _upload(client)["documentId"]

    response = client.delete(f"/documents/{document_id}")

    assert response.status_code == 200
    assert response.json() == {"documentId": document_id, "deleted": True}
    assert client.get(f"/documents/{document_id}").status_code == 404
    assert client.delete(f"/documents/{document_id}").status_code == 404


class _UnwritableStore(InMemoryDocumentStore):
    def _persist(self) -> None:
        raise DocumentStoreUnavailableError("document store is read-only")


def test_document_store_outage_maps_to_service_unavailable(tmp_path: Path, embedder: KeywordEmbedder) -> None:
    service = RAGService(
        embedding_client=make_client(embedder),
        vector_index=InMemoryVectorIndex(),
        document_store=_UnwritableStore(),
        llm=RecordingLLM(answer=ANSWER),
        settings=Settings(upload_dir=tmp_path / "uploads"),
    )
    app.dependency_overrides[get_rag_service] = lambda: service
    try:
        response = TestClient(app).post(
            "/documents/upload", files={"file": ("contract.txt", CONTRACT_TEXT, "text/plain")}
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 503
    assert "read-only" in response.json()["detail"]
    assert service.list_documents() == []
    assert list((tmp_path / "uploads").iterdir()) == []
