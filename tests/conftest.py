"""Shared fixtures isolating configuration and cached singletons between tests."""
from __future__ import annotations

from pathlib import Path
from typing import Iterator, List, Sequence

import pytest

from docqa.config import reset_settings_cache
from docqa.embeddings import EmbeddingClient, RetryPolicy, reset_embedding_client_cache
from docqa.llm_provider import LLM, reset_llm_cache
from docqa.services.rag import reset_rag_service_cache
from docqa.store import reset_document_store_cache
from docqa.vectorstore import reset_vector_index_cache


def _reset_caches() -> None:
    reset_settings_cache()
    reset_embedding_client_cache()
    reset_vector_index_cache()
    reset_document_store_cache()
    reset_llm_cache()
    reset_rag_service_cache()


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    monkeypatch.setenv("INSTALL_HEAVY", "false")
    monkeypatch.setenv("VECTOR_STORE", "memory")
    monkeypatch.setenv("DOCUMENT_STORE", "memory")
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.delenv("LLM_MODEL_PATH", raising=False)
    _reset_caches()
    yield
    _reset_caches()


class KeywordEmbedder:
    """Bag-of-words embedder over a fixed vocabulary, so related texts score high."""

    def __init__(self, vocabulary: Sequence[str]) -> None:
        self.vocabulary = [word.lower() for word in vocabulary]
        self.calls: List[str] = []
        self.model_name = "keyword-test"

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        vectors = []
        for text in texts:
            self.calls.append(text)
            lowered = text.lower()
            vectors.append([float(lowered.count(word)) for word in self.vocabulary] + [0.01])
        return vectors


class RecordingLLM(LLM):
    """Generator double that records prompts and replays a scripted answer."""

    def __init__(self, answer: str = "", follow_ups: str = "") -> None:
        self.answer = answer
        self.follow_ups = follow_ups
        self.prompts: List[str] = []

    def generate(self, prompt: str, max_tokens: int, temperature: float) -> str:
        self.prompts.append(prompt)
        if prompt.startswith("Based on this document summary"):
            return self.follow_ups
        return self.answer

    @property
    def model_loaded(self) -> bool:
        return True

    @property
    def model_name(self) -> str:
        return "recording"


def no_sleep(_: float) -> None:
    return None


def make_client(embedder: object) -> EmbeddingClient:
    return EmbeddingClient(embedder, policy=RetryPolicy(sleep=no_sleep))  # type: ignore[arg-type]


VOCABULARY = ["contract", "payment", "termination", "warranty", "delivery", "invoice"]


@pytest.fixture()
def embedder() -> KeywordEmbedder:
    return KeywordEmbedder(VOCABULARY)
