"""Data models shared by the ingestion and query pipelines."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStatus(str, Enum):
    """Processing lifecycle of an uploaded document."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {DocumentStatus.COMPLETED, DocumentStatus.FAILED}


@dataclass(slots=True)
class Document:
    """Metadata describing an uploaded document."""

    id: str
    original_name: str
    size: int
    status: DocumentStatus = DocumentStatus.PENDING
    page_count: int = 0
    summary: str = ""
    storage_path: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["status"] = self.status.value
        payload["created_at"] = self.created_at.isoformat()
        payload["updated_at"] = self.updated_at.isoformat()
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Document":
        return cls(
            id=str(payload["id"]),
            original_name=str(payload.get("original_name", "")),
            size=int(payload.get("size", 0)),
            status=DocumentStatus(payload.get("status", DocumentStatus.PENDING.value)),
            page_count=int(payload.get("page_count", 0)),
            summary=str(payload.get("summary", "")),
            storage_path=payload.get("storage_path"),
            created_at=datetime.fromisoformat(payload["created_at"]),
            updated_at=datetime.fromisoformat(payload["updated_at"]),
        )


@dataclass(frozen=True, slots=True)
class Page:
    """Ordered unit of source text with a 1-based page number."""

    page_number: int
    text: str


@dataclass(frozen=True, slots=True)
class Chunk:
    """A contiguous, page-attributed slice of document text."""

    id: str
    document_id: str
    chunk_index: int
    page_number: int
    start_char: int
    end_char: int
    content: str
    embedding: Optional[List[float]] = None

    @staticmethod
    def make_id(document_id: str, chunk_index: int) -> str:
        return f"{document_id}_chunk_{chunk_index}"

    def with_embedding(self, embedding: List[float]) -> "Chunk":
        return replace(self, embedding=[float(value) for value in embedding])

    def to_record(self) -> dict[str, Any]:
        """Return the outward representation of the chunk."""

        return {
            "id": self.id,
            "documentId": self.document_id,
            "chunkIndex": self.chunk_index,
            "pageNumber": self.page_number,
            "content": self.content,
            "embedding": list(self.embedding) if self.embedding is not None else None,
            "startChar": self.start_char,
            "endChar": self.end_char,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Chunk":
        embedding = record.get("embedding")
        return cls(
            id=str(record["id"]),
            document_id=str(record["documentId"]),
            chunk_index=int(record["chunkIndex"]),
            page_number=int(record["pageNumber"]),
            start_char=int(record["startChar"]),
            end_char=int(record["endChar"]),
            content=str(record["content"]),
            embedding=[float(value) for value in embedding] if embedding is not None else None,
        )


@dataclass(slots=True)
class SearchResult:
    """A stored chunk together with its similarity to a query vector."""

    chunk: Chunk
    similarity: float


@dataclass(slots=True)
class Citation:
    """Pointer from a generated answer back to the chunk that supports it."""

    page_number: int
    chunk_id: str
    relevance_score: float
    snippet: str
    source_index: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Citation":
        return cls(
            page_number=int(payload["page_number"]),
            chunk_id=str(payload["chunk_id"]),
            relevance_score=float(payload["relevance_score"]),
            snippet=str(payload["snippet"]),
            source_index=int(payload["source_index"]),
        )


@dataclass(frozen=True, slots=True)
class ConversationEntry:
    """One question and answer pair of a conversation transcript."""

    question: str
    answer: str


@dataclass(slots=True)
class ChatTurn:
    """A single question and answer exchanged about a document."""

    id: str
    document_id: str
    query: str
    answer: str
    citations: List[Citation] = field(default_factory=list)
    confidence: float = 0.0
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "query": self.query,
            "answer": self.answer,
            "citations": [citation.to_dict() for citation in self.citations],
            "confidence": self.confidence,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ChatTurn":
        return cls(
            id=str(payload["id"]),
            document_id=str(payload["document_id"]),
            query=str(payload["query"]),
            answer=str(payload["answer"]),
            citations=[Citation.from_dict(item) for item in payload.get("citations", [])],
            confidence=float(payload.get("confidence", 0.0)),
            created_at=datetime.fromisoformat(payload["created_at"]),
        )


__all__ = [
    "ChatTurn",
    "Chunk",
    "ConversationEntry",
    "Citation",
    "Document",
    "DocumentStatus",
    "Page",
    "SearchResult",
    "utcnow",
]
