"""Pydantic request and response bodies exposed over HTTP."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from docqa.models import ChatTurn, Chunk, Citation, Document, SearchResult


class CamelModel(BaseModel):
    """Base model serialising field names in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadResponse(CamelModel):
    document_id: str
    filename: str
    total_pages: int
    chunks_count: int
    summary: str
    file_size: int


class DocumentResponse(CamelModel):
    id: str
    original_name: str
    page_count: int
    processing_status: str
    file_size: int
    summary: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, document: Document) -> "DocumentResponse":
        return cls(
            id=document.id,
            original_name=document.original_name,
            page_count=document.page_count,
            processing_status=document.status.value,
            file_size=document.size,
            summary=document.summary,
            created_at=document.created_at,
            updated_at=document.updated_at,
        )


class DocumentListResponse(CamelModel):
    documents: list[DocumentResponse]
    count: int


class ChunkResponse(CamelModel):
    id: str
    chunk_index: int
    page_number: int
    content: str
    content_length: int
    start_char: int
    end_char: int

    @classmethod
    def from_chunk(cls, chunk: Chunk) -> "ChunkResponse":
        return cls(
            id=chunk.id,
            chunk_index=chunk.chunk_index,
            page_number=chunk.page_number,
            content=chunk.content,
            content_length=len(chunk.content),
            start_char=chunk.start_char,
            end_char=chunk.end_char,
        )


class DocumentContentResponse(CamelModel):
    chunks: list[ChunkResponse]


class PageContentResponse(CamelModel):
    page_number: int
    chunks: list[ChunkResponse]


class DocumentStatsResponse(CamelModel):
    total_chunks: int
    total_chat_messages: int
    processing_status: str
    page_count: int


class DeleteResponse(CamelModel):
    document_id: str
    deleted: bool


class CitationResponse(CamelModel):
    page_number: int
    chunk_id: str
    relevance_score: float
    snippet: str
    source_index: int

    @classmethod
    def from_citation(cls, citation: Citation) -> "CitationResponse":
        return cls(
            page_number=citation.page_number,
            chunk_id=citation.chunk_id,
            relevance_score=citation.relevance_score,
            snippet=citation.snippet,
            source_index=citation.source_index,
        )


class ConversationEntryRequest(CamelModel):
    question: str
    answer: str


class ChatQueryRequest(CamelModel):
    """Request body accepted by the chat query endpoint."""

    query: str = Field(..., min_length=1, description="Question about the document.")
    document_id: str = Field(..., min_length=1, description="Identifier of the uploaded document.")
    conversation_history: list[ConversationEntryRequest] = Field(default_factory=list)


class ChatQueryResponse(CamelModel):
    query: str
    answer: str
    citations: list[CitationResponse]
    confidence: float
    relevant_chunks: int
    follow_up_questions: list[str]
    timestamp: datetime


class SearchRequest(CamelModel):
    query: str = Field(..., min_length=1)
    document_id: str = Field(..., min_length=1)
    limit: int = Field(10, ge=1, le=50)


class SearchResultResponse(CamelModel):
    chunk_id: str
    page_number: int
    content: str
    similarity: float
    snippet: str


class SearchResponse(CamelModel):
    query: str
    results: list[SearchResultResponse]
    total_results: int


class CitationsRequest(CamelModel):
    query: str = Field(..., min_length=1)
    document_id: str = Field(..., min_length=1)


class CitationsResponse(CamelModel):
    citations: list[SearchResultResponse]
    total_found: int


class SuggestionsResponse(CamelModel):
    suggestions: list[str]
    document_name: str


class ChatTurnResponse(CamelModel):
    id: str
    query: str
    answer: str
    citations: list[CitationResponse]
    confidence: float
    created_at: datetime

    @classmethod
    def from_turn(cls, turn: ChatTurn) -> "ChatTurnResponse":
        return cls(
            id=turn.id,
            query=turn.query,
            answer=turn.answer,
            citations=[CitationResponse.from_citation(citation) for citation in turn.citations],
            confidence=turn.confidence,
            created_at=turn.created_at,
        )


class ChatHistoryResponse(CamelModel):
    document_id: str
    messages: list[ChatTurnResponse]


def search_result_response(result: SearchResult, snippet: str) -> SearchResultResponse:
    return SearchResultResponse(
        chunk_id=result.chunk.id,
        page_number=result.chunk.page_number,
        content=result.chunk.content,
        similarity=result.similarity,
        snippet=snippet,
    )
