"""API router for asking questions about uploaded documents."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from docqa.api.schemas import (
    ChatHistoryResponse,
    ChatQueryRequest,
    ChatQueryResponse,
    ChatTurnResponse,
    CitationResponse,
    CitationsRequest,
    CitationsResponse,
    SearchRequest,
    SearchResponse,
    SuggestionsResponse,
    search_result_response,
)
from docqa.citations import make_snippet
from docqa.config import get_settings
from docqa.errors import AnswerGenerationError, DocumentNotFound, EmbeddingError
from docqa.models import ConversationEntry
from docqa.services.rag import RAGService, get_rag_service
from docqa.store import DEFAULT_HISTORY_LIMIT
from docqa.vectorstore import VectorStoreUnavailableError

LOGGER = logging.getLogger(__name__)

UNAVAILABLE_DETAIL = "The answer service is temporarily unavailable. Please try again later."

router = APIRouter(prefix="/chat", tags=["chat"])


def _check_query_length(query: str) -> None:
    max_length = get_settings().retrieval.max_query_length
    if len(query) > max_length:
        raise HTTPException(status_code=400, detail=f"Query too long (max {max_length} characters)")


@router.post("/query", response_model=ChatQueryResponse)
def chat_query(
    payload: ChatQueryRequest,
    rag_service: RAGService = Depends(get_rag_service),
) -> ChatQueryResponse:
    """Answer a question from the document and record the exchange."""

    _check_query_length(payload.query)
    history = [
        ConversationEntry(question=entry.question, answer=entry.answer)
        for entry in payload.conversation_history
    ]
    try:
        chat_result = rag_service.chat(payload.document_id, payload.query, history)
    except DocumentNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (EmbeddingError, AnswerGenerationError) as exc:
        LOGGER.warning("Chat query failed for document %s: %s", payload.document_id, exc)
        raise HTTPException(status_code=503, detail=UNAVAILABLE_DETAIL) from exc
    except VectorStoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    result = chat_result.result
    return ChatQueryResponse(
        query=chat_result.query,
        answer=result.answer,
        citations=[CitationResponse.from_citation(citation) for citation in result.citations],
        confidence=result.confidence,
        relevant_chunks=result.chunk_count,
        follow_up_questions=chat_result.follow_up_questions,
        timestamp=chat_result.timestamp,
    )


@router.post("/citations", response_model=CitationsResponse)
def find_citations(
    payload: CitationsRequest,
    rag_service: RAGService = Depends(get_rag_service),
) -> CitationsResponse:
    """Return the passages most similar to the query, with short snippets."""

    _check_query_length(payload.query)
    settings = get_settings()
    try:
        results = rag_service.search(payload.document_id, payload.query)
    except DocumentNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except EmbeddingError as exc:
        raise HTTPException(status_code=503, detail=UNAVAILABLE_DETAIL) from exc
    except VectorStoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    citations = [
        search_result_response(result, make_snippet(result.chunk.content, settings.retrieval.snippet_length))
        for result in results
    ]
    return CitationsResponse(citations=citations, total_found=len(citations))


@router.post("/search", response_model=SearchResponse)
def search_document(
    payload: SearchRequest,
    rag_service: RAGService = Depends(get_rag_service),
) -> SearchResponse:
    _check_query_length(payload.query)
    snippet_length = get_settings().retrieval.snippet_length
    try:
        results = rag_service.search(payload.document_id, payload.query, payload.limit)
    except DocumentNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except EmbeddingError as exc:
        raise HTTPException(status_code=503, detail=UNAVAILABLE_DETAIL) from exc
    except VectorStoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    return SearchResponse(
        query=payload.query,
        results=[
            search_result_response(result, make_snippet(result.chunk.content, snippet_length))
            for result in results
        ],
        total_results=len(results),
    )


@router.get("/suggestions/{document_id}", response_model=SuggestionsResponse)
def get_suggestions(
    document_id: str,
    rag_service: RAGService = Depends(get_rag_service),
) -> SuggestionsResponse:
    """Suggest starter questions for a document; an empty list when none can be produced."""

    try:
        document = rag_service.get_document(document_id)
    except DocumentNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return SuggestionsResponse(
        suggestions=rag_service.suggestions(document_id),
        document_name=document.original_name,
    )


@router.get("/history/{document_id}", response_model=ChatHistoryResponse)
def get_chat_history(
    document_id: str,
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=500),
    rag_service: RAGService = Depends(get_rag_service),
) -> ChatHistoryResponse:
    try:
        turns = rag_service.chat_history(document_id, limit)
    except DocumentNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ChatHistoryResponse(
        document_id=document_id,
        messages=[ChatTurnResponse.from_turn(turn) for turn in turns],
    )
