"""API router exposing document upload and inspection endpoints."""
from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from docqa.api.schemas import (
    ChunkResponse,
    DeleteResponse,
    DocumentContentResponse,
    DocumentListResponse,
    DocumentResponse,
    DocumentStatsResponse,
    PageContentResponse,
    UploadResponse,
)
from docqa.config import get_settings
from docqa.errors import DocumentNotFound, IngestionError, UnsupportedDocumentError
from docqa.extract import SUPPORTED_SUFFIXES
from docqa.services.rag import RAGService, get_rag_service
from docqa.vectorstore import VectorStoreUnavailableError

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])


@router.post("/upload", response_model=UploadResponse)
async def upload_document(
    file: UploadFile = File(...),
    rag_service: RAGService = Depends(get_rag_service),
) -> UploadResponse:
    """Upload a PDF or text document and index it for question answering."""

    suffix = Path(file.filename or "").suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise HTTPException(status_code=400, detail="Only PDF and plain text files are allowed")

    contents = await file.read()
    await file.seek(0)
    max_size = get_settings().max_file_size
    if len(contents) > max_size:
        raise HTTPException(status_code=400, detail=f"File size too large (max {max_size} bytes)")

    try:
        result = await rag_service.process_upload(file)
    except VectorStoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except (IngestionError, UnsupportedDocumentError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    document = rag_service.get_document(result.document_id)
    return UploadResponse(
        document_id=result.document_id,
        filename=document.original_name,
        total_pages=result.total_pages,
        chunks_count=result.chunks_count,
        summary=result.summary,
        file_size=document.size,
    )


@router.get("", response_model=DocumentListResponse)
def list_documents(rag_service: RAGService = Depends(get_rag_service)) -> DocumentListResponse:
    """Return every known document, newest first."""

    documents = [DocumentResponse.from_document(document) for document in rag_service.list_documents()]
    return DocumentListResponse(documents=documents, count=len(documents))


@router.get("/{document_id}", response_model=DocumentResponse)
def get_document(
    document_id: str,
    rag_service: RAGService = Depends(get_rag_service),
) -> DocumentResponse:
    try:
        return DocumentResponse.from_document(rag_service.get_document(document_id))
    except DocumentNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/{document_id}/content", response_model=DocumentContentResponse)
def get_document_content(
    document_id: str,
    rag_service: RAGService = Depends(get_rag_service),
) -> DocumentContentResponse:
    """Return the indexed chunks of a document in reading order."""

    try:
        chunks = rag_service.get_chunks(document_id)
    except DocumentNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except VectorStoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return DocumentContentResponse(chunks=[ChunkResponse.from_chunk(chunk) for chunk in chunks])


@router.get("/{document_id}/pages/{page_number}", response_model=PageContentResponse)
def get_page_content(
    document_id: str,
    page_number: int,
    rag_service: RAGService = Depends(get_rag_service),
) -> PageContentResponse:
    try:
        chunks = rag_service.get_chunks(document_id, page_number=page_number)
    except DocumentNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except VectorStoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if not chunks:
        raise HTTPException(status_code=404, detail="Page not found")
    return PageContentResponse(
        page_number=page_number,
        chunks=[ChunkResponse.from_chunk(chunk) for chunk in chunks],
    )


@router.get("/{document_id}/stats", response_model=DocumentStatsResponse)
def get_document_stats(
    document_id: str,
    rag_service: RAGService = Depends(get_rag_service),
) -> DocumentStatsResponse:
    try:
        stats = rag_service.document_stats(document_id)
    except DocumentNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except VectorStoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return DocumentStatsResponse(
        total_chunks=stats.total_chunks,
        total_chat_messages=stats.total_chat_messages,
        processing_status=stats.processing_status.value,
        page_count=stats.page_count,
    )


@router.delete("/{document_id}", response_model=DeleteResponse)
def delete_document(
    document_id: str,
    rag_service: RAGService = Depends(get_rag_service),
) -> DeleteResponse:
    """Delete a document together with its chunks, chat history and stored file."""

    try:
        rag_service.delete_document(document_id)
    except DocumentNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except VectorStoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return DeleteResponse(document_id=document_id, deleted=True)
