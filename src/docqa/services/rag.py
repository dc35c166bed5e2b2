from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import List, Sequence, Tuple

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from docqa.chunker import chunk_pages, pages_from_texts, split_into_pages
from docqa.citations import compute_confidence, extract_citations
from docqa.config import Settings, get_settings
from docqa.embeddings import EmbeddingClient, get_embedding_client
from docqa.errors import (
    AnswerGenerationError,
    DocumentStoreUnavailableError,
    EmbeddingError,
    IngestionError,
)
from docqa.extract import DocumentText, extract_document
from docqa.llm_provider import LLM, get_llm
from docqa.logging_config import get_audit_logger
from docqa.models import (
    ChatTurn,
    Chunk,
    Citation,
    ConversationEntry,
    Document,
    DocumentStatus,
    Page,
    SearchResult,
    utcnow,
)
from docqa.prompt_builder import (
    NOT_FOUND_ANSWER,
    build_answer_prompt,
    build_context,
    build_document_summary,
    build_follow_up_prompt,
    parse_follow_up_questions,
)
from docqa.storage import delete_upload, save_upload
from docqa.store import DEFAULT_HISTORY_LIMIT, DocumentStore, get_document_store
from docqa.summary import generate_summary
from docqa.telemetry import (
    emit_exception,
    emit_inference_request,
    emit_inference_result,
    emit_ingest_event,
    emit_prompt_event,
    emit_retriever_event,
    emit_vectorstore_event,
    traced_duration,
)
from docqa.vectorstore import VectorIndex, VectorStoreUnavailableError, get_vector_index

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = get_audit_logger()


@dataclass(slots=True)
class IngestResult:
    """Structured result returned from :meth:`RAGService.ingest`."""

    document_id: str
    total_pages: int
    chunks_count: int
    summary: str
    dropped_chunks: int = 0
    duration_seconds: float = 0.0


@dataclass(slots=True)
class QueryResult:
    """Structured result returned from :meth:`RAGService.query`."""

    answer: str
    citations: List[Citation]
    confidence: float
    chunk_count: int
    sources: List[SearchResult] = field(default_factory=list)


@dataclass(slots=True)
class ChatResult:
    """A query result enriched with follow-up suggestions and the stored turn."""

    query: str
    result: QueryResult
    follow_up_questions: List[str]
    turn: ChatTurn

    @property
    def timestamp(self) -> datetime:
        return self.turn.created_at


@dataclass(slots=True)
class DocumentStats:
    total_chunks: int
    total_chat_messages: int
    processing_status: DocumentStatus
    page_count: int


class RAGService:
    """Orchestrates ingestion, retrieval, answer synthesis and document lifecycle."""

    def __init__(
        self,
        *,
        embedding_client: EmbeddingClient | None = None,
        vector_index: VectorIndex | None = None,
        document_store: DocumentStore | None = None,
        llm: LLM | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._embedding = embedding_client or get_embedding_client()
        self._index = vector_index or get_vector_index()
        self._store = document_store or get_document_store()
        self._llm = llm

    @property
    def llm(self) -> LLM:
        if self._llm is None:
            self._llm = get_llm()
        return self._llm

    @property
    def vector_index(self) -> VectorIndex:
        return self._index

    @property
    def embedding_client(self) -> EmbeddingClient:
        return self._embedding

    async def process_upload(self, upload: UploadFile) -> IngestResult:
        """Store an uploaded file, extract its text and ingest it as a new document."""

        document_id = str(uuid.uuid4())
        file_name = upload.filename or "upload"
        destination = await save_upload(document_id, upload, self._settings.upload_dir)
        size = destination.stat().st_size
        try:
            self._store.put_document(
                Document(
                    id=document_id,
                    original_name=file_name,
                    size=size,
                    storage_path=str(destination),
                )
            )
        except DocumentStoreUnavailableError:
            delete_upload(destination)
            raise
        emit_ingest_event(
            "ingest.file.start",
            document_id=document_id,
            file_name=file_name,
            size_bytes=size,
        )

        try:
            source = await run_in_threadpool(extract_document, destination.read_bytes(), file_name)
            return await run_in_threadpool(self.ingest, document_id, source)
        except (VectorStoreUnavailableError, DocumentStoreUnavailableError):
            self._mark_failed(document_id)
            delete_upload(destination)
            raise
        except Exception as error:
            self._mark_failed(document_id)
            delete_upload(destination)
            raise IngestionError(f"Failed to process document: {error}", cause=error) from error

    def ingest(self, document_id: str, source: DocumentText, *, original_name: str | None = None) -> IngestResult:
        """Chunk, embed and index *source* under *document_id*.

        Chunks whose embedding fails are logged and left out of the index; the
        ingestion only fails when no chunk could be vectorized. Unknown document
        ids are registered on the fly.
        """

        started = time.perf_counter()
        if not self._store.has_document(document_id):
            self._store.put_document(
                Document(
                    id=document_id,
                    original_name=original_name or document_id,
                    size=len(source.text.encode("utf-8")),
                )
            )
        self._store.update_document(document_id, status=DocumentStatus.PROCESSING)

        try:
            if not source.text.strip():
                raise IngestionError("No text content found in document")
            pages = self._paginate(source)
            chunks = chunk_pages(document_id, pages, self._settings.chunking)
            vectorized, dropped = self._vectorize(document_id, chunks)
            if not vectorized:
                raise IngestionError(
                    f"None of the {len(chunks)} chunks of document {document_id} could be vectorized"
                )
            self._persist_chunks(document_id, vectorized)
        except Exception as error:
            self._mark_failed(document_id)
            emit_exception(module=f"{__name__}.ingest", error=error, document_id=document_id)
            if isinstance(
                error, (IngestionError, VectorStoreUnavailableError, DocumentStoreUnavailableError)
            ):
                raise
            raise IngestionError(str(error) or type(error).__name__, cause=error) from error

        summary = generate_summary(source.text)
        self._store.update_document(
            document_id,
            status=DocumentStatus.COMPLETED,
            page_count=len(pages),
            summary=summary,
        )

        duration = time.perf_counter() - started
        emit_ingest_event(
            "ingest.file.complete",
            document_id=document_id,
            duration_ms=duration * 1000.0,
            pages=len(pages),
            chunks=len(vectorized),
            dropped=dropped,
        )
        AUDIT_LOGGER.info(
            {
                "event": "ingest",
                "document_id": document_id,
                "pages": len(pages),
                "chunk_count": len(vectorized),
                "dropped_chunks": dropped,
            }
        )
        return IngestResult(
            document_id=document_id,
            total_pages=len(pages),
            chunks_count=len(vectorized),
            summary=summary,
            dropped_chunks=dropped,
            duration_seconds=duration,
        )

    @staticmethod
    def _paginate(source: DocumentText) -> List[Page]:
        if source.pages is not None:
            return pages_from_texts(source.pages)
        return split_into_pages(source.text, max(source.page_count, 1))

    def _vectorize(self, document_id: str, chunks: Sequence[Chunk]) -> Tuple[List[Chunk], int]:
        vectorized: List[Chunk] = []
        dropped = 0
        for chunk in chunks:
            if not chunk.content.strip():
                LOGGER.debug("Skipping whitespace-only chunk %s", chunk.id)
                continue
            try:
                embedding = self._embedding.embed(chunk.content)
            except EmbeddingError as error:
                dropped += 1
                LOGGER.warning("Dropping chunk %s after embedding failure: %s", chunk.id, error)
                AUDIT_LOGGER.info(
                    {
                        "event": "chunk_dropped",
                        "document_id": document_id,
                        "chunk_id": chunk.id,
                        "page_number": chunk.page_number,
                        "embedding": None,
                        "reason": str(error),
                    }
                )
                continue
            vectorized.append(chunk.with_embedding(embedding))
        return vectorized, dropped

    def _persist_chunks(self, document_id: str, chunks: List[Chunk]) -> None:
        started = time.perf_counter()
        try:
            self._index.upsert(document_id, chunks)
        except VectorStoreUnavailableError as error:
            emit_vectorstore_event(
                "vectorstore.upsert",
                backend=self._index.backend_name,
                document_id=document_id,
                count=len(chunks),
                error=error,
            )
            raise
        emit_vectorstore_event(
            "vectorstore.upsert",
            backend=self._index.backend_name,
            document_id=document_id,
            count=len(chunks),
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )

    def _mark_failed(self, document_id: str) -> None:
        document = self._store.get_document(document_id)
        if document.status.is_terminal:
            return
        try:
            self._store.update_document(document_id, status=DocumentStatus.FAILED)
        except DocumentStoreUnavailableError:
            LOGGER.exception("Could not mark document %s as failed", document_id)

    def query(self, document_id: str, query_text: str) -> QueryResult:
        """Answer *query_text* from the indexed chunks of *document_id*."""

        self._store.get_document(document_id)
        retrieval = self._settings.retrieval
        results = self._search(document_id, query_text, retrieval.query_limit)

        if not results:
            LOGGER.info("No chunks above the score floor for document %s", document_id)
            AUDIT_LOGGER.info(
                {"event": "query", "document_id": document_id, "query": query_text, "sources": []}
            )
            return QueryResult(answer=NOT_FOUND_ANSWER, citations=[], confidence=0.0, chunk_count=0)

        context = build_context(results)
        prompt = build_answer_prompt(query_text, context)
        sources = [result.chunk.id for result in results]
        emit_prompt_event(purpose="answer", sources=sources, prompt_len=len(prompt))

        answer = self._generate(document_id, prompt)
        citations = extract_citations(
            results,
            answer,
            threshold=retrieval.citation_threshold,
            snippet_length=retrieval.snippet_length,
        )
        confidence = compute_confidence(
            (result.similarity for result in results), retrieval.confidence_scale
        )

        AUDIT_LOGGER.info(
            {
                "event": "query",
                "document_id": document_id,
                "query": query_text,
                "sources": sources,
                "confidence": confidence,
            }
        )
        return QueryResult(
            answer=answer,
            citations=citations,
            confidence=confidence,
            chunk_count=len(results),
            sources=results,
        )

    def search(self, document_id: str, query_text: str, limit: int | None = None) -> List[SearchResult]:
        """Return raw similarity matches for *query_text* within a known document."""

        self._store.get_document(document_id)
        return self._search(
            document_id,
            query_text,
            limit if limit is not None else self._settings.retrieval.search_limit,
        )

    def _search(self, document_id: str, query_text: str, limit: int) -> List[SearchResult]:
        query_vector = self._embedding.embed(query_text)
        score_floor = self._settings.retrieval.score_floor
        started = time.perf_counter()
        results = self._index.search(
            query_vector,
            document_id=document_id,
            limit=limit,
            score_floor=score_floor,
        )
        emit_retriever_event(
            document_id=document_id,
            query=query_text,
            limit=limit,
            score_floor=score_floor,
            results=[
                {
                    "id": result.chunk.id,
                    "page": result.chunk.page_number,
                    "similarity": round(result.similarity, 4),
                }
                for result in results
            ],
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return results

    def _generate(self, document_id: str, prompt: str) -> str:
        llm = self.llm
        req_id = uuid.uuid4().hex
        emit_inference_request(
            req_id=req_id,
            document_id=document_id,
            prompt_preview=prompt,
            prompt_len=len(prompt),
            temperature=self._settings.llm_temperature,
            max_tokens=self._settings.llm_max_tokens,
        )
        started = time.perf_counter()
        try:
            answer = llm.generate(
                prompt,
                max_tokens=self._settings.llm_max_tokens,
                temperature=self._settings.llm_temperature,
            )
        except Exception as error:
            LOGGER.exception("Answer generation failed for document %s", document_id)
            emit_exception(
                module=f"{__name__}.llm",
                error=error,
                req_id=req_id,
                document_id=document_id,
            )
            raise AnswerGenerationError("Answer generation failed", cause=error) from error

        emit_inference_result(
            req_id=req_id,
            document_id=document_id,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            model_used=llm.model_name,
            answer_preview=answer,
            fallback=not llm.model_loaded,
        )
        return answer

    def follow_up_questions(
        self, document_id: str, history: Sequence[ConversationEntry]
    ) -> List[str]:
        """Suggest up to three follow-up questions; never raises."""

        try:
            with traced_duration("rag.follow_up", document_id=document_id, turns=len(history)):
                chunks = self._index.get_chunks(document_id)
                prompt = build_follow_up_prompt(build_document_summary(chunks), history)
                emit_prompt_event(
                    purpose="follow_up",
                    sources=[chunk.id for chunk in chunks[:3]],
                    prompt_len=len(prompt),
                )
                text = self.llm.generate(
                    prompt,
                    max_tokens=self._settings.llm_max_tokens,
                    temperature=self._settings.llm_temperature,
                )
            return parse_follow_up_questions(text)
        except Exception:
            LOGGER.warning(
                "Follow-up question generation failed for document %s", document_id, exc_info=True
            )
            return []

    def chat(
        self,
        document_id: str,
        query_text: str,
        history: Sequence[ConversationEntry] = (),
    ) -> ChatResult:
        """Answer a query, record it as a chat turn and suggest follow-ups."""

        result = self.query(document_id, query_text)
        created_at = utcnow()
        turn = ChatTurn(
            id=f"{document_id}_{int(created_at.timestamp() * 1000)}_{uuid.uuid4().hex[:8]}",
            document_id=document_id,
            query=query_text,
            answer=result.answer,
            citations=list(result.citations),
            confidence=result.confidence,
            created_at=created_at,
        )
        self._store.append_turn(turn)
        AUDIT_LOGGER.info(
            {
                "event": "chat",
                "document_id": document_id,
                "turn_id": turn.id,
                "citations": [citation.chunk_id for citation in turn.citations],
            }
        )
        follow_ups = self.follow_up_questions(
            document_id,
            [*history, ConversationEntry(question=query_text, answer=result.answer)],
        )
        return ChatResult(
            query=query_text,
            result=result,
            follow_up_questions=follow_ups,
            turn=turn,
        )

    def suggestions(self, document_id: str) -> List[str]:
        self._store.get_document(document_id)
        return self.follow_up_questions(document_id, [])

    def chat_history(self, document_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[ChatTurn]:
        self._store.get_document(document_id)
        return self._store.list_turns(document_id, limit)

    def get_document(self, document_id: str) -> Document:
        return self._store.get_document(document_id)

    def list_documents(self) -> List[Document]:
        return self._store.list_documents()

    def get_chunks(self, document_id: str, page_number: int | None = None) -> List[Chunk]:
        self._store.get_document(document_id)
        chunks = self._index.get_chunks(document_id)
        if page_number is None:
            return chunks
        return [chunk for chunk in chunks if chunk.page_number == page_number]

    def document_stats(self, document_id: str) -> DocumentStats:
        document = self._store.get_document(document_id)
        return DocumentStats(
            total_chunks=len(self._index.get_chunks(document_id)),
            total_chat_messages=self._store.count_turns(document_id),
            processing_status=document.status,
            page_count=document.page_count,
        )

    def delete_document(self, document_id: str) -> Document:
        """Remove a document together with its chunks, chat turns and stored file."""

        document = self._store.get_document(document_id)
        removed_chunks = self._index.delete(document_id)
        emit_vectorstore_event(
            "vectorstore.delete",
            backend=self._index.backend_name,
            document_id=document_id,
            count=removed_chunks,
        )
        self._store.delete_document(document_id)
        file_removed = delete_upload(document.storage_path)
        AUDIT_LOGGER.info(
            {
                "event": "delete",
                "document_id": document_id,
                "chunks_removed": removed_chunks,
                "file_removed": file_removed,
            }
        )
        return document


@lru_cache()
def get_rag_service() -> RAGService:
    """FastAPI dependency returning the shared :class:`RAGService` instance."""

    return RAGService()


def reset_rag_service_cache() -> None:
    get_rag_service.cache_clear()  # type: ignore[attr-defined]


__all__ = [
    "ChatResult",
    "DocumentStats",
    "IngestResult",
    "QueryResult",
    "RAGService",
    "get_rag_service",
    "reset_rag_service_cache",
]
