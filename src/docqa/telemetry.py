"""Structured lifecycle events for ingestion, retrieval and answering."""

from __future__ import annotations

import logging
import os
import platform
import socket
import sys
import time
import traceback
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

LOGGER = logging.getLogger("docqa.telemetry")

_ENV_KEYS_TO_LOG: tuple[str, ...] = (
    "INSTALL_HEAVY",
    "EMBEDDING_MODEL_PATH",
    "EMBEDDING_DEVICE",
    "LLM_MODEL_PATH",
    "LLM_MAX_TOKENS",
    "LLM_TEMPERATURE",
    "VECTOR_STORE",
    "VECTOR_STORE_PATH",
    "CHROMA_PERSIST_DIR",
    "DOCUMENT_STORE",
    "CHUNK_SIZE",
    "CHUNK_OVERLAP",
    "SIMILARITY_THRESHOLD",
)


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    req_id: str | None = None,
    document_id: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit a structured log event with a stable schema."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if req_id:
        event["req_id"] = req_id
    if document_id:
        event["document_id"] = document_id
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    event.update(payload)

    exc_info = None
    if exc is not None:
        if isinstance(exc, BaseException):
            event["exc"] = _format_exception(exc)
            exc_info = (exc.__class__, exc, exc.__traceback__)
        else:
            event["exc"] = str(exc)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event, exc_info=exc_info)


def emit_app_startup_event() -> None:
    env_values = {key: os.getenv(key) for key in _ENV_KEYS_TO_LOG if os.getenv(key) is not None}
    details = {
        "env": env_values,
        "python": sys.version.split()[0],
        "platform": platform.platform(),
    }
    log_event(
        LOGGER,
        "app.startup",
        details=details,
        pid=os.getpid(),
        hostname=socket.gethostname(),
        cwd=str(Path.cwd()),
    )


def emit_embeddings_event(
    *,
    model: str,
    count: int,
    duration_ms: float,
    attempts: int = 1,
    errors: list[str] | None = None,
) -> None:
    details = {
        "model": model,
        "count": count,
        "attempts": attempts,
        "errors": errors or [],
        "per_item_ms": round(duration_ms / count, 3) if count else None,
    }
    level = "warning" if errors else "info"
    log_event(LOGGER, "embeddings.compute", level=level, duration_ms=duration_ms, details=details)


def emit_vectorstore_event(
    step: str,
    *,
    backend: str,
    document_id: str | None,
    count: int,
    duration_ms: float | None = None,
    error: BaseException | None = None,
) -> None:
    details = {"backend": backend, "count": count}
    level = "error" if error else "info"
    log_event(
        LOGGER,
        step,
        level=level,
        document_id=document_id,
        duration_ms=duration_ms,
        details=details,
        exc=error,
    )


def emit_retriever_event(
    *,
    document_id: str,
    query: str,
    limit: int,
    score_floor: float,
    results: list[dict[str, Any]],
    duration_ms: float,
) -> None:
    details = {
        "query_preview": query[:120],
        "limit": limit,
        "score_floor": score_floor,
        "results": results,
    }
    log_event(
        LOGGER,
        "retriever.search",
        document_id=document_id,
        duration_ms=duration_ms,
        details=details,
    )


def emit_prompt_event(
    *,
    purpose: str,
    sources: Iterable[str],
    prompt_len: int,
) -> None:
    details = {"purpose": purpose, "sources": list(sources), "prompt_len": prompt_len}
    log_event(LOGGER, "prompt.compose", details=details)


def emit_inference_request(
    *,
    req_id: str,
    document_id: str,
    prompt_preview: str,
    prompt_len: int,
    temperature: float,
    max_tokens: int | None,
) -> None:
    details = {
        "prompt_preview": prompt_preview[:120],
        "prompt_len": prompt_len,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    log_event(LOGGER, "inference.request", req_id=req_id, document_id=document_id, details=details)


def emit_inference_result(
    *,
    req_id: str,
    document_id: str,
    duration_ms: float,
    model_used: str,
    answer_preview: str,
    fallback: bool,
) -> None:
    details = {
        "model_used": model_used,
        "answer_preview": answer_preview[:120],
        "fallback": fallback,
    }
    log_event(
        LOGGER,
        "inference.result",
        req_id=req_id,
        document_id=document_id,
        duration_ms=duration_ms,
        details=details,
    )


def emit_ingest_event(
    step: str,
    *,
    document_id: str,
    file_name: str | None = None,
    size_bytes: int | None = None,
    duration_ms: float | None = None,
    pages: int | None = None,
    chunks: int | None = None,
    dropped: int | None = None,
) -> None:
    details = {
        "file": file_name,
        "size_bytes": size_bytes,
        "pages": pages,
        "chunks": chunks,
        "dropped": dropped,
    }
    log_event(LOGGER, step, document_id=document_id, duration_ms=duration_ms, details=details)


def emit_exception(
    *,
    module: str,
    error: BaseException,
    req_id: str | None = None,
    document_id: str | None = None,
) -> None:
    log_event(
        LOGGER,
        "exception",
        level="error",
        req_id=req_id,
        document_id=document_id,
        details={"module": module},
        exc=error,
    )


@contextmanager
def traced_duration(step: str, *, logger: Optional[logging.Logger] = None, **fields: Any) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    except Exception as error:
        log_event(
            logger or LOGGER,
            f"{step}.error",
            level="error",
            duration_ms=(time.perf_counter() - start) * 1000.0,
            details=fields,
            exc=error,
        )
        raise
    log_event(
        logger or LOGGER,
        f"{step}.complete",
        duration_ms=(time.perf_counter() - start) * 1000.0,
        details=fields,
    )


__all__ = [
    "emit_app_startup_event",
    "emit_embeddings_event",
    "emit_exception",
    "emit_inference_request",
    "emit_inference_result",
    "emit_ingest_event",
    "emit_prompt_event",
    "emit_retriever_event",
    "emit_vectorstore_event",
    "log_event",
    "traced_duration",
]
