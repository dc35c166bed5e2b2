import logging
from typing import Any, Callable, TypeVar

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from docqa.api.chat import router as chat_router
from docqa.api.documents import router as documents_router
from docqa.errors import DocumentStoreUnavailableError
from docqa.llm_provider import get_llm_status
from docqa.logging_config import configure_logging
from docqa.services.rag import get_rag_service
from docqa.telemetry import emit_app_startup_event

configure_logging()

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Document QA API")
app.include_router(documents_router)
app.include_router(chat_router)


@app.exception_handler(DocumentStoreUnavailableError)
async def _document_store_unavailable(_: Request, exc: DocumentStoreUnavailableError) -> JSONResponse:
    LOGGER.error("Document store unavailable: %s", exc, exc_info=exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.on_event("startup")
async def _startup() -> None:
    emit_app_startup_event()


T = TypeVar("T")


def _resolve_dependency(factory: Callable[[], T]) -> T:
    """Resolve a dependency while respecting FastAPI overrides."""

    override: Any | None = app.dependency_overrides.get(factory)
    resolved: Any = override if override is not None else factory
    return resolved() if callable(resolved) else resolved


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    return "ok"


@app.get("/healthz")
def healthcheck() -> dict[str, object]:
    """Liveness probe reporting which answer generator is active."""

    status = get_llm_status()
    payload: dict[str, object] = {
        "status": "ok",
        "model_loaded": status.model_loaded,
        "model_name": status.model_name,
        "device": status.device,
    }
    if status.error:
        payload["reason"] = status.error
    return payload


@app.get("/readyz", response_class=PlainTextResponse)
def readiness_probe() -> str:
    """Readiness probe that exercises the embedding client and the vector index."""

    errors: list[str] = []
    try:
        service = _resolve_dependency(get_rag_service)
    except Exception as exc:
        LOGGER.warning("Readiness check could not build the service: %s", exc)
        raise HTTPException(status_code=503, detail=f"service_unavailable: {exc}") from exc

    probe_vector: list[float] | None = None
    try:
        probe_vector = service.embedding_client.embed("__readyz__")
    except Exception as exc:
        errors.append(f"embedding_unavailable: {exc}")

    if probe_vector is not None:
        try:
            service.vector_index.search(probe_vector, document_id="__readyz__", limit=1, score_floor=0.0)
        except Exception as exc:
            errors.append(f"vector_index_unavailable: {exc}")

    if errors:
        raise HTTPException(status_code=503, detail="; ".join(errors))
    return "ok"
