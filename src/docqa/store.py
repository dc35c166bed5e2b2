"""Document and chat-turn repositories."""
from __future__ import annotations

import json
import logging
import threading
from dataclasses import replace
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Protocol

from docqa.config import get_settings
from docqa.errors import DocumentNotFound, DocumentStateError, DocumentStoreUnavailableError
from docqa.models import ChatTurn, Document, DocumentStatus, utcnow

LOGGER = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50

class DocumentStore(Protocol):
    """Repository over documents and the chat turns attached to them."""

    def get_document(self, document_id: str) -> Document:
        ...

    def has_document(self, document_id: str) -> bool:
        ...

    def put_document(self, document: Document) -> Document:
        ...

    def update_document(
        self,
        document_id: str,
        *,
        status: DocumentStatus | None = None,
        page_count: int | None = None,
        summary: str | None = None,
    ) -> Document:
        ...

    def delete_document(self, document_id: str) -> Document:
        ...

    def list_documents(self) -> List[Document]:
        ...

    def append_turn(self, turn: ChatTurn) -> ChatTurn:
        ...

    def list_turns(self, document_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[ChatTurn]:
        ...

    def count_turns(self, document_id: str) -> int:
        ...


class InMemoryDocumentStore:
    """Thread-safe dictionary backed store.

    Deleting a document also deletes its chat turns. Documents in a terminal
    status (``completed`` or ``failed``) reject further updates. A mutation whose
    persistence fails is undone before the error propagates.
    """

    def __init__(self) -> None:
        self._documents: Dict[str, Document] = {}
        self._turns: Dict[str, List[ChatTurn]] = {}
        self._lock = threading.RLock()

    def get_document(self, document_id: str) -> Document:
        with self._lock:
            document = self._documents.get(document_id)
        if document is None:
            raise DocumentNotFound(document_id)
        return document

    def has_document(self, document_id: str) -> bool:
        with self._lock:
            return document_id in self._documents

    def put_document(self, document: Document) -> Document:
        with self._lock:
            previous = self._documents.get(document.id)
            self._documents[document.id] = document
            try:
                self._persist()
            except Exception:
                if previous is None:
                    self._documents.pop(document.id, None)
                else:
                    self._documents[document.id] = previous
                raise
        return document

    def update_document(
        self,
        document_id: str,
        *,
        status: DocumentStatus | None = None,
        page_count: int | None = None,
        summary: str | None = None,
    ) -> Document:
        with self._lock:
            current = self.get_document(document_id)
            if current.status.is_terminal:
                raise DocumentStateError(
                    f"Document {document_id} is {current.status.value} and can no longer change"
                )
            changes: Dict[str, object] = {"updated_at": utcnow()}
            if status is not None:
                changes["status"] = status
            if page_count is not None:
                changes["page_count"] = page_count
            if summary is not None:
                changes["summary"] = summary
            document = replace(current, **changes)
            self._documents[document_id] = document
            try:
                self._persist()
            except Exception:
                self._documents[document_id] = current
                raise
        return document

    def delete_document(self, document_id: str) -> Document:
        with self._lock:
            document = self._documents.pop(document_id, None)
            if document is None:
                raise DocumentNotFound(document_id)
            removed_turns = self._turns.pop(document_id, [])
            try:
                self._persist()
            except Exception:
                self._documents[document_id] = document
                if removed_turns:
                    self._turns[document_id] = removed_turns
                raise
        LOGGER.info(
            "Deleted document %s with %d chat turns", document_id, len(removed_turns)
        )
        return document

    def list_documents(self) -> List[Document]:
        with self._lock:
            documents = list(self._documents.values())
        return sorted(documents, key=lambda document: document.created_at, reverse=True)

    def append_turn(self, turn: ChatTurn) -> ChatTurn:
        with self._lock:
            if turn.document_id not in self._documents:
                raise DocumentNotFound(turn.document_id)
            turns = self._turns.setdefault(turn.document_id, [])
            turns.append(turn)
            try:
                self._persist()
            except Exception:
                turns.pop()
                raise
        return turn

    def list_turns(self, document_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[ChatTurn]:
        with self._lock:
            turns = list(self._turns.get(document_id, []))
        turns.sort(key=lambda turn: turn.created_at)
        if limit <= 0:
            return []
        return turns[-limit:]

    def count_turns(self, document_id: str) -> int:
        with self._lock:
            return len(self._turns.get(document_id, []))

    def _persist(self) -> None:
        """Hook invoked with the lock held after every mutation."""


class JsonDocumentStore(InMemoryDocumentStore):
    """Store whose full state is rewritten to a JSON file after each mutation."""

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            documents = [Document.from_dict(record) for record in payload.get("documents", [])]
            turns = [ChatTurn.from_dict(record) for record in payload.get("chat_turns", [])]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            raise DocumentStoreUnavailableError(
                f"Failed to load document store from {self.path}", cause=exc
            ) from exc

        for document in documents:
            self._documents[document.id] = document
        for turn in turns:
            self._turns.setdefault(turn.document_id, []).append(turn)

    def _persist(self) -> None:
        payload = {
            "documents": [document.to_dict() for document in self._documents.values()],
            "chat_turns": [
                turn.to_dict() for turns in self._turns.values() for turn in turns
            ],
        }
        tmp_path = self.path.with_suffix(".tmp")
        try:
            tmp_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as exc:
            raise DocumentStoreUnavailableError(
                f"Failed to persist document store to {self.path}", cause=exc
            ) from exc


@lru_cache()
def get_document_store() -> InMemoryDocumentStore:
    """Return the configured document store (``DOCUMENT_STORE=memory|json``)."""

    settings = get_settings()
    if settings.document_store == "memory":
        return InMemoryDocumentStore()
    if settings.document_store == "json":
        return JsonDocumentStore(settings.document_store_path)
    raise ValueError(f"Unsupported DOCUMENT_STORE backend: {settings.document_store!r}")


def reset_document_store_cache() -> None:
    """Clear the cached document store (primarily for testing)."""

    get_document_store.cache_clear()  # type: ignore[attr-defined]


__all__ = [
    "DEFAULT_HISTORY_LIMIT",
    "DocumentStore",
    "InMemoryDocumentStore",
    "JsonDocumentStore",
    "get_document_store",
    "reset_document_store_cache",
]
