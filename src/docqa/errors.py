"""Exception types raised by the document QA core."""
from __future__ import annotations


class _CausedError(Exception):
    """Mixin storing an optional underlying cause on ``__cause__``."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


class ChunkingConfigError(_CausedError, ValueError):
    """Raised when the chunk overlap is not strictly smaller than the chunk size."""


class EmbeddingError(_CausedError, RuntimeError):
    """Raised when an embedding could not be produced within the retry budget."""

    def __init__(
        self,
        message: str,
        *,
        attempts: int = 0,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.attempts = attempts


class IngestionError(_CausedError, RuntimeError):
    """Raised when a document could not be turned into indexed chunks."""


class DocumentNotFound(_CausedError, LookupError):
    """Raised when an operation references an unknown document."""

    def __init__(self, document_id: str, *, cause: BaseException | None = None) -> None:
        super().__init__(f"Document not found: {document_id}", cause=cause)
        self.document_id = document_id


class DocumentStateError(_CausedError, RuntimeError):
    """Raised when a finished document would be mutated."""


class DocumentStoreUnavailableError(_CausedError, RuntimeError):
    """Raised when the persisted document store cannot be read or written."""


class AnswerGenerationError(_CausedError, RuntimeError):
    """Raised when the answer generator fails."""


class UnsupportedDocumentError(_CausedError, ValueError):
    """Raised when text cannot be extracted from the uploaded file type."""


__all__ = [
    "AnswerGenerationError",
    "ChunkingConfigError",
    "DocumentNotFound",
    "DocumentStateError",
    "DocumentStoreUnavailableError",
    "EmbeddingError",
    "IngestionError",
    "UnsupportedDocumentError",
]
