"""Extract page-attributed text from uploaded documents."""
from __future__ import annotations

import codecs
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from PyPDF2 import PdfReader

from docqa.errors import IngestionError, UnsupportedDocumentError

LOGGER = logging.getLogger(__name__)

PDF_SUFFIXES = {".pdf"}
TEXT_SUFFIXES = {".txt", ".md"}
SUPPORTED_SUFFIXES = PDF_SUFFIXES | TEXT_SUFFIXES


@dataclass(slots=True)
class DocumentText:
    """Raw text of a document, its page count and native page texts when known."""

    text: str
    page_count: int
    pages: Optional[List[str]] = None


def extract_document(data: bytes, file_name: str) -> DocumentText:
    """Extract text from *data*, dispatching on the file extension of *file_name*."""

    suffix = Path(file_name).suffix.lower()
    if suffix in PDF_SUFFIXES:
        return _extract_pdf(data, file_name)
    if suffix in TEXT_SUFFIXES:
        return _extract_plain_text(data)
    raise UnsupportedDocumentError(f"Unsupported file type: {suffix or file_name}")


def _extract_pdf(data: bytes, file_name: str) -> DocumentText:
    try:
        reader = PdfReader(io.BytesIO(data))
        pages: List[str] = []
        for index, page in enumerate(reader.pages, start=1):
            try:
                pages.append(page.extract_text() or "")
            except Exception as error:  # pragma: no cover - depends on the PDF content
                LOGGER.warning("Failed to extract text from page %s of %s: %s", index, file_name, error)
                pages.append("")
    except Exception as error:
        raise IngestionError(f"Could not read PDF {file_name}: {error}", cause=error) from error

    LOGGER.debug("Extracted %d pages from %s", len(pages), file_name)
    return DocumentText(text="\n".join(pages), page_count=len(pages), pages=pages)


def _extract_plain_text(data: bytes) -> DocumentText:
    # UTF-16 is only trusted with a BOM; without one almost any even-length input decodes.
    if data.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return DocumentText(text=data.decode("utf-16"), page_count=1)
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = data.decode("latin-1")
    return DocumentText(text=text, page_count=1)


__all__ = ["DocumentText", "SUPPORTED_SUFFIXES", "extract_document"]
