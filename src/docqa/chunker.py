"""Split page-attributed text into overlapping fixed-size chunks."""
from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Sequence

from docqa.config import ChunkingConfig
from docqa.models import Chunk, Page

LOGGER = logging.getLogger(__name__)


def chunk_text(text: str, chunk_size: int = 1000, overlap: int = 200) -> List[Dict]:
    """Split *text* into overlapping character windows.

    Each window is represented as a dictionary with the chunked ``text`` and
    metadata describing the ``start`` and ``end`` offsets in the original text.
    Text no longer than ``chunk_size`` yields a single window covering all of it,
    including the empty string. Longer text is walked with a stride of
    ``chunk_size - overlap`` until a window reaches the end of the text.
    """

    config = ChunkingConfig(chunk_size=chunk_size, overlap=overlap)

    text_length = len(text)
    if text_length <= config.chunk_size:
        return [{"text": text, "meta": {"start": 0, "end": text_length}}]

    chunks: List[Dict] = []
    start = 0
    while start < text_length:
        end = min(start + config.chunk_size, text_length)
        chunks.append({"text": text[start:end], "meta": {"start": start, "end": end}})
        if end >= text_length:
            break
        start += config.step

    return chunks


def split_into_pages(text: str, page_count: int) -> List[Page]:
    """Approximate page boundaries by dividing the text evenly by character count.

    Sources that only report the full text and a page count have no way to recover
    the real page breaks, so a sentence may be attributed to its neighbouring page.
    Callers that know the true boundaries should build :class:`Page` objects directly.
    """

    if page_count <= 0:
        raise ValueError("page_count must be a positive integer")

    per_page = math.ceil(len(text) / page_count) if text else 0
    pages: List[Page] = []
    for index in range(page_count):
        start = index * per_page
        end = min((index + 1) * per_page, len(text))
        pages.append(Page(page_number=index + 1, text=text[start:end].strip()))
    return pages


def pages_from_texts(texts: Iterable[str]) -> List[Page]:
    """Number natively paginated texts starting at page 1."""

    return [Page(page_number=index, text=text.strip()) for index, text in enumerate(texts, start=1)]


def chunk_pages(
    document_id: str,
    pages: Sequence[Page],
    config: ChunkingConfig | None = None,
) -> List[Chunk]:
    """Chunk every page of a document, numbering chunks in emission order."""

    config = config or ChunkingConfig()

    chunks: List[Chunk] = []
    for page in sorted(pages, key=lambda item: item.page_number):
        for window in chunk_text(page.text, config.chunk_size, config.overlap):
            index = len(chunks)
            chunks.append(
                Chunk(
                    id=Chunk.make_id(document_id, index),
                    document_id=document_id,
                    chunk_index=index,
                    page_number=page.page_number,
                    start_char=window["meta"]["start"],
                    end_char=window["meta"]["end"],
                    content=window["text"],
                )
            )

    LOGGER.debug("Chunked %d pages of %s into %d chunks", len(pages), document_id, len(chunks))
    return chunks


__all__ = ["chunk_pages", "chunk_text", "pages_from_texts", "split_into_pages"]
