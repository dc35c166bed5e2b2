"""Derive page citations and a confidence score from retrieved chunks."""
from __future__ import annotations

import re
from typing import Iterable, List, Sequence

from docqa.models import Citation, SearchResult

DEFAULT_CITATION_THRESHOLD = 0.1
DEFAULT_SNIPPET_LENGTH = 150
DEFAULT_CONFIDENCE_SCALE = 2.0
MIN_MATCH_WORD_LENGTH = 3

_WORD_SPLIT_RE = re.compile(r"\W+")


def tokenize(text: str) -> List[str]:
    """Lowercase *text* and split it on runs of non-word characters."""

    return [token for token in _WORD_SPLIT_RE.split(text.lower()) if token]


def relevance_score(chunk_text: str, answer_tokens: set[str]) -> float:
    """Share of the chunk's tokens that are long words also present in the answer.

    Repeated chunk words count once per occurrence.
    """

    chunk_tokens = tokenize(chunk_text)
    matches = sum(
        1 for token in chunk_tokens if len(token) > MIN_MATCH_WORD_LENGTH and token in answer_tokens
    )
    return matches / max(len(chunk_tokens), 1)


def make_snippet(content: str, max_length: int = DEFAULT_SNIPPET_LENGTH) -> str:
    """Truncate *content* for display, preferring a word boundary near the limit."""

    if len(content) <= max_length:
        return content

    truncated = content[:max_length]
    last_space = max(truncated.rfind(" "), truncated.rfind("\n"), truncated.rfind("\t"))
    if last_space >= max_length * 0.8:
        return truncated[:last_space] + "..."
    return truncated + "..."


def extract_citations(
    retrieved: Sequence[SearchResult],
    answer_text: str,
    *,
    threshold: float = DEFAULT_CITATION_THRESHOLD,
    snippet_length: int = DEFAULT_SNIPPET_LENGTH,
) -> List[Citation]:
    """Return at most one citation per page for chunks the answer draws from.

    Chunks are considered in retrieval order, so the first qualifying chunk of a
    page wins. The result is sorted by page number.
    """

    answer_tokens = set(tokenize(answer_text))
    cited_pages: set[int] = set()
    citations: List[Citation] = []

    for position, result in enumerate(retrieved, start=1):
        chunk = result.chunk
        score = relevance_score(chunk.content, answer_tokens)
        if score <= threshold or chunk.page_number in cited_pages:
            continue
        cited_pages.add(chunk.page_number)
        citations.append(
            Citation(
                page_number=chunk.page_number,
                chunk_id=chunk.id,
                relevance_score=score,
                snippet=make_snippet(chunk.content, snippet_length),
                source_index=position,
            )
        )

    citations.sort(key=lambda citation: citation.page_number)
    return citations


def compute_confidence(
    similarities: Iterable[float], scale: float = DEFAULT_CONFIDENCE_SCALE
) -> float:
    """Rescale the mean retrieval similarity into ``[0, 1]``."""

    values = list(similarities)
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return max(0.0, min(mean * scale, 1.0))


__all__ = [
    "compute_confidence",
    "extract_citations",
    "make_snippet",
    "relevance_score",
    "tokenize",
]
