"""Short extractive summaries of ingested text."""
from __future__ import annotations

import re

SUMMARY_SENTENCES = 3
MIN_SENTENCE_LENGTH = 20
MAX_SUMMARY_LENGTH = 200

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")


def generate_summary(text: str) -> str:
    """Join the first few substantial sentences, capped at ``MAX_SUMMARY_LENGTH`` characters."""

    sentences = [
        sentence.strip()
        for sentence in _SENTENCE_SPLIT_RE.split(text)
        if len(sentence.strip()) > MIN_SENTENCE_LENGTH
    ]
    summary = ". ".join(sentences[:SUMMARY_SENTENCES])
    if len(summary) > MAX_SUMMARY_LENGTH:
        return summary[:MAX_SUMMARY_LENGTH] + "..."
    return summary


__all__ = ["generate_summary"]
