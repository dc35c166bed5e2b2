"""Prompt construction and parsing of generator output."""
from __future__ import annotations

import re
from typing import List, Sequence

from docqa.models import Chunk, ConversationEntry, SearchResult

SYSTEM_PROMPT = """\
You are an assistant that answers questions about a single document. Your task is to:
1. Extract precise information from the provided document context
2. Answer the user's question directly using ONLY the information in the context
3. If the exact information isn't in the context, say "This information is not found in the document"

Guidelines:
- Only use information explicitly stated in the context
- Quote the document where it helps and mention the page it came from
- Keep the original terminology and exact figures used in the document
- Do not add assumptions, opinions or outside knowledge"""

NOT_FOUND_ANSWER = (
    "I couldn't find relevant information in the document to answer your question. "
    "Please try rephrasing your query or ask about different topics covered in the document."
)

SUMMARY_CHUNK_COUNT = 3
SUMMARY_MAX_CHARS = 1000
MAX_FOLLOW_UP_QUESTIONS = 3
MIN_QUESTION_LENGTH = 10

_NUMBERED_LINE_RE = re.compile(r"^\d+\.")
_LEADING_NUMBER_RE = re.compile(r"^\d+\.\s*")


def build_context(results: Sequence[SearchResult]) -> str:
    """Concatenate retrieved chunks, labelled with their source position and page."""

    return "".join(
        f"[Source {index} - Page {result.chunk.page_number}]:\n{result.chunk.content}\n\n"
        for index, result in enumerate(results, start=1)
    )


def build_answer_prompt(question: str, context: str) -> str:
    """Compose the prompt sent to the answer generator."""

    if not context:
        return question
    return f"Context: {context}\n\nQuestion: {question}\n\n{SYSTEM_PROMPT}"


def build_document_summary(chunks: Sequence[Chunk]) -> str:
    leading = "\n\n".join(chunk.content for chunk in chunks[:SUMMARY_CHUNK_COUNT])
    return leading[:SUMMARY_MAX_CHARS]


def build_follow_up_prompt(summary: str, history: Sequence[ConversationEntry]) -> str:
    transcript = "\n".join(f"Q: {entry.question}\nA: {entry.answer}" for entry in history)
    return (
        "Based on this document summary and conversation history, "
        "suggest 3 relevant follow-up questions:\n\n"
        f"Document Summary:\n{summary}\n\n"
        f"Conversation History:\n{transcript}\n\n"
        "Please provide 3 concise, specific questions that would help explore the document further:"
    )


def parse_follow_up_questions(text: str, limit: int = MAX_FOLLOW_UP_QUESTIONS) -> List[str]:
    """Pick numbered or question-like lines out of free-form generator output."""

    questions: List[str] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not (_NUMBERED_LINE_RE.match(line) or "?" in line):
            continue
        question = _LEADING_NUMBER_RE.sub("", line).strip()
        if len(question) > MIN_QUESTION_LENGTH:
            questions.append(question)
        if len(questions) >= limit:
            break
    return questions


__all__ = [
    "NOT_FOUND_ANSWER",
    "SYSTEM_PROMPT",
    "build_answer_prompt",
    "build_context",
    "build_document_summary",
    "build_follow_up_prompt",
    "parse_follow_up_questions",
]
