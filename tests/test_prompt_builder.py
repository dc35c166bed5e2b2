from __future__ import annotations

from docqa.models import Chunk, ConversationEntry, SearchResult
from docqa.prompt_builder import (
    SYSTEM_PROMPT,
    build_answer_prompt,
    build_context,
    build_document_summary,
    build_follow_up_prompt,
    parse_follow_up_questions,
)


def _chunk(index: int, page: int, content: str) -> Chunk:
    return Chunk(
        id=f"doc_chunk_{index}",
        document_id="doc",
        chunk_index=index,
        page_number=page,
        start_char=0,
        end_char=len(content),
        content=content,
    )


def test_build_context_labels_sources_with_pages() -> None:
    results = [
        SearchResult(chunk=_chunk(0, 4, "First passage."), similarity=0.9),
        SearchResult(chunk=_chunk(1, 2, "Second passage."), similarity=0.5),
    ]

    context = build_context(results)

    assert context == (
        "[Source 1 - Page 4]:\nFirst passage.\n\n"
        "[Source 2 - Page 2]:\nSecond passage.\n\n"
    )


def test_answer_prompt_contains_context_question_and_instructions() -> None:
    prompt = build_answer_prompt("What is the fee?", "[Source 1 - Page 1]:\nThe fee is 10.\n\n")

    assert prompt.startswith("Context: [Source 1 - Page 1]")
    assert "Question: What is the fee?" in prompt
    assert prompt.endswith(SYSTEM_PROMPT)


def test_answer_prompt_without_context_is_the_question() -> None:
    assert build_answer_prompt("What is the fee?", "") == "What is the fee?"


def test_document_summary_uses_first_three_chunks_capped() -> None:
    chunks = [_chunk(index, 1, str(index) * 600) for index in range(5)]

    summary = build_document_summary(chunks)

    assert len(summary) == 1000
    assert summary.startswith("0" * 600 + "\n\n" + "1")
    assert "3" not in summary


def test_follow_up_prompt_includes_history() -> None:
    prompt = build_follow_up_prompt(
        "A lease agreement.",
        [ConversationEntry(question="Who is the landlord?", answer="Acme Ltd.")],
    )

    assert "Document Summary:\nA lease agreement." in prompt
    assert "Q: Who is the landlord?\nA: Acme Ltd." in prompt


def test_parse_follow_up_questions_filters_and_limits() -> None:
    text = "\n".join(
        [
            "Here are some questions:",
            "1. What are the payment terms?",
            "2. Short?",
            "Who signs the contract on behalf of the tenant?",
            "3. When does the lease expire",
            "4. Is there a renewal option available?",
        ]
    )

    questions = parse_follow_up_questions(text)

    assert questions == [
        "What are the payment terms?",
        "Who signs the contract on behalf of the tenant?",
        "When does the lease expire",
    ]


def test_parse_follow_up_questions_empty_output() -> None:
    assert parse_follow_up_questions("") == []
    assert parse_follow_up_questions("No questions here.") == []
