from docqa.summary import generate_summary


def test_summary_joins_first_three_long_sentences():
    text = (
        "Short one. "
        "This agreement is made between two parties. "
        "The tenant pays rent on the first day of every month! "
        "Ok? "
        "Either party may terminate with ninety days notice. "
        "The fourth long sentence should never appear here."
    )

    summary = generate_summary(text)

    assert summary == (
        "This agreement is made between two parties. "
        "The tenant pays rent on the first day of every month. "
        "Either party may terminate with ninety days notice"
    )


def test_summary_is_truncated_to_200_characters():
    sentence = "This sentence is deliberately long " * 4
    text = ". ".join([sentence] * 3)

    summary = generate_summary(text)

    assert len(summary) == 203
    assert summary.endswith("...")


def test_summary_of_text_without_long_sentences_is_empty():
    assert generate_summary("Hi. Yes. No!") == ""
