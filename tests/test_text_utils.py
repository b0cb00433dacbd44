from __future__ import annotations

from src.models.content import Category
from src.utils.text_utils import (
    article_text,
    jaccard,
    norm,
    normalized_title_key,
    strip_html,
    strip_known_prefixes,
    tokens,
    trim_summary,
)
from src.utils.title_rewriter import semantic_title


def test_norm_lowercases_and_drops_punctuation():
    assert norm("Hello, World!  (1947)") == "hello world 1947"


def test_tokens_ignore_short_words():
    assert tokens("The Treaty of Versailles is signed") == {"the", "treaty", "versailles", "signed"}


def test_jaccard_overlap_and_empty_inputs():
    assert jaccard("Treaty of Versailles", "The Treaty of Versailles") == 2 / 3
    assert jaccard("", "") == 0.0
    assert jaccard("Apollo eleven", "Apollo eleven") == 1.0


def test_strip_html_removes_tags_and_collapses_space():
    assert strip_html("<b>Indian</b>   <i>independence</i>") == "Indian independence"


def test_article_text_drops_scripts_and_citation_markers():
    html = (
        "<style>.x{}</style><table><tr><th>Date of independence</th>"
        "<td>15 August 1947<sup>[1]</sup></td></tr></table><script>var a = 1;</script>"
    )
    assert article_text(html) == "Date of independence 15 August 1947"
    assert article_text("") == ""


def test_strip_known_prefixes_is_repeated_and_ignores_parentheticals():
    assert strip_known_prefixes("Event: Birthday of Sri Aurobindo (philosopher)") == "Sri Aurobindo"
    assert normalized_title_key("Independence of India") == "india"


def test_trim_summary_keeps_short_text():
    assert trim_summary("  A short   summary. ") == "A short summary."


def test_trim_summary_prefers_sentence_boundary():
    text = "Sentence one is right here. " * 40
    trimmed = trim_summary(text)
    assert len(trimmed) <= 560
    assert trimmed.endswith(".")


def test_trim_summary_hard_cuts_without_boundary():
    assert len(trim_summary("x" * 1000)) == 560


def test_semantic_title_biographical():
    assert semantic_title(Category.BIRTH, "Mahatma Gandhi (leader)", "Indian lawyer") == "Birthday of Mahatma Gandhi"
    assert semantic_title(Category.DEATH, "Jawaharlal Nehru", "First prime minister") == "Death of Jawaharlal Nehru"


def test_semantic_title_signing_wins_over_later_rules():
    title = semantic_title(Category.EVENT, "Treaty of Versailles", "The treaty is signed, ending the war.")
    assert title == "Signing of Treaty of Versailles"


def test_semantic_title_independence_is_never_doubled():
    assert semantic_title(Category.EVENT, "India", "India gains independence from British rule.") == "Independence of India"
    assert semantic_title(Category.EVENT, "Independence Day (India)", "Independence is proclaimed.") == "Independence Day"


def test_semantic_title_keyword_rules_and_default():
    assert semantic_title(Category.EVENT, "Apollo 11", "Apollo 11 is launched from Kennedy.") == "Launch of Apollo 11"
    assert semantic_title(Category.EVENT, "Gujarat earthquake", "An earthquake strikes Gujarat.") == "Major event: Gujarat earthquake"
    assert semantic_title(Category.EVENT, "Something", "A thing happened.") == "Event: Something"


def test_semantic_title_is_never_empty():
    assert semantic_title(Category.EVENT, "", "") == "Event: Untitled"
    assert semantic_title(Category.EVENT, "", "Crowds gather in the square").startswith("Event: Crowds gather")
