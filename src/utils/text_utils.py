"""
Text normalization and similarity helpers shared by matching, dedupe and scoring.
"""

import re
from typing import Set

from bs4 import BeautifulSoup

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")
_TAGS = re.compile(r"<[^>]+>")
_PARENS = re.compile(r"\s*\(.*?\)\s*")

# Display prefixes added by the title rewriter (and a couple of legacy variants)
KNOWN_PREFIX_PATTERN = re.compile(
    r"^(?:birthday of|birth of|death of|event:|launch of|founding of|start of|"
    r"independence of|signing of|assassination of|victory:|"
    r"swearing-in/election of|major event:)\s+",
    re.IGNORECASE,
)

DEFAULT_SUMMARY_BUDGET = 560


def norm(text: str) -> str:
    """Lower-case, replace punctuation with spaces and collapse whitespace."""
    cleaned = _NON_WORD.sub(" ", str(text or "").lower())
    return _WHITESPACE.sub(" ", cleaned).strip()


def tokens(text: str) -> Set[str]:
    """Token set used for Jaccard similarity (tokens of length <= 2 are ignored)."""
    return {t for t in norm(text).split(" ") if len(t) > 2}


def jaccard(a: str, b: str) -> float:
    """
    Token Jaccard similarity between two strings.

    Returns 0.0 when both sides are empty after tokenization.
    """
    set_a = tokens(a)
    set_b = tokens(b)
    intersection = len(set_a & set_b)
    union = len(set_a) + len(set_b) - intersection
    return intersection / (union or 1)


def strip_html(text: str) -> str:
    """Tag removal for short feed strings such as ``<i>Apollo 11</i>``."""
    without_tags = _TAGS.sub(" ", str(text or ""))
    return _WHITESPACE.sub(" ", without_tags).strip()


def article_text(html: str) -> str:
    """Visible text of a page body; scripts, styles and citation markers removed."""
    if not html:
        return ""
    soup = BeautifulSoup(html, 'html.parser')
    for tag in soup(["script", "style", "sup"]):
        tag.decompose()
    return soup.get_text(separator=' ', strip=True)


def strip_parens(text: str) -> str:
    """Remove parenthetical segments such as "(politician)"."""
    return _PARENS.sub(" ", str(text or "")).strip()


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", str(text or "")).strip()


def strip_known_prefixes(text: str) -> str:
    """
    Remove rewriter prefixes ("Birthday of", "Event:", ...) repeatedly.

    Parentheticals are stripped first so "Event: Foo (bar)" and "Foo" compare equal.
    """
    out = collapse_whitespace(strip_parens(text))
    while KNOWN_PREFIX_PATTERN.match(out):
        out = KNOWN_PREFIX_PATTERN.sub("", out, count=1).strip()
    return out


def trim_summary(text: str, max_chars: int = DEFAULT_SUMMARY_BUDGET) -> str:
    """
    Trim text to roughly ``max_chars`` preferring a sentence boundary.

    The cut lands on the last ". " found before ``max_chars - 30`` (or before 70% of the
    budget); when no boundary beyond 80 characters exists the text is hard-cut.
    """
    if not text:
        return ""
    clean = collapse_whitespace(text)
    if len(clean) <= max_chars:
        return clean

    soft = max(
        clean.rfind(". ", 0, max_chars - 30),
        clean.rfind(". ", 0, int(max_chars * 0.7)),
    )
    if soft > 80:
        return clean[: soft + 1]
    return clean[:max_chars]


def normalized_title_key(title: str) -> str:
    """Key used to associate provider notes with curated titles."""
    return norm(strip_known_prefixes(title))
