"""
Semantic display titles for curated items.

The rewrite is display-only: matching and scoring keep using the raw title and excerpt.
"""

import re
from typing import List, Tuple

from src.models.content import Category
from src.utils.text_utils import collapse_whitespace, norm, strip_parens

# (pattern over normalized excerpt, template); first match wins
_TEXT_RULES: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"\b(?:assassin|assassinated|assassination)"), "Assassination of {base}"),
    (re.compile(r"\b(?:launch|launched|launches|inaugurat)"), "Launch of {base}"),
    (re.compile(r"\b(?:founded|founding|establish|formed|creat)"), "Founding of {base}"),
    (re.compile(r"\b(?:begins|began|start|started|commence)"), "Start of {base}"),
    (re.compile(r"\b(?:wins|won|victory|defeat)"), "Victory: {base}"),
    (re.compile(r"\b(?:elected|sworn in|swearing in)"), "Swearing-in/Election of {base}"),
    (re.compile(r"\b(?:earthquake|cyclone|flood|tsunami|explosion|bomb)"), "Major event: {base}"),
]

_TREATY = re.compile(r"\b(?:treaty|accord|agreement)", re.IGNORECASE)
_SIGNED = re.compile(r"\bsigned\b")
_INDEPENDENCE = re.compile(r"\b(?:independence|proclaimed)\b")
_INDEPENDENCE_PREFIX = re.compile(r"^independence\b", re.IGNORECASE)


def _base_title(raw_title: str, raw_text: str) -> str:
    base = collapse_whitespace(strip_parens(raw_title))
    if base:
        return base
    base = collapse_whitespace(raw_title)
    if base:
        return base
    head = collapse_whitespace(raw_text)[:80].rstrip(" ,;:")
    return head or "Untitled"


def semantic_title(category: Category, raw_title: str, raw_text: str) -> str:
    """Build the display title for an item from its category, title and excerpt."""
    base = _base_title(raw_title, raw_text)
    text = norm(raw_text)

    if category == Category.BIRTH:
        return f"Birthday of {base}"
    if category == Category.DEATH:
        return f"Death of {base}"

    if _TREATY.search(base) or _TREATY.search(text) or _SIGNED.search(text):
        return f"Signing of {base}"
    if _INDEPENDENCE.search(text) or _INDEPENDENCE.search(base.lower()):
        if _INDEPENDENCE_PREFIX.match(base):
            return base
        return f"Independence of {base}"

    for pattern, template in _TEXT_RULES:
        if pattern.search(text):
            return template.format(base=base)
    return f"Event: {base}"
