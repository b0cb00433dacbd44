"""In-memory fakes for the network adapters and small builders for test data."""
from __future__ import annotations

from collections import Counter
from types import SimpleNamespace
from typing import Any, Callable, Dict, Iterable, List, Optional

from src.models.content import (
    CandidateParseResult,
    CandidateRecord,
    Category,
    CuratedItem,
    ParseStatus,
    RawRecord,
)
from src.utils.error_monitoring import SourceUnavailableError


class FakeWikipedia:
    """In-memory stand-in for WikipediaService."""

    def __init__(
        self,
        feeds: Optional[Dict[Category, List[RawRecord]]] = None,
        html: Optional[Dict[str, str]] = None,
        qids: Optional[Dict[str, str]] = None,
        extracts: Optional[Dict[str, str]] = None,
        html_default: Optional[Callable[[str], Optional[str]]] = None,
        failing_feeds: Iterable[Category] = (),
        raise_on_lookup: bool = False,
    ):
        self.feeds = feeds or {}
        self.html = html or {}
        self.qids = qids or {}
        self.extracts = extracts or {}
        self.html_default = html_default
        self.failing_feeds = set(failing_feeds)
        self.raise_on_lookup = raise_on_lookup
        self.html_calls: Counter = Counter()
        self.extract_calls: Counter = Counter()

    async def on_this_day(self, mm: str, dd: str, category: Category) -> List[RawRecord]:
        if category in self.failing_feeds:
            raise SourceUnavailableError(f"HTTP 503 for {category.value}")
        return list(self.feeds.get(category, []))

    async def page_html(self, title: str) -> Optional[str]:
        self.html_calls[title] += 1
        if self.raise_on_lookup:
            raise RuntimeError("connection reset")
        if title in self.html:
            return self.html[title]
        return self.html_default(title) if self.html_default else None

    async def wikibase_item(self, title: str) -> Optional[str]:
        if self.raise_on_lookup:
            raise RuntimeError("connection reset")
        return self.qids.get(title)

    async def summary_extract(self, title: str) -> Optional[str]:
        self.extract_calls[title] += 1
        if self.raise_on_lookup:
            raise RuntimeError("connection reset")
        return self.extracts.get(title)


class FakeWikidata:
    def __init__(self, claims: Optional[Dict[str, Dict[str, Any]]] = None):
        self.claims = claims or {}

    async def entity_claims(self, qid: str) -> Optional[Dict[str, Any]]:
        return self.claims.get(qid)


class FakeCandidateProvider:
    def __init__(
        self,
        global_candidates: Iterable[CandidateRecord] = (),
        regional_candidates: Iterable[CandidateRecord] = (),
    ):
        self.global_candidates = tuple(global_candidates)
        self.regional_candidates = tuple(regional_candidates)

    async def generate_candidates(self, readable_date, mm, dd, regional=False) -> CandidateParseResult:
        candidates = self.regional_candidates if regional else self.global_candidates
        if not candidates:
            return CandidateParseResult.empty()
        return CandidateParseResult(ParseStatus.PARSED, candidates)


class FakeGeminiModels:
    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.prompts: List[str] = []

    async def generate_content(self, model, contents, config):
        self.prompts.append(contents)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return SimpleNamespace(text=response)


def fake_gemini_client(responses: List[Any]) -> SimpleNamespace:
    return SimpleNamespace(aio=SimpleNamespace(models=FakeGeminiModels(responses)))


def referenced_time_claim(iso: str, precision: int = 11, referenced: bool = True) -> Dict[str, Any]:
    sign = "" if iso.startswith("-") else "+"
    claim: Dict[str, Any] = {
        "mainsnak": {"datavalue": {"value": {"time": f"{sign}{iso}T00:00:00Z", "precision": precision}}},
    }
    if referenced:
        claim["references"] = [{"hash": "abc"}]
    return claim


def make_record(
    display_title: str,
    year: Optional[int] = 1947,
    category: Category = Category.EVENT,
    excerpt: str = "",
    page_title: Optional[str] = None,
) -> RawRecord:
    return RawRecord(
        category=category,
        year=year,
        display_title=display_title,
        page_title=page_title if page_title is not None else display_title,
        excerpt=excerpt,
        page_url=f"https://en.wikipedia.org/wiki/{display_title.replace(' ', '_')}",
    )


def make_item(
    title: str,
    score: int,
    year: str = "1950",
    category: Category = Category.EVENT,
    relevant: bool = False,
    rank: Optional[int] = None,
    summary: str = "",
) -> CuratedItem:
    return CuratedItem(
        category=category,
        title=title,
        year=year,
        summary=summary or f"{title} summary.",
        is_regionally_relevant=relevant,
        score=score,
        candidate_rank=rank,
    )
