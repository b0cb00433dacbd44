"""
Date consensus gate.

An item survives only when independent evidence (article text or a referenced Wikidata
fact) places its subject on the requested month and day, whatever year the feed reports.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from src.models.content import RawRecord
from src.services.signal_scoring_service import SignalScoringService
from src.services.wikidata_service import WikidataService, pick_referenced_date
from src.services.wikipedia_service import WikipediaService
from src.utils.date_extraction import extract_date_from_article, month_day_of
from src.utils.error_monitoring import CorroborationFailure, ErrorHandler
from src.utils.text_utils import article_text, strip_html


@dataclass(frozen=True)
class ConsensusOutcome:
    ok: bool
    via: str
    iso: Optional[str] = None
    any_date_found: bool = False

    @property
    def verified_day(self) -> bool:
        return self.ok and self.iso is not None


class DateConsensusService:
    """
    Corroborates the calendar day of feed records.

    One instance serves one pipeline run: outcomes are memoized by title pair so a record
    matched by several candidates is audited once.
    """

    def __init__(
        self,
        wikipedia: WikipediaService,
        wikidata: WikidataService,
        scoring: SignalScoringService,
        max_concurrency: int = 8,
        error_handler: Optional[ErrorHandler] = None,
    ):
        self.wikipedia = wikipedia
        self.wikidata = wikidata
        self.scoring = scoring
        self.semaphore = asyncio.Semaphore(max(1, max_concurrency))
        self.error_handler = error_handler or ErrorHandler()
        self._memo: Dict[Tuple[Optional[str], str, str, str], "asyncio.Future[ConsensusOutcome]"] = {}
        self.stats = {"audited": 0, "passed": 0, "lenient": 0, "rejected": 0}
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def titles_to_try(record: RawRecord) -> List[str]:
        """Page title first, then display title; HTML stripped, duplicates removed."""
        out: List[str] = []
        for title in (record.page_title, record.display_title):
            cleaned = strip_html(title or "")
            if cleaned and cleaned not in out:
                out.append(cleaned)
        return out

    async def article_audit(self, title: str) -> Optional[Tuple[str, str]]:
        """(iso, evidence) from the article body, or None."""
        try:
            html = await self.wikipedia.page_html(title)
        except Exception as e:
            self.logger.debug(f"Article audit failed for {title!r}: {e}")
            return None
        if not html:
            return None
        return extract_date_from_article(article_text(html))

    async def fact_audit(
        self,
        title: str,
        month_day: Optional[Tuple[str, str]] = None,
    ) -> Optional[Tuple[str, str]]:
        """(iso, property) from referenced Wikidata claims, preferring ``month_day``; or None."""
        try:
            qid = await self.wikipedia.wikibase_item(title)
            if not qid:
                return None
            claims = await self.wikidata.entity_claims(qid)
        except Exception as e:
            self.error_handler.handle_error(e, service='wikidata', operation='fact_audit',
                                            context={'title': title})
            return None
        if not claims:
            return None
        return pick_referenced_date(claims, self.scoring.config.fact_properties, month_day)

    async def verify(self, record: RawRecord, mm: str, dd: str) -> ConsensusOutcome:
        key = (record.page_title, record.display_title, mm, dd)
        future = self._memo.get(key)
        if future is None:
            future = asyncio.ensure_future(self._verify(record, mm, dd))
            self._memo[key] = future
        return await future

    async def _verify(self, record: RawRecord, mm: str, dd: str) -> ConsensusOutcome:
        async with self.semaphore:
            self.stats["audited"] += 1
            any_date_found = False

            for title in self.titles_to_try(record):
                article = await self.article_audit(title)
                if article:
                    any_date_found = True
                    if month_day_of(article[0]) == (mm, dd):
                        return self._passed(ConsensusOutcome(True, "article", article[0], True))

                fact = await self.fact_audit(title, (mm, dd))
                if fact:
                    any_date_found = True
                    if month_day_of(fact[0]) == (mm, dd):
                        return self._passed(ConsensusOutcome(True, f"wikidata:{fact[1]}", fact[0], True))

            if self.scoring.is_strict(record.display_title, record.excerpt):
                return self._rejected(record, ConsensusOutcome(False, "strict-mismatch", None, any_date_found))

            if record.category in self.scoring.config.lenient_categories and not any_date_found:
                self.stats["lenient"] += 1
                return ConsensusOutcome(True, "lenient-no-day-found", None, False)

            return self._rejected(record, ConsensusOutcome(False, "mismatch", None, any_date_found))

    def _passed(self, outcome: ConsensusOutcome) -> ConsensusOutcome:
        self.stats["passed"] += 1
        return outcome

    def _rejected(self, record: RawRecord, outcome: ConsensusOutcome) -> ConsensusOutcome:
        self.stats["rejected"] += 1
        self.error_handler.handle_error(
            CorroborationFailure(f"{record.display_title!r}: {outcome.via}"),
            service='date_consensus',
            operation='verify',
            context={'category': record.category.value, 'year': record.year_str},
        )
        return outcome
