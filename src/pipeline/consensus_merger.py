"""
Consensus merge: date gate, candidate fuzzy matching, title rewriting, scoring, dedupe and
ordering of the merged pool.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from src.models.content import CandidateRecord, CuratedItem, RawRecord
from src.services.date_consensus_service import ConsensusOutcome, DateConsensusService
from src.services.deduplication_service import DeduplicationService
from src.services.signal_scoring_service import SignalScoringService
from src.utils.text_utils import jaccard, strip_parens, trim_summary
from src.utils.title_rewriter import semantic_title

_SIGNED_INT = re.compile(r"^-?\d+$")


@dataclass
class MergeReport:
    feed_records: int = 0
    candidates: int = 0
    candidate_matches: int = 0
    candidate_items: int = 0
    feed_items: int = 0
    gate_rejections: int = 0
    after_dedupe: int = 0

    def to_dict(self) -> Dict[str, int]:
        return dict(self.__dict__)


class ConsensusMerger:
    """
    Builds the scored, deduplicated, ordered CuratedItem pool.

    Only records whose calendar day is corroborated (or leniently accepted) survive; provider
    candidates never create items on their own, they only endorse a matching feed record.
    """

    def __init__(
        self,
        consensus: DateConsensusService,
        scoring: SignalScoringService,
        deduplication: Optional[DeduplicationService] = None,
        match_threshold: float = 0.60,
    ):
        self.consensus = consensus
        self.scoring = scoring
        self.deduplication = deduplication or DeduplicationService()
        self.match_threshold = match_threshold
        self.report = MergeReport()
        self.logger = logging.getLogger(__name__)

    def best_match(
        self,
        candidate: CandidateRecord,
        records: Sequence[RawRecord],
    ) -> Optional[Tuple[RawRecord, float]]:
        """
        Feed record most similar to a candidate, or None below the threshold.

        When both sides state a numeric year they must agree exactly.
        """
        candidate_year = int(candidate.year) if _SIGNED_INT.match(candidate.year or "") else None
        best: Optional[RawRecord] = None
        best_score = 0.0

        for record in records:
            if candidate_year is not None and record.year is not None and record.year != candidate_year:
                continue
            similarity = max(
                jaccard(candidate.title, record.display_title),
                jaccard(candidate.title, record.excerpt),
            )
            if similarity > best_score:
                best_score = similarity
                best = record

        if best is None or best_score <= self.match_threshold:
            return None
        return best, best_score

    def build_item(
        self,
        record: RawRecord,
        outcome: ConsensusOutcome,
        candidate: Optional[CandidateRecord] = None,
    ) -> CuratedItem:
        note = candidate.note if candidate else ""
        year = record.year_str or (candidate.year if candidate else "")
        summary = trim_summary(f"{record.excerpt} {note}" if note else record.excerpt)
        relevance_text = " ".join(t for t in (record.display_title, record.excerpt, note) if t)
        is_relevant = self.scoring.is_regionally_relevant(relevance_text)
        candidate_rank = candidate.rank if candidate else None

        return CuratedItem(
            category=record.category,
            title=semantic_title(record.category, record.display_title, record.excerpt),
            year=year,
            summary=summary,
            date_iso=outcome.iso,
            verified_day=outcome.verified_day,
            is_regionally_relevant=is_relevant,
            score=self.scoring.score(
                title=record.display_title,
                summary=summary,
                year=year,
                category=record.category,
                is_regionally_relevant=is_relevant,
                candidate_rank=candidate_rank,
            ),
            candidate_rank=candidate_rank,
            source_url=record.page_url,
            lookup_title=record.page_title or strip_parens(record.display_title) or record.display_title,
        )

    @staticmethod
    def order(items: List[CuratedItem]) -> List[CuratedItem]:
        """Candidate-endorsed items first by rank, then everything by score descending."""
        return sorted(
            items,
            key=lambda i: (0 if i.candidate_rank else 1, i.candidate_rank or 0, -i.score),
        )

    async def merge(
        self,
        records: Sequence[RawRecord],
        candidates: Sequence[CandidateRecord],
        mm: str,
        dd: str,
    ) -> List[CuratedItem]:
        self.report = MergeReport(feed_records=len(records), candidates=len(candidates))

        matches: List[Tuple[CandidateRecord, RawRecord]] = []
        for candidate in candidates:
            found = self.best_match(candidate, records)
            if found is None:
                self.logger.debug(f"Candidate #{candidate.rank} '{candidate.title}' has no feed match")
                continue
            matches.append((candidate, found[0]))
        self.report.candidate_matches = len(matches)

        feed_outcomes, candidate_outcomes = await asyncio.gather(
            asyncio.gather(*(self.consensus.verify(r, mm, dd) for r in records)),
            asyncio.gather(*(self.consensus.verify(r, mm, dd) for _, r in matches)),
        )

        from_candidates = [
            self.build_item(record, outcome, candidate)
            for (candidate, record), outcome in zip(matches, candidate_outcomes)
            if outcome.ok
        ]
        from_feed = [
            self.build_item(record, outcome)
            for record, outcome in zip(records, feed_outcomes)
            if outcome.ok
        ]
        self.report.candidate_items = len(from_candidates)
        self.report.feed_items = len(from_feed)
        self.report.gate_rejections = sum(1 for o in feed_outcomes if not o.ok)

        merged = self.deduplication.deduplicate(from_candidates + from_feed)
        self.report.after_dedupe = len(merged)

        self.logger.info(
            f"🔀 Merge: {len(records)} feed records, {len(candidates)} candidates -> "
            f"{len(from_candidates)} endorsed + {len(from_feed)} verified -> {len(merged)} after dedupe"
        )
        return self.order(merged)
