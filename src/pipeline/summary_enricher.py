import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from src.models.content import CandidateRecord, CuratedItem
from src.services.wikipedia_service import WikipediaService
from src.utils.error_monitoring import ErrorHandler
from src.utils.text_utils import normalized_title_key, strip_known_prefixes, trim_summary


def candidate_notes(candidates: Iterable[CandidateRecord]) -> Dict[str, str]:
    """Provider notes keyed by normalized, prefix-stripped title (later entries win)."""
    notes: Dict[str, str] = {}
    for candidate in candidates:
        if candidate.title:
            notes[normalized_title_key(candidate.title)] = candidate.note or ""
    return notes


class SummaryEnricher:
    """
    Best-effort summary improvement for the selected items.

    Replaces a summary with the page lead when the lead is longer, and appends the provider
    note to short summaries. Failures leave the item untouched.
    """

    def __init__(
        self,
        wikipedia: WikipediaService,
        note_append_threshold: int = 240,
        max_concurrency: int = 8,
        error_handler: Optional[ErrorHandler] = None,
    ):
        self.wikipedia = wikipedia
        self.error_handler = error_handler or ErrorHandler()
        self.note_append_threshold = note_append_threshold
        self.semaphore = asyncio.Semaphore(max(1, max_concurrency))
        self.stats = {"replaced": 0, "notes_appended": 0, "failed": 0}
        self.logger = logging.getLogger(__name__)

    async def _lead(self, item: CuratedItem) -> Optional[str]:
        lookup = item.lookup_title or strip_known_prefixes(item.title)
        async with self.semaphore:
            return await self.wikipedia.summary_extract(lookup)

    async def _enrich_one(self, item: CuratedItem, notes: Dict[str, str]) -> None:
        try:
            lead = await self._lead(item)
        except Exception as e:
            self.stats["failed"] += 1
            self.error_handler.handle_error(e, service='enrichment', operation='summary_extract',
                                            context={'title': item.title})
            lead = None

        if lead:
            trimmed = trim_summary(lead)
            if len(trimmed) > len(item.summary or ""):
                item.summary = trimmed
                self.stats["replaced"] += 1

        note = notes.get(normalized_title_key(item.title))
        if note and len(item.summary or "") < self.note_append_threshold and note not in (item.summary or ""):
            item.summary = f"{item.summary} {note}".strip()
            self.stats["notes_appended"] += 1

    async def enrich(
        self,
        items: List[CuratedItem],
        candidates: Iterable[CandidateRecord] = (),
    ) -> List[CuratedItem]:
        """Enrich summaries in place and return the same list."""
        notes = candidate_notes(candidates)
        results = await asyncio.gather(
            *(self._enrich_one(item, notes) for item in items),
            return_exceptions=True,
        )
        for item, result in zip(items, results):
            if isinstance(result, Exception):
                self.stats["failed"] += 1
                self.logger.debug(f"Enrichment failed for '{item.title}': {result}")

        self.logger.info(
            f"📝 Enriched {len(items)} items: {self.stats['replaced']} leads, "
            f"{self.stats['notes_appended']} notes"
        )
        return items
