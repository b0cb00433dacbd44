import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from src.models.content import CandidateParseResult, CandidateRecord, Category, ParseStatus, RawRecord
from src.pipeline.date_normalizer import NormalizedRequest
from src.services.ai_service import AIService
from src.services.wikipedia_service import WikipediaService
from src.utils.error_monitoring import ErrorHandler, SourceUnavailableError


@dataclass
class FetchResult:
    """Result from a single sub-fetch"""
    source: str
    items: List[Any]
    fetch_time: float
    error: Optional[str] = None
    status: Optional[str] = None


@dataclass
class FetchedSources:
    records: List[RawRecord] = field(default_factory=list)
    candidates: List[CandidateRecord] = field(default_factory=list)
    stats: List[FetchResult] = field(default_factory=list)


class SourceFetcher:
    """
    Concurrent retrieval of the three feed categories and both candidate lists.

    Every sub-fetch fails independently to an empty result; the failure is logged and recorded
    in the error handler, never raised.
    """

    FEED_ORDER = (Category.EVENT, Category.BIRTH, Category.DEATH)

    def __init__(
        self,
        wikipedia: WikipediaService,
        ai_service: Optional[AIService] = None,
        fetch_timeout: float = 20.0,
        error_handler: Optional[ErrorHandler] = None,
    ):
        self.wikipedia = wikipedia
        self.ai_service = ai_service
        self.fetch_timeout = fetch_timeout
        self.error_handler = error_handler or ErrorHandler()
        self._fetch_stats: List[FetchResult] = []
        self.logger = logging.getLogger(__name__)

    async def _guarded(
        self,
        source: str,
        service: str,
        fetcher: Callable[[], Awaitable[List[Any]]],
    ) -> FetchResult:
        start = time.perf_counter()
        try:
            items = await asyncio.wait_for(fetcher(), timeout=self.fetch_timeout)
            result = FetchResult(source, list(items), time.perf_counter() - start)
        except asyncio.TimeoutError:
            self.logger.warning(f"{source} timed out after {self.fetch_timeout}s - continuing without it")
            self.error_handler.handle_error(
                SourceUnavailableError(f"{source} timed out after {self.fetch_timeout}s"),
                service=service,
                operation=source,
            )
            result = FetchResult(source, [], self.fetch_timeout, error="Timeout")
        except Exception as e:
            self.logger.warning(f"{source} failed: {e} - continuing without it")
            self.error_handler.handle_error(e, service=service, operation=source)
            result = FetchResult(source, [], time.perf_counter() - start, error=str(e))
        self._fetch_stats.append(result)
        return result

    async def _candidates(self, request: NormalizedRequest, regional: bool) -> FetchResult:
        source = "candidates_regional" if regional else "candidates_global"
        start = time.perf_counter()
        if self.ai_service is None:
            result = FetchResult(source, [], 0.0, status=ParseStatus.EMPTY.value)
            self._fetch_stats.append(result)
            return result

        status_holder: List[str] = []

        async def fetch() -> List[CandidateRecord]:
            parsed: CandidateParseResult = await self.ai_service.generate_candidates(
                request.readable_date, request.mm, request.dd, regional=regional
            )
            status_holder.append(parsed.status.value)
            return list(parsed.candidates)

        result = await self._guarded(source, 'candidates', fetch)
        result.status = status_holder[0] if status_holder else ParseStatus.EMPTY.value
        if result.error is None:
            result.fetch_time = time.perf_counter() - start
        return result

    async def fetch_all(self, request: NormalizedRequest) -> FetchedSources:
        """
        Fetch every source for the requested day.

        Returns:
            Feed records in events, births, deaths order and candidates in global then
            regional order, plus per-source fetch statistics
        """
        self._fetch_stats = []

        def feed(category: Category) -> Callable[[], Awaitable[List[RawRecord]]]:
            return lambda: self.wikipedia.on_this_day(request.mm, request.dd, category)

        tasks = [
            self._guarded(f"wikipedia_{c.value}", 'wikipedia_feed', feed(c)) for c in self.FEED_ORDER
        ]
        tasks.append(self._candidates(request, regional=False))
        tasks.append(self._candidates(request, regional=True))

        results = await asyncio.gather(*tasks, return_exceptions=True)

        fetched = FetchedSources(stats=list(self._fetch_stats))
        for res in results[:len(self.FEED_ORDER)]:
            if isinstance(res, FetchResult):
                fetched.records.extend(res.items)
            elif isinstance(res, Exception):
                self.logger.error(f"Exception in fetch result: {res}")
        for res in results[len(self.FEED_ORDER):]:
            if isinstance(res, FetchResult):
                fetched.candidates.extend(res.items)
            elif isinstance(res, Exception):
                self.logger.error(f"Exception in fetch result: {res}")

        self._log_fetch_stats()
        return fetched

    def _log_fetch_stats(self) -> None:
        for stat in self._fetch_stats:
            status = f" [{stat.status}]" if stat.status else ""
            if stat.error:
                self.logger.warning(f"  ❌ {stat.source}: failed after {stat.fetch_time:.2f}s ({stat.error})")
            else:
                self.logger.info(f"  ✅ {stat.source}: {len(stat.items)} items in {stat.fetch_time:.2f}s{status}")

    def get_fetch_statistics(self) -> dict:
        return {
            'sources': len(self._fetch_stats),
            'failed': sum(1 for s in self._fetch_stats if s.error),
            'items': {s.source: len(s.items) for s in self._fetch_stats},
            'timings': {s.source: round(s.fetch_time, 3) for s in self._fetch_stats},
        }
