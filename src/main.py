#!/usr/bin/env python3
import argparse
import asyncio
import json
import logging
import os
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional, Tuple

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from src.models.content import CurationResult, CuratedItem
from src.pipeline.consensus_merger import ConsensusMerger
from src.pipeline.date_normalizer import NormalizedRequest, normalize_request
from src.pipeline.quota_selector import QuotaSelector, SelectionConfig, compute_totals
from src.pipeline.source_fetcher import SourceFetcher
from src.pipeline.summary_enricher import SummaryEnricher
from src.services.ai_service import AIService
from src.services.date_consensus_service import DateConsensusService
from src.services.deduplication_service import DeduplicationService
from src.services.signal_scoring_service import SignalScoringService
from src.services.wikidata_service import WikidataService
from src.services.wikipedia_service import WikipediaService, create_http_session
from src.utils.error_monitoring import ErrorHandler, InvalidInputError, PipelineFailure
from src.utils.logging_config import PerformanceTracker, bind_run_date, log_pipeline_metrics, setup_logging

SERVICE_NAME = "on-this-day-curator"


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


@dataclass
class PipelineConfig:
    """Pipeline configuration"""
    # Candidate provider
    gemini_api_key: str = ""
    gemini_model: Optional[str] = None

    # Upstream access
    wikipedia_user_agent: str = "OnThisDayCurator/1.0 (https://github.com/; curation pipeline)"
    fetch_timeout: float = 20.0
    max_concurrency: int = 8

    # Selection
    regional_target_ratio: float = 0.70
    regional_band_low: float = 0.60
    regional_band_high: float = 0.80
    max_biographical: int = 6
    max_battles: int = 3
    note_append_threshold: int = 240

    # Logging / serving
    log_level: str = "INFO"
    log_dir: str = "logs"
    enable_file_logging: bool = False
    log_format: str = "text"
    port: int = 8080

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Load configuration from environment"""
        return cls(
            gemini_api_key=os.getenv('GEMINI_API_KEY', ''),
            gemini_model=os.getenv('GEMINI_MODEL') or None,
            wikipedia_user_agent=os.getenv('WIKIPEDIA_USER_AGENT', cls.wikipedia_user_agent),
            fetch_timeout=_env_float('FETCH_TIMEOUT', 20.0),
            max_concurrency=_env_int('MAX_CONCURRENCY', 8),
            regional_target_ratio=_env_float('REGIONAL_TARGET_RATIO', 0.70),
            regional_band_low=_env_float('REGIONAL_BAND_LOW', 0.60),
            regional_band_high=_env_float('REGIONAL_BAND_HIGH', 0.80),
            max_biographical=_env_int('MAX_BIOGRAPHICAL', 6),
            max_battles=_env_int('MAX_BATTLES', 3),
            note_append_threshold=_env_int('NOTE_APPEND_THRESHOLD', 240),
            log_level=os.getenv('LOG_LEVEL', 'INFO'),
            log_dir=os.getenv('LOG_DIR', 'logs'),
            enable_file_logging=(os.getenv('ENABLE_FILE_LOGGING', 'false').lower() == 'true'),
            log_format=os.getenv('LOG_FORMAT', 'text').lower(),
            port=_env_int('PORT', 8080),
        )

    def selection_config(self) -> SelectionConfig:
        return SelectionConfig(
            target_ratio=self.regional_target_ratio,
            band_low_ratio=self.regional_band_low,
            band_high_ratio=self.regional_band_high,
            max_biographical=self.max_biographical,
            max_battles=self.max_battles,
        )


@dataclass
class PipelineMetrics:
    """Execution metrics"""
    start_time: datetime
    end_time: Optional[datetime] = None

    # Stage timings (ms)
    fetch_time: float = 0.0
    merge_time: float = 0.0
    select_time: float = 0.0
    enrich_time: float = 0.0

    # Counts
    records_fetched: int = 0
    candidates_fetched: int = 0
    items_merged: int = 0
    items_selected: int = 0

    def total_time(self) -> float:
        """Calculate total execution time"""
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return 0.0


def failure_response(code: str, detail: str) -> Dict[str, Any]:
    return {"success": False, "error": code, "detail": detail}


class CurationPipeline:
    """
    Orchestrates one curation run: normalize, fetch, merge, select, enrich.

    Every run is stateless. Network adapters can be injected (tests pass in-memory fakes);
    otherwise a single aiohttp session is opened per run and shared by the Wikipedia and
    Wikidata adapters.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        wikipedia: Optional[WikipediaService] = None,
        wikidata: Optional[WikidataService] = None,
        ai_service: Optional[AIService] = None,
        scoring: Optional[SignalScoringService] = None,
    ):
        self.config = config or PipelineConfig.from_env()
        self.logger = logging.getLogger(__name__)
        self._wikipedia = wikipedia
        self._wikidata = wikidata
        self.ai_service = ai_service if ai_service is not None else AIService(
            api_key=self.config.gemini_api_key,
            model=self.config.gemini_model,
        )
        self.scoring = scoring or SignalScoringService()
        self.metrics: Optional[PipelineMetrics] = None
        self.error_handler = ErrorHandler()

    @asynccontextmanager
    async def _adapters(self) -> AsyncIterator[Tuple[WikipediaService, WikidataService]]:
        if self._wikipedia is not None and self._wikidata is not None:
            yield self._wikipedia, self._wikidata
            return

        async with create_http_session(self.config.wikipedia_user_agent, self.config.fetch_timeout) as session:
            wikipedia = self._wikipedia or WikipediaService(
                user_agent=self.config.wikipedia_user_agent,
                timeout_seconds=self.config.fetch_timeout,
                session=session,
            )
            wikidata = self._wikidata or WikidataService(
                user_agent=self.config.wikipedia_user_agent,
                timeout_seconds=self.config.fetch_timeout,
                session=session,
            )
            yield wikipedia, wikidata

    def is_battle(self, item: CuratedItem) -> bool:
        return self.scoring.is_battle(f"{item.title} {item.summary or ''}")

    async def curate(self, date: Optional[str] = None, limit: Any = None) -> Dict[str, Any]:
        """
        Run the pipeline for one day.

        Returns:
            The success payload, or ``{success: False, error, detail}``. Never raises.
        """
        self.error_handler = ErrorHandler()
        try:
            request = normalize_request(date, limit)
        except InvalidInputError as e:
            self.logger.warning(f"Rejected request date={date!r} limit={limit!r}: {e}")
            return failure_response(InvalidInputError.code, str(e))

        bind_run_date(request.date_iso)
        self.metrics = PipelineMetrics(start_time=datetime.now(timezone.utc))
        try:
            result = await self._execute_pipeline(request)
            return result.to_dict()
        except Exception as e:  # noqa: BLE001
            failure = PipelineFailure(f"{type(e).__name__}: {e}")
            self.error_handler.handle_error(failure, service='pipeline', operation='curate',
                                            context={'date': request.date_iso, 'limit': request.limit})
            self.logger.exception(f"❌ Pipeline failed for {request.date_iso}")
            return failure_response(PipelineFailure.code, str(failure))
        finally:
            self.metrics.end_time = datetime.now(timezone.utc)
            self._log_run_summary()

    async def _execute_pipeline(self, request: NormalizedRequest) -> CurationResult:
        cfg = self.config
        self.logger.info(f"🚀 Curating {request.readable_date} ({request.date_iso}), limit {request.limit}")

        async with self._adapters() as (wikipedia, wikidata):
            # Stage 1: Fetch
            with PerformanceTracker("fetch", self.logger) as tracker:
                fetcher = SourceFetcher(wikipedia, self.ai_service, cfg.fetch_timeout, self.error_handler)
                fetched = await fetcher.fetch_all(request)
            self.metrics.fetch_time = tracker.duration_ms
            self.metrics.records_fetched = len(fetched.records)
            self.metrics.candidates_fetched = len(fetched.candidates)

            # Stage 2: Consensus merge
            with PerformanceTracker("merge", self.logger) as tracker:
                consensus = DateConsensusService(
                    wikipedia, wikidata, self.scoring,
                    max_concurrency=cfg.max_concurrency,
                    error_handler=self.error_handler,
                )
                merger = ConsensusMerger(consensus, self.scoring, DeduplicationService())
                pool = await merger.merge(fetched.records, fetched.candidates, request.mm, request.dd)
            self.metrics.merge_time = tracker.duration_ms
            self.metrics.items_merged = len(pool)
            log_pipeline_metrics(self.logger, "merge", len(fetched.records) + len(fetched.candidates),
                                 len(pool), tracker.duration_ms, **merger.report.to_dict())

            # Stage 3: Select
            with PerformanceTracker("select", self.logger) as tracker:
                selector = QuotaSelector(cfg.selection_config(), is_battle=self.is_battle)
                selected = selector.select(pool, request.limit)
                # Counted before enrichment; page leads must not reclassify battles
                totals = compute_totals(selected, self.is_battle)
            self.metrics.select_time = tracker.duration_ms
            self.metrics.items_selected = len(selected)
            log_pipeline_metrics(self.logger, "select", len(pool), len(selected), tracker.duration_ms)

            # Stage 4: Enrich
            with PerformanceTracker("enrich", self.logger) as tracker:
                enricher = SummaryEnricher(wikipedia, cfg.note_append_threshold, cfg.max_concurrency,
                                           self.error_handler)
                events = await enricher.enrich(selected, fetched.candidates)
            self.metrics.enrich_time = tracker.duration_ms

        return CurationResult(
            date=request.date_iso,
            events=events,
            totals=totals,
        )

    def _log_run_summary(self) -> None:
        stats = self.error_handler.summary()
        if stats['total_errors']:
            self.logger.info(f"Recovered errors this run: {json.dumps(stats)}")
        for pattern in self.error_handler.repeated_failures():
            self.logger.warning(pattern)
        if self.metrics:
            self.logger.info(
                f"🏁 Run finished in {self.metrics.total_time():.2f}s: "
                f"{self.metrics.records_fetched} records, {self.metrics.candidates_fetched} candidates, "
                f"{self.metrics.items_merged} merged, {self.metrics.items_selected} selected"
            )

    def get_metrics(self) -> Optional[PipelineMetrics]:
        return self.metrics


async def curate(date: Optional[str] = None, limit: Any = None) -> Dict[str, Any]:
    """Curate the given day with a pipeline configured from the environment."""
    return await CurationPipeline().curate(date, limit)


def main():
    """Main entry point"""
    config = PipelineConfig.from_env()

    parser = argparse.ArgumentParser(description="On-this-day curation pipeline")
    parser.add_argument('--date', default=None, help='Day to curate as YYYY-MM-DD (default: today, UTC)')
    parser.add_argument('--limit', default=None, help='Number of items to return (clamped to 10-30, default 25)')
    parser.add_argument('--serve', action='store_true', help='Run the HTTP API instead of a single curation')
    parser.add_argument('--host', default='0.0.0.0', help='Bind address for --serve')
    parser.add_argument('--port', type=int, default=config.port, help='Port for --serve')
    parser.add_argument('--log-level', default=config.log_level, help='Logging level')
    args = parser.parse_args()

    config.log_level = args.log_level
    setup_logging(
        log_level=config.log_level,
        log_dir=config.log_dir,
        enable_file_logging=config.enable_file_logging,
        enable_structured_logging=config.log_format == 'json',
    )

    if args.serve:
        from src.server import run_server
        run_server(host=args.host, port=args.port)
        return

    try:
        result = asyncio.run(CurationPipeline(config).curate(args.date, args.limit))
    except KeyboardInterrupt:
        print("\n⚠️ Interrupted")
        sys.exit(130)

    print(json.dumps(result, indent=2, ensure_ascii=False))
    if not result.get("success"):
        sys.exit(1)


if __name__ == "__main__":
    main()
