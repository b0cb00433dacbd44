"""
Wikipedia REST service for the on-this-day feed, page summaries and article HTML.
Uses direct REST API calls over a shared aiohttp session.
"""

import asyncio
import logging
import random
import ssl
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiohttp
import certifi

from src.models.content import Category, RawRecord
from src.utils.error_monitoring import SourceUnavailableError
from src.utils.text_utils import strip_html, trim_summary

logger = logging.getLogger(__name__)

FEED_KEYS = {
    Category.EVENT: "events",
    Category.BIRTH: "births",
    Category.DEATH: "deaths",
}


def create_http_session(user_agent: str, timeout_seconds: Optional[float] = 20.0) -> aiohttp.ClientSession:
    """ClientSession with a certifi SSL context, shared by the Wikipedia and Wikidata adapters."""
    ssl_context = ssl.create_default_context(cafile=certifi.where())
    connector = aiohttp.TCPConnector(ssl=ssl_context)
    return aiohttp.ClientSession(
        headers={"User-Agent": user_agent, "Accept": "application/json"},
        timeout=aiohttp.ClientTimeout(total=timeout_seconds),
        connector=connector
    )


def _coerce_year(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def extract_feed_records(payload: Optional[Dict[str, Any]], category: Category) -> List[RawRecord]:
    """
    Convert one on-this-day feed payload into RawRecords.

    Accepts partial shapes (``{}``, ``None``, missing pages) so failed fetches can pass an
    empty payload straight through.
    """
    if not isinstance(payload, dict):
        return []
    entries = payload.get(FEED_KEYS[category]) or []
    records: List[RawRecord] = []

    for entry in entries:
        if not isinstance(entry, dict):
            continue
        pages = entry.get("pages") or []
        first_page = pages[0] if pages and isinstance(pages[0], dict) else {}
        titles = first_page.get("titles") or {}
        text = str(entry.get("text") or "")

        page_title = titles.get("normalized") or first_page.get("normalizedtitle") or None
        raw_display = page_title or titles.get("display") or text
        display_title = strip_html(str(raw_display or ""))
        if not display_title:
            continue

        page_url = ((first_page.get("content_urls") or {}).get("desktop") or {}).get("page")

        records.append(RawRecord(
            category=category,
            year=_coerce_year(entry.get("year")),
            display_title=display_title,
            page_title=strip_html(page_title) if page_title else None,
            excerpt=trim_summary(strip_html(text)),
            page_url=page_url or None,
        ))

    return records


class WikipediaService:
    """
    Service for the Wikipedia REST API.

    Feed calls raise SourceUnavailableError so the fetcher can record the failure; the
    lookup helpers used during corroboration and enrichment return None on any failure.
    """

    BASE_URL = "https://en.wikipedia.org/api/rest_v1"

    def __init__(
        self,
        user_agent: str = "OnThisDayCurator/1.0",
        timeout_seconds: float = 20.0,
        max_retries: int = 2,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.headers = {"User-Agent": user_agent, "Accept": "application/json"}
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.max_retries = max_retries
        self.base_delay = 1.0
        self.session: Optional[aiohttp.ClientSession] = session
        self._owns_session = session is None
        self.logger = logger

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp ClientSession with proper SSL configuration."""
        if self.session is None or self.session.closed:
            self.session = create_http_session(self.headers["User-Agent"], self.timeout.total)
            self._owns_session = True
        return self.session

    async def close_session(self):
        """Close aiohttp session for cleanup."""
        if self._owns_session and self.session and not self.session.closed:
            await self.session.close()
        self.session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close_session()
        return False

    async def _request(self, url: str, as_text: bool = False) -> Any:
        """
        GET with retry on 429 and 5xx.

        Raises:
            SourceUnavailableError: on non-2xx status, network error or timeout after retries
        """
        session = await self._get_session()
        last_error: Optional[str] = None

        for attempt in range(self.max_retries + 1):
            try:
                async with session.get(url) as response:
                    if response.status == 429 or response.status >= 500:
                        last_error = f"HTTP {response.status}"
                        if attempt < self.max_retries:
                            delay = self.base_delay * (2 ** attempt) + random.uniform(0, 0.5)
                            self.logger.warning(
                                f"{last_error} for {url} (attempt {attempt + 1}/{self.max_retries + 1}). "
                                f"Retrying after {delay:.1f}s..."
                            )
                            await asyncio.sleep(delay)
                            continue
                        break
                    if response.status >= 400:
                        raise SourceUnavailableError(f"HTTP {response.status} for {url}")
                    if as_text:
                        return await response.text()
                    return await response.json(content_type=None)
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                last_error = f"{type(e).__name__}: {e}"
                if attempt < self.max_retries:
                    await asyncio.sleep(self.base_delay * (2 ** attempt))
                    continue

        raise SourceUnavailableError(f"{url} unavailable: {last_error}")

    async def on_this_day(self, mm: str, dd: str, category: Category) -> List[RawRecord]:
        """Fetch one category of the on-this-day feed."""
        url = f"{self.BASE_URL}/feed/onthisday/{FEED_KEYS[category]}/{mm}/{dd}"
        payload = await self._request(url)
        records = extract_feed_records(payload, category)
        self.logger.info(f"Wikipedia {FEED_KEYS[category]} feed {mm}-{dd}: {len(records)} records")
        return records

    async def page_summary(self, title: str) -> Optional[Dict[str, Any]]:
        if not title:
            return None
        url = f"{self.BASE_URL}/page/summary/{quote(title.replace(' ', '_'), safe='')}"
        try:
            data = await self._request(url)
        except SourceUnavailableError as e:
            self.logger.debug(f"Summary lookup failed for {title!r}: {e}")
            return None
        return data if isinstance(data, dict) else None

    async def summary_extract(self, title: str) -> Optional[str]:
        """Lead extract of a page, or None."""
        data = await self.page_summary(title)
        extract = (data or {}).get("extract")
        return extract if isinstance(extract, str) and extract else None

    async def wikibase_item(self, title: str) -> Optional[str]:
        """QID of the page's Wikidata entity, or None."""
        data = await self.page_summary(title)
        qid = (data or {}).get("wikibase_item")
        return qid if isinstance(qid, str) and qid else None

    async def page_html(self, title: str) -> Optional[str]:
        if not title:
            return None
        url = f"{self.BASE_URL}/page/html/{quote(title.replace(' ', '_'), safe='')}"
        try:
            html = await self._request(url, as_text=True)
        except SourceUnavailableError as e:
            self.logger.debug(f"Article HTML lookup failed for {title!r}: {e}")
            return None
        return html if isinstance(html, str) and html else None
