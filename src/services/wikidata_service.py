"""
Wikidata entity lookups used to corroborate the calendar day of an item.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, Optional, Tuple

import aiohttp

from src.services.wikipedia_service import create_http_session
from src.utils.date_extraction import month_day_of, parse_wikidata_time

logger = logging.getLogger(__name__)


def pick_referenced_date(
    claims: Dict[str, Any],
    properties: Iterable[str],
    month_day: Optional[Tuple[str, str]] = None,
) -> Optional[Tuple[str, str]]:
    """
    Referenced, day-precision date among ``properties`` (in priority order).

    An entity usually carries several dates (a person has both P569 and P570). When
    ``month_day`` is given, the first date falling on that day wins; otherwise, or when none
    does, the first referenced date is returned.

    Args:
        claims: ``entities[qid].claims`` of an EntityData document
        properties: Property ids such as ("P585", "P571", "P580", ...)
        month_day: Optional ("mm", "dd") to prefer

    Returns:
        (iso_date, property_id) or None
    """
    if not isinstance(claims, dict):
        return None
    first: Optional[Tuple[str, str]] = None
    for prop in properties:
        statements = claims.get(prop)
        if not isinstance(statements, list):
            continue
        for statement in statements:
            if not isinstance(statement, dict):
                continue
            references = statement.get("references")
            if not isinstance(references, list) or not references:
                continue
            value = ((statement.get("mainsnak") or {}).get("datavalue") or {}).get("value")
            iso = parse_wikidata_time(value)
            if not iso:
                continue
            if month_day is None or month_day_of(iso) == month_day:
                return iso, prop
            if first is None:
                first = (iso, prop)
    return first


class WikidataService:
    """Read-only client for ``Special:EntityData``; every failure returns None."""

    BASE_URL = "https://www.wikidata.org/wiki/Special:EntityData"

    def __init__(
        self,
        user_agent: str = "OnThisDayCurator/1.0",
        timeout_seconds: float = 20.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.user_agent = user_agent
        self.timeout_seconds = timeout_seconds
        self.session: Optional[aiohttp.ClientSession] = session
        self._owns_session = session is None
        self.logger = logger

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = create_http_session(self.user_agent, self.timeout_seconds)
            self._owns_session = True
        return self.session

    async def close_session(self):
        if self._owns_session and self.session and not self.session.closed:
            await self.session.close()
        self.session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close_session()
        return False

    async def entity_claims(self, qid: str) -> Optional[Dict[str, Any]]:
        """Claims map of an entity, or None when it cannot be fetched."""
        if not qid:
            return None
        session = await self._get_session()
        url = f"{self.BASE_URL}/{qid}.json"
        try:
            async with session.get(url) as response:
                if response.status != 200:
                    self.logger.debug(f"Wikidata {qid}: HTTP {response.status}")
                    return None
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.logger.debug(f"Wikidata {qid} lookup failed: {type(e).__name__}: {e}")
            return None

        entity = ((data or {}).get("entities") or {}).get(qid) or {}
        claims = entity.get("claims")
        return claims if isinstance(claims, dict) else None
