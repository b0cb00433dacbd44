"""
Date extraction utilities for corroborating the calendar day of a historical item.
"""

import re
from datetime import date
from typing import Any, Dict, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

MONTHS_FULL = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]
MONTHS = [m.lower() for m in MONTHS_FULL]
_MONTH_ALT = "|".join(MONTHS)

# Verbs that usually sit right before the date an article is about
_VERB_CUES = (
    r"signed|born|died|launched|declared|independence|assassinated|founded|"
    r"started|arrested|storming|crash(?:ed|es)?|established|inaugurated|proclaimed"
)

_DAY_MONTH_YEAR = re.compile(
    rf"(?:{_VERB_CUES})[^\w]{{0,30}}(\d{{1,2}})\s+({_MONTH_ALT})\s+(\d{{3,4}})",
    re.IGNORECASE,
)
_SIGNING = re.compile(
    rf"(?:date\s*(?:signed|of\s*signing)|signed)[^A-Za-z0-9]{{0,10}}(\d{{1,2}})\s+({_MONTH_ALT})\s+(\d{{3,4}})",
    re.IGNORECASE,
)
_MONTH_DAY_YEAR = re.compile(
    rf"(?:{_VERB_CUES})[^\w]{{0,30}}(?:on\s+)?({_MONTH_ALT})\s+(\d{{1,2}}),?\s+(\d{{3,4}})",
    re.IGNORECASE,
)

_WIKIDATA_TIME = re.compile(r"^[+\-]?(\d{4,})-(\d{2})-(\d{2})")
_DAY_PRECISION = 11


def to_iso(year: int, month: int, day: int) -> Optional[str]:
    """
    Zero-padded ``YYYY-MM-DD``; None when the parts are not a real calendar date.

    Years before 1 (BCE) cannot be represented and yield None.
    """
    try:
        date(year, month, day)
    except (ValueError, TypeError):
        return None
    return f"{year:04d}-{month:02d}-{day:02d}"


def month_day_of(iso: Optional[str]) -> Optional[Tuple[str, str]]:
    """Return the (mm, dd) strings of an ISO date (BCE dates carry a leading "-"), or None."""
    iso = (iso or "").lstrip("-")
    if len(iso) < 10:
        return None
    return iso[5:7], iso[8:10]


def readable_month_day(month: int, day: int) -> str:
    """1947-08-15 -> "August 15"."""
    return f"{MONTHS_FULL[month - 1]} {day}"


def iso_to_display(iso: Optional[str]) -> str:
    """Best-effort display for an ISO date: 1947-08-15 -> "August 15, 1947"."""
    match = re.match(r"^(\d{4})-(\d{2})-(\d{2})$", iso or "")
    if not match:
        return iso or ""
    yyyy, mm, dd = match.groups()
    return f"{MONTHS_FULL[int(mm) - 1]} {int(dd)}, {yyyy}"


def extract_date_from_article(text: str) -> Optional[Tuple[str, str]]:
    """
    Find a date phrase near a verb cue in article text.

    Looks for, in order:
    - "declared independence on 15 August 1947" (day month year)
    - "Date signed: 28 June 1919"
    - "born on August 4, 1961" (month day, year)

    Args:
        text: Plain article text (HTML already stripped)

    Returns:
        (iso_date, evidence) when a valid date was found, None otherwise
    """
    if not text:
        return None

    for pattern in (_DAY_MONTH_YEAR, _SIGNING):
        match = pattern.search(text)
        if match:
            day, month_name, year = match.groups()
            iso = to_iso(int(year), MONTHS.index(month_name.lower()) + 1, int(day))
            if iso:
                logger.debug(f"Article date evidence: {match.group(0)!r} -> {iso}")
                return iso, match.group(0)

    match = _MONTH_DAY_YEAR.search(text)
    if match:
        month_name, day, year = match.groups()
        iso = to_iso(int(year), MONTHS.index(month_name.lower()) + 1, int(day))
        if iso:
            logger.debug(f"Article date evidence: {match.group(0)!r} -> {iso}")
            return iso, match.group(0)

    return None


def parse_wikidata_time(value: Dict[str, Any]) -> Optional[str]:
    """
    Convert a Wikidata time value to ``YYYY-MM-DD``.

    Only day-precision values count: year- or month-precision times carry "-00" parts
    and are not evidence for a calendar day. BCE times keep their sign ("-0044-03-15");
    their month and day are checked against a leap year.
    """
    if not isinstance(value, dict):
        return None
    raw = value.get("time")
    if not isinstance(raw, str):
        return None
    precision = value.get("precision")
    if isinstance(precision, int) and precision < _DAY_PRECISION:
        return None
    match = _WIKIDATA_TIME.match(raw)
    if not match:
        return None
    year, month, day = (int(part) for part in match.groups())
    if raw.startswith("-"):
        if year == 0 or to_iso(2000, month, day) is None:
            return None
        return f"-{year:04d}-{month:02d}-{day:02d}"
    return to_iso(year, month, day)
