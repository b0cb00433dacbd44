"""
Request normalization: the only validation boundary of the pipeline.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Optional

from src.utils.date_extraction import readable_month_day
from src.utils.error_monitoring import InvalidInputError

DEFAULT_LIMIT = 25
MIN_LIMIT = 10
MAX_LIMIT = 30

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class NormalizedRequest:
    date_iso: str
    mm: str
    dd: str
    readable_date: str
    limit: int


def normalize_limit(limit: Any) -> int:
    """Omitted -> 25; numbers are clamped to [10, 30]; anything else is invalid."""
    if limit is None or (isinstance(limit, str) and not limit.strip()):
        return DEFAULT_LIMIT
    if isinstance(limit, bool):
        raise InvalidInputError(f"InvalidLimit: {limit!r}")
    try:
        value = int(limit)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"InvalidLimit: {limit!r}") from e
    return max(MIN_LIMIT, min(MAX_LIMIT, value))


def parse_request_date(value: Optional[str], today: Optional[date] = None) -> date:
    if value is None or not str(value).strip() or str(value).strip().lower() == "today":
        return today or datetime.now(timezone.utc).date()
    text = str(value).strip()
    if not _ISO_DATE.match(text):
        raise InvalidDateFormat(f"InvalidDateFormat: {text!r} (expected YYYY-MM-DD)")
    try:
        return date.fromisoformat(text)
    except ValueError as e:
        raise InvalidDateFormat(f"InvalidDateFormat: {text!r} is not a calendar date") from e


def normalize_request(
    date_value: Optional[str] = None,
    limit: Any = None,
    today: Optional[date] = None,
) -> NormalizedRequest:
    """
    Resolve the requested day and limit.

    Args:
        date_value: "YYYY-MM-DD", "today", empty or None (current UTC date)
        limit: Requested item count; clamped to [10, 30]
        today: Override for the current date

    Raises:
        InvalidInputError: malformed date or non-integer limit
    """
    resolved_limit = normalize_limit(limit)
    day = parse_request_date(date_value, today=today)
    return NormalizedRequest(
        date_iso=day.isoformat(),
        mm=f"{day.month:02d}",
        dd=f"{day.day:02d}",
        readable_date=readable_month_day(day.month, day.day),
        limit=resolved_limit,
    )


class InvalidDateFormat(InvalidInputError):
    pass
