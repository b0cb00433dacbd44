"""
Content models for the curation pipeline.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Category(str, Enum):
    """Feed category of a historical item."""

    EVENT = "event"
    BIRTH = "birth"
    DEATH = "death"

    @property
    def is_biographical(self) -> bool:
        return self in (Category.BIRTH, Category.DEATH)


@dataclass(frozen=True)
class RawRecord:
    """One entry from the encyclopedic on-this-day feed."""

    category: Category
    year: Optional[int]
    display_title: str
    page_title: Optional[str]
    excerpt: str
    page_url: Optional[str] = None

    @property
    def year_str(self) -> str:
        return str(self.year) if self.year is not None else ""


@dataclass(frozen=True)
class CandidateRecord:
    """A ranked suggestion from the generative candidate provider."""

    rank: int
    title: str
    year: str = ""
    note: str = ""


class ParseStatus(str, Enum):
    PARSED = "parsed"
    RECOVERED = "recovered"
    EMPTY = "empty"


@dataclass(frozen=True)
class CandidateParseResult:
    """Outcome of parsing a provider payload: strict JSON, lenient recovery, or nothing."""

    status: ParseStatus
    candidates: Tuple[CandidateRecord, ...] = ()

    @classmethod
    def empty(cls) -> "CandidateParseResult":
        return cls(ParseStatus.EMPTY, ())


@dataclass
class CuratedItem:
    """Pipeline working unit produced by the consensus merger."""

    category: Category
    title: str
    year: str
    summary: str
    date_iso: Optional[str] = None
    verified_day: bool = False
    is_regionally_relevant: bool = False
    score: int = 0
    candidate_rank: Optional[int] = None
    source_url: Optional[str] = None

    # Title used for summary lookups; never serialized
    lookup_title: Optional[str] = field(default=None, repr=False, compare=False)

    @property
    def key(self) -> Tuple[str, str]:
        """Identity used for membership tests during selection."""
        return (self.title, self.year)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "summary": self.summary,
            "date_iso": self.date_iso,
            "year": self.year,
            "category": self.category.value,
            "is_regionally_relevant": self.is_regionally_relevant,
            "verified_day": self.verified_day,
            "score": self.score,
            "source_url": self.source_url,
        }


@dataclass
class CurationTotals:
    returned: int = 0
    regionally_relevant: int = 0
    other: int = 0
    biographical: int = 0
    battles: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "returned": self.returned,
            "regionallyRelevant": self.regionally_relevant,
            "other": self.other,
            "biographical": self.biographical,
            "battles": self.battles,
        }


@dataclass
class CurationResult:
    """Successful pipeline output."""

    date: str
    events: List[CuratedItem]
    totals: CurationTotals

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "date": self.date,
            "totals": self.totals.to_dict(),
            "events": [item.to_dict() for item in self.events],
        }
