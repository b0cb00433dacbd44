"""
Quota-bounded selection of the final item set.

The selector is a pure function of its input pool: it never mutates items, and membership is
decided by each item's (title, year) key.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from src.models.content import Category, CuratedItem, CurationTotals


class QuotaConfigError(Exception):
    pass


@dataclass(frozen=True)
class SelectionConfig:
    target_ratio: float = 0.70
    band_low_ratio: float = 0.60
    band_high_ratio: float = 0.80
    max_biographical: int = 6
    max_battles: int = 3

    def __post_init__(self):
        if not 0.0 <= self.band_low_ratio <= self.band_high_ratio <= 1.0:
            raise QuotaConfigError(
                f"Regional band must satisfy 0 <= low <= high <= 1 (got {self.band_low_ratio}, {self.band_high_ratio})"
            )
        if self.max_biographical < 0 or self.max_battles < 0:
            raise QuotaConfigError("Category caps must be non-negative")


@dataclass
class SelectionReport:
    requested: int = 0
    pool_size: int = 0
    target: int = 0
    band_low: int = 0
    band_high: int = 0
    swapped_in: int = 0
    swapped_out: int = 0
    backfilled: int = 0
    biographical_removed: int = 0
    battles_removed: int = 0
    counts: Dict[str, int] = field(default_factory=dict)

    @property
    def under_filled(self) -> bool:
        return self.counts.get('returned', 0) < self.requested


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _by_score(items: Sequence[CuratedItem]) -> List[CuratedItem]:
    return sorted(items, key=lambda i: -i.score)


def _weakest(items: Sequence[CuratedItem]) -> CuratedItem:
    # Lowest score; on ties the item ranked last
    return min(reversed(list(items)), key=lambda i: i.score)


def compute_totals(items: Sequence[CuratedItem], is_battle: Callable[[CuratedItem], bool]) -> CurationTotals:
    relevant = sum(1 for i in items if i.is_regionally_relevant)
    return CurationTotals(
        returned=len(items),
        regionally_relevant=relevant,
        other=len(items) - relevant,
        biographical=sum(1 for i in items if i.category.is_biographical),
        battles=sum(1 for i in items if is_battle(i)),
    )


class QuotaSelector:
    """
    Picks a fixed-size subset with a regional-share band and hard per-category caps.

    Steps: partition by relevance, take the target share, correct toward the band, backfill to
    the requested size, enforce the biographical and battle caps, then sort by score. Caps are
    never exceeded; when the pool runs dry the result is simply shorter.
    """

    def __init__(
        self,
        config: Optional[SelectionConfig] = None,
        is_battle: Optional[Callable[[CuratedItem], bool]] = None,
    ):
        self.config = config or SelectionConfig()
        self.is_battle = is_battle or (lambda item: False)
        self.report = SelectionReport()
        self.logger = logging.getLogger(__name__)

    def band(self, n: int) -> Tuple[int, int, int]:
        """(target, band_low, band_high) counts of regionally relevant items for size n."""
        band_low = round_half_up(n * self.config.band_low_ratio)
        band_high = round_half_up(n * self.config.band_high_ratio)
        target = max(band_low, min(band_high, round_half_up(n * self.config.target_ratio)))
        return target, band_low, band_high

    def select(self, pool: Sequence[CuratedItem], n: int) -> List[CuratedItem]:
        report = SelectionReport(requested=n, pool_size=len(pool))
        target, band_low, band_high = self.band(n)
        report.target, report.band_low, report.band_high = target, band_low, band_high

        relevant = _by_score([i for i in pool if i.is_regionally_relevant])
        other = _by_score([i for i in pool if not i.is_regionally_relevant])

        take_relevant = min(target, len(relevant))
        selected = relevant[:take_relevant] + other[:max(0, n - take_relevant)]

        def keys() -> Set[Tuple[str, str]]:
            return {i.key for i in selected}

        def relevant_count() -> int:
            return sum(1 for i in selected if i.is_regionally_relevant)

        # Below the band: bring in more relevant items
        if relevant_count() < band_low:
            for candidate in relevant:
                if relevant_count() >= band_low:
                    break
                if candidate.key in keys():
                    continue
                if len(selected) >= n:
                    non_relevant = [i for i in selected if not i.is_regionally_relevant]
                    if not non_relevant:
                        break
                    selected.remove(_weakest(non_relevant))
                selected.append(candidate)
                report.swapped_in += 1
                selected = _by_score(selected)[:n]

        # Above the band: trade the weakest relevant items for the best unused others
        if relevant_count() > band_high:
            for candidate in other:
                if relevant_count() <= band_high:
                    break
                if candidate.key in keys():
                    continue
                selected.remove(_weakest([i for i in selected if i.is_regionally_relevant]))
                selected.append(candidate)
                report.swapped_out += 1
                selected = _by_score(selected)[:n]

        # Under-filled: best remaining items regardless of relevance
        if len(selected) < n:
            used = keys()
            extra = [i for i in _by_score(pool) if i.key not in used][:n - len(selected)]
            selected.extend(extra)
            report.backfilled = len(extra)

        removed: Set[Tuple[str, str]] = set()
        selected, report.biographical_removed = self._enforce_cap(
            pool, selected, removed, n,
            predicate=lambda i: i.category.is_biographical,
            cap=self.config.max_biographical,
        )
        selected, report.battles_removed = self._enforce_cap(
            pool, selected, removed, n,
            predicate=self.is_battle,
            cap=self.config.max_battles,
        )

        selected = _by_score(selected)[:n]
        report.counts = compute_totals(selected, self.is_battle).to_dict()
        self.report = report
        self._log_report(report)
        return selected

    def _enforce_cap(
        self,
        pool: Sequence[CuratedItem],
        selected: List[CuratedItem],
        removed: Set[Tuple[str, str]],
        n: int,
        predicate: Callable[[CuratedItem], bool],
        cap: int,
    ) -> Tuple[List[CuratedItem], int]:
        """Drop the lowest-scored excess and backfill with unused non-battle events."""
        matching = [i for i in selected if predicate(i)]
        if len(matching) <= cap:
            return selected, 0

        excess = sorted(matching, key=lambda i: i.score)[:len(matching) - cap]
        excess_keys = {i.key for i in excess}
        removed |= excess_keys
        kept = [i for i in selected if i.key not in excess_keys]

        used = {i.key for i in kept}
        refill = [
            i for i in _by_score(pool)
            if i.category == Category.EVENT
            and not self.is_battle(i)
            and i.key not in used
            and i.key not in removed
        ]
        kept.extend(refill[:max(0, n - len(kept))])
        return kept, len(excess)

    def _log_report(self, report: SelectionReport) -> None:
        counts = report.counts
        self.logger.info(
            f"🎯 Selected {counts.get('returned', 0)}/{report.requested} from pool of {report.pool_size} "
            f"(regional {counts.get('regionallyRelevant', 0)}, band {report.band_low}-{report.band_high}, "
            f"bio {counts.get('biographical', 0)}/{self.config.max_biographical}, "
            f"battles {counts.get('battles', 0)}/{self.config.max_battles})"
        )
        if report.under_filled:
            self.logger.warning(
                f"Selection under-filled: {counts.get('returned', 0)} of {report.requested} requested"
            )
