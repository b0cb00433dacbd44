import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from src.models.content import CuratedItem
from src.utils.text_utils import jaccard, normalized_title_key, strip_known_prefixes


@dataclass
class DeduplicationDecision:
    action: str  # 'keep', 'replace', 'filter'
    similarity: float
    reasoning: str
    related_to: Optional[str] = None


class DeduplicationService:
    """
    Near-duplicate removal for curated items.

    Two items are duplicates when their years are equal as strings and their titles, with the
    rewriter prefixes stripped, are identical or overlap above the similarity threshold. On
    conflict the item with the higher preference key survives:
    ``(has candidate rank) + (regionally relevant) + score / 100``.
    """

    def __init__(self, similarity_threshold: float = 0.72) -> None:
        self.similarity_threshold = similarity_threshold
        self.stats: Dict[str, int] = {
            "total_processed": 0,
            "kept": 0,
            "replaced": 0,
            "filtered": 0,
        }
        self.logger = logging.getLogger(__name__)

    def reset_statistics(self) -> None:
        for key in self.stats:
            self.stats[key] = 0

    def title_similarity(self, a: CuratedItem, b: CuratedItem) -> float:
        return jaccard(strip_known_prefixes(a.title), strip_known_prefixes(b.title))

    def is_duplicate(self, a: CuratedItem, b: CuratedItem) -> bool:
        if str(a.year) != str(b.year):
            return False
        # Short-token titles ("Li Bo") have no Jaccard overlap; compare them whole
        key = normalized_title_key(a.title)
        if key and key == normalized_title_key(b.title):
            return True
        return self.title_similarity(a, b) > self.similarity_threshold

    @staticmethod
    def preference_key(item: CuratedItem) -> float:
        return (
            (1 if item.candidate_rank else 0)
            + (1 if item.is_regionally_relevant else 0)
            + item.score / 100
        )

    def decide(self, item: CuratedItem, duplicates: List[CuratedItem]) -> DeduplicationDecision:
        if not duplicates:
            return DeduplicationDecision(action="keep", similarity=0.0, reasoning="no duplicate")

        best = max(duplicates, key=self.preference_key)
        similarity = max(self.title_similarity(item, d) for d in duplicates)
        if self.preference_key(item) > self.preference_key(best):
            return DeduplicationDecision(
                action="replace",
                similarity=similarity,
                reasoning="higher preference key than every duplicate",
                related_to=best.title,
            )
        return DeduplicationDecision(
            action="filter",
            similarity=similarity,
            reasoning="an existing duplicate is preferred",
            related_to=best.title,
        )

    def deduplicate(self, items: List[CuratedItem]) -> List[CuratedItem]:
        """
        Deduplicate items in order; earlier items are kept unless a later one is preferred.

        A preferred newcomer takes the position of its first duplicate and every duplicate it
        beats is removed, so no two survivors satisfy the duplicate predicate.
        """
        self.reset_statistics()
        out: List[CuratedItem] = []

        for item in items:
            self.stats["total_processed"] += 1
            duplicate_indices = [i for i, existing in enumerate(out) if self.is_duplicate(item, existing)]
            decision = self.decide(item, [out[i] for i in duplicate_indices])

            if decision.action == "keep":
                out.append(item)
                self.stats["kept"] += 1
            elif decision.action == "replace":
                first_index = duplicate_indices[0]
                drop = set(duplicate_indices)
                out = [
                    item if i == first_index else existing
                    for i, existing in enumerate(out)
                    if i == first_index or i not in drop
                ]
                self.stats["replaced"] += 1
                self.logger.debug(
                    f"Dedupe replaced '{decision.related_to}' with '{item.title}' "
                    f"(similarity {decision.similarity:.2f})"
                )
            else:
                self.stats["filtered"] += 1
                self.logger.debug(
                    f"Dedupe filtered '{item.title}' as duplicate of '{decision.related_to}' "
                    f"(similarity {decision.similarity:.2f})"
                )

        self.logger.info(
            f"Deduplicated {self.stats['total_processed']} items -> {len(out)} "
            f"(replaced={self.stats['replaced']}, filtered={self.stats['filtered']})"
        )
        return out
