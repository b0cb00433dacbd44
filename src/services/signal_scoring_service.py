"""
Signal scoring service: regional relevance classification and item scoring.

Keyword tables live in config/signals.yaml so the classifier logic stays independent
of list content.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Pattern, Tuple

import yaml

from src.models.content import Category
from src.utils.text_utils import norm

DEFAULT_SIGNALS_PATH = os.path.join(
    os.path.dirname(os.path.dirname(__file__)),
    'config',
    'signals.yaml'
)

_CONFIG_CACHE: Dict[str, "SignalConfig"] = {}


def _phrase_pattern(keywords: List[str]) -> Optional[Pattern]:
    """Whole-word/phrase matcher with an optional plural "s"."""
    cleaned = sorted({norm(k) for k in keywords if norm(k)}, key=len, reverse=True)
    if not cleaned:
        return None
    alternation = "|".join(re.escape(k) for k in cleaned)
    return re.compile(rf"\b(?:{alternation})s?\b")


@dataclass(frozen=True)
class KeywordGroup:
    name: str
    weight: int
    pattern: Optional[Pattern]


@dataclass(frozen=True)
class SignalConfig:
    """Parsed, read-only view of signals.yaml."""

    version: int
    region: str
    scoring: Dict[str, int]
    regional_threshold: int
    anchor_boost: int
    high_importance_boost: int
    anchors: Optional[Pattern]
    high_importance: Optional[Pattern]
    groups: Tuple[KeywordGroup, ...]
    newsworthy: Optional[Pattern]
    battle: Pattern
    strict_pattern: Optional[Pattern]
    lenient_categories: FrozenSet[Category] = field(default_factory=frozenset)
    fact_properties: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "SignalConfig":
        regional = raw.get('regional', {}) or {}
        consensus = raw.get('consensus', {}) or {}
        scoring_defaults = {
            'base': 45,
            'regional_signal_cap': 70,
            'newsworthy_boost': 10,
            'candidate_rank_max_boost': 10,
            'candidate_rank_step': 3,
            'old_year_cutoff': 1900,
            'old_year_boost': 3,
            'biographical_penalty': 3,
            'battle_penalty': 10,
        }
        scoring = {**scoring_defaults, **{k: int(v) for k, v in (raw.get('scoring') or {}).items()}}

        groups = tuple(
            KeywordGroup(name=name, weight=int(group.get('weight', 0)), pattern=_phrase_pattern(group.get('keywords', [])))
            for name, group in (regional.get('groups') or {}).items()
        )

        return cls(
            version=int(raw.get('version', 1)),
            region=str(raw.get('region', '')),
            scoring=scoring,
            regional_threshold=int(regional.get('threshold', 20)),
            anchor_boost=int(regional.get('anchor_boost', 8)),
            high_importance_boost=int(regional.get('high_importance_boost', 10)),
            anchors=_phrase_pattern(regional.get('anchors', [])),
            high_importance=_phrase_pattern(regional.get('high_importance', [])),
            groups=groups,
            newsworthy=_phrase_pattern(raw.get('newsworthy', [])),
            battle=re.compile(raw.get('battle_pattern') or r"\b(?:battle|siege|skirmish|crusade)s?\b", re.IGNORECASE),
            strict_pattern=_phrase_pattern(consensus.get('strict_keywords', ['treaty', 'accord', 'agreement'])),
            lenient_categories=frozenset(Category(c) for c in consensus.get('lenient_categories', ['birth', 'death'])),
            fact_properties=tuple(consensus.get('fact_properties', ['P585', 'P570', 'P569', 'P577'])),
        )


class SignalConfigError(Exception):
    pass


def load_signal_config(path: Optional[str] = None) -> SignalConfig:
    """Load and cache signals.yaml; each path is parsed once per process."""
    config_path = path or DEFAULT_SIGNALS_PATH
    cached = _CONFIG_CACHE.get(config_path)
    if cached is not None:
        return cached
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise SignalConfigError(f"Signals file not found at {config_path}") from e
    except yaml.YAMLError as e:
        raise SignalConfigError(f"Error parsing YAML at {config_path}: {e}") from e

    config = SignalConfig.from_dict(raw)
    _CONFIG_CACHE[config_path] = config
    logging.getLogger(__name__).info(
        f"Loaded signal tables v{config.version} ({config.region}) from {config_path}"
    )
    return config


class SignalScoringService:
    """
    Scores curated items and classifies regional relevance.
    """

    def __init__(self, config: Optional[SignalConfig] = None):
        self.config = config or load_signal_config()
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _matches(pattern: Optional[Pattern], normalized: str) -> bool:
        return bool(pattern and pattern.search(normalized))

    def has_anchor(self, text: str) -> bool:
        return self._matches(self.config.anchors, norm(text))

    def regional_signal_score(self, text: str) -> int:
        """
        Weighted keyword-group score for regional relevance.

        Each group contributes its weight once when any of its keywords match; high-importance
        terms and anchor terms add fixed boosts. The total is capped by ``regional_signal_cap``.
        """
        normalized = norm(text)
        score = 0
        for group in self.config.groups:
            if self._matches(group.pattern, normalized):
                score += group.weight
        if self._matches(self.config.high_importance, normalized):
            score += self.config.high_importance_boost
        if self._matches(self.config.anchors, normalized):
            score += self.config.anchor_boost
        return min(score, self.config.scoring['regional_signal_cap'])

    def is_regionally_relevant(self, text: str) -> bool:
        """Anchor match, or a weighted group score above the threshold."""
        if self.has_anchor(text):
            return True
        group_score = 0
        normalized = norm(text)
        for group in self.config.groups:
            if self._matches(group.pattern, normalized):
                group_score += group.weight
        return group_score > self.config.regional_threshold

    def is_newsworthy(self, text: str) -> bool:
        return self._matches(self.config.newsworthy, norm(text))

    def is_battle(self, text: str) -> bool:
        return bool(self.config.battle.search(text or ""))

    def is_strict(self, *texts: str) -> bool:
        """Treaty-like records get no lenient fallback in the date consensus gate."""
        return any(self._matches(self.config.strict_pattern, norm(t)) for t in texts if t)

    def candidate_rank_boost(self, rank: Optional[int]) -> int:
        if not rank or rank < 1:
            return 0
        scoring = self.config.scoring
        return max(0, scoring['candidate_rank_max_boost'] - (rank - 1) // scoring['candidate_rank_step'])

    def score(
        self,
        title: str,
        summary: str,
        year: str,
        category: Category,
        is_regionally_relevant: bool,
        candidate_rank: Optional[int] = None,
    ) -> int:
        """
        Relevance score in [0, 100].

        Args:
            title: Raw (not rewritten) title
            summary: Excerpt text used for matching
            year: Resolved year as a string, possibly empty or signed
            category: Feed category
            is_regionally_relevant: Result of the regional classifier for this item
            candidate_rank: Provider rank when the item was endorsed by the candidate provider
        """
        scoring = self.config.scoring
        blob = f"{title} {summary or ''}"

        total = scoring['base']
        total += self.regional_signal_score(blob)
        if self.is_newsworthy(blob):
            total += scoring['newsworthy_boost']
        total += self.candidate_rank_boost(candidate_rank)

        year_num = _parse_year(year)
        if year_num and year_num < scoring['old_year_cutoff']:
            total += scoring['old_year_boost']

        if category.is_biographical:
            total -= scoring['biographical_penalty']

        if self.is_battle(blob) and not is_regionally_relevant:
            total -= scoring['battle_penalty']

        return max(0, min(100, int(total)))


def _parse_year(year: Optional[str]) -> Optional[int]:
    if year is None:
        return None
    text = str(year).strip()
    if re.fullmatch(r"-?\d+", text):
        return int(text)
    return None
