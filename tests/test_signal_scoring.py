from __future__ import annotations

from src.models.content import Category
from src.services.signal_scoring_service import SignalConfig, SignalScoringService, load_signal_config


def test_signal_tables_load_once_and_are_versioned():
    first = load_signal_config()
    assert first is load_signal_config()
    assert first.version >= 1
    assert first.fact_properties[0] == "P585"
    assert first.lenient_categories == frozenset({Category.BIRTH, Category.DEATH})


def test_regional_classifier_anchor_or_group_threshold(scoring):
    assert scoring.is_regionally_relevant("ISRO launches Chandrayaan-3")
    assert scoring.is_regionally_relevant("The parliament passes the union budget")
    assert not scoring.is_regionally_relevant("The parliament of Norway convenes")
    assert not scoring.is_regionally_relevant("Apollo 11 lands on the Moon")


def test_score_independence_of_india(scoring):
    score = scoring.score(
        title="India",
        summary="India gains independence from British rule.",
        year="1947",
        category=Category.EVENT,
        is_regionally_relevant=True,
    )
    # base 45 + anchor 8 + newsworthy 10
    assert score == 63


def test_score_penalizes_non_regional_battles_and_biographies(scoring):
    battle = scoring.score("Battle of Hastings", "Normans defeat the English army", "1066", Category.EVENT, False)
    assert battle == 45 + 3 - 10
    birth = scoring.score("Some Poet", "English poet", "1950", Category.BIRTH, False)
    assert birth == 42


def test_score_is_clamped_to_100(scoring):
    summary = (
        "parliament supreme court union budget gst isro satellite indian army "
        "education cricket chandrayaan"
    )
    assert scoring.score("ISRO Chandrayaan", summary, "1800", Category.EVENT, True, candidate_rank=1) == 100


def test_candidate_rank_boost_steps_down(scoring):
    assert scoring.candidate_rank_boost(None) == 0
    assert scoring.candidate_rank_boost(1) == 10
    assert scoring.candidate_rank_boost(3) == 10
    assert scoring.candidate_rank_boost(4) == 9
    assert scoring.candidate_rank_boost(28) == 1
    assert scoring.candidate_rank_boost(36) == 0


def test_strict_keywords_match_whole_words(scoring):
    assert scoring.is_strict("Treaty of Versailles")
    assert scoring.is_strict("", "Trade agreements signed in Geneva")
    assert not scoring.is_strict("Accordion festival")


def test_custom_tables_change_behaviour_without_code():
    config = SignalConfig.from_dict({
        "version": 9,
        "region": "test",
        "regional": {"threshold": 5, "anchors": ["atlantis"], "groups": {"sea": {"weight": 6, "keywords": ["harbour"]}}},
        "consensus": {"strict_keywords": ["charter"], "lenient_categories": ["birth"]},
    })
    service = SignalScoringService(config)
    assert service.is_regionally_relevant("A new harbour opens")
    assert service.is_regionally_relevant("Atlantis sinks")
    assert service.is_strict("Atlantic Charter")
    assert config.lenient_categories == frozenset({Category.BIRTH})
