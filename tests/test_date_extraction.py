from __future__ import annotations

import pytest

from src.utils.date_extraction import (
    extract_date_from_article,
    iso_to_display,
    month_day_of,
    parse_wikidata_time,
    readable_month_day,
    to_iso,
)


def test_to_iso_validates_calendar_dates():
    assert to_iso(2024, 2, 29) == "2024-02-29"
    assert to_iso(2023, 2, 29) is None
    assert to_iso(0, 1, 1) is None
    assert to_iso(476, 9, 4) == "0476-09-04"


def test_month_day_helpers():
    assert month_day_of("1947-08-15") == ("08", "15")
    assert month_day_of(None) is None
    assert readable_month_day(8, 15) == "August 15"
    assert iso_to_display("1969-07-20") == "July 20, 1969"


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Date of independence: 15 August 1947 (from the United Kingdom)", "1947-08-15"),
        ("Barack Obama was born 4 August 1961 in Honolulu", "1961-08-04"),
        ("Signed\n28 June 1919 at the Hall of Mirrors", "1919-06-28"),
        ("Joseph Stalin died on March 5, 1953 at his dacha", "1953-03-05"),
    ],
)
def test_extract_date_from_article_patterns(text, expected):
    found = extract_date_from_article(text)
    assert found is not None
    assert found[0] == expected


def test_extract_date_from_article_rejects_impossible_dates():
    assert extract_date_from_article("He was born 31 February 1990.") is None
    assert extract_date_from_article("") is None
    assert extract_date_from_article("No dates anywhere in this text.") is None


def test_parse_wikidata_time_requires_day_precision():
    assert parse_wikidata_time({"time": "+1947-08-15T00:00:00Z", "precision": 11}) == "1947-08-15"
    assert parse_wikidata_time({"time": "+1947-00-00T00:00:00Z", "precision": 9}) is None
    assert parse_wikidata_time(None) is None


def test_parse_wikidata_time_keeps_bce_sign():
    assert parse_wikidata_time({"time": "-0044-03-15T00:00:00Z", "precision": 11}) == "-0044-03-15"
    assert parse_wikidata_time({"time": "-0044-02-30T00:00:00Z", "precision": 11}) is None
    assert parse_wikidata_time({"time": "-0044-03-00T00:00:00Z", "precision": 10}) is None
    assert month_day_of("-0044-03-15") == ("03", "15")
