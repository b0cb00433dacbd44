from __future__ import annotations

from datetime import date

import pytest

from src.pipeline.date_normalizer import InvalidDateFormat, normalize_limit, normalize_request
from src.utils.error_monitoring import InvalidInputError

TODAY = date(2024, 8, 15)


def test_explicit_date_is_resolved():
    request = normalize_request("1969-07-20", 20, today=TODAY)
    assert request.date_iso == "1969-07-20"
    assert (request.mm, request.dd) == ("07", "20")
    assert request.readable_date == "July 20"
    assert request.limit == 20


@pytest.mark.parametrize("value", [None, "", "   ", "today", "TODAY"])
def test_missing_date_means_today(value):
    request = normalize_request(value, today=TODAY)
    assert request.date_iso == "2024-08-15"
    assert request.readable_date == "August 15"
    assert request.limit == 25


def test_leap_day_is_accepted():
    assert normalize_request("2024-02-29", today=TODAY).readable_date == "February 29"


@pytest.mark.parametrize("value", ["15-08-2024", "2024/08/15", "2024-8-15", "2023-02-29", "2024-13-01", "yesterday"])
def test_malformed_dates_are_rejected(value):
    with pytest.raises(InvalidDateFormat):
        normalize_request(value, today=TODAY)


@pytest.mark.parametrize("limit, expected", [(None, 25), ("", 25), (5, 10), (10, 10), (22, 22), (30, 30), (99, 30), ("12", 12)])
def test_limit_is_clamped(limit, expected):
    assert normalize_limit(limit) == expected


@pytest.mark.parametrize("limit", ["twenty", True, [5], {"n": 5}])
def test_non_integer_limits_are_invalid(limit):
    with pytest.raises(InvalidInputError):
        normalize_limit(limit)
