from datetime import date, datetime, time

import pytest

from config import SchedulingRules
from time_policy import (
    candidate_start_hours,
    describe_rules,
    eligible_window,
    fits_window,
    is_blackout,
    parse_hhmm,
    saturday_parity,
    weekday_index,
)


def test_sundays_are_always_blacked_out():
    for day in (date(2026, 10, 4), date(2026, 10, 11), date(2026, 10, 18), date(2026, 10, 25)):
        assert is_blackout(day)
        assert eligible_window(day, SchedulingRules()) is None


@pytest.mark.parametrize("day, blocked", [
    (date(2026, 10, 3), True),    # ceil(3/7)=1, odd
    (date(2026, 10, 10), False),  # ceil(10/7)=2, even
    (date(2026, 10, 17), True),   # 3
    (date(2026, 10, 24), False),  # 4
    (date(2026, 10, 31), True),   # 5
    (date(2026, 11, 14), False),  # 2
])
def test_saturday_alternation_follows_week_of_month_parity(day, blocked):
    assert day.weekday() == 5
    assert saturday_parity(day) == (1 if blocked else 0)
    assert is_blackout(day) is blocked


def test_weekday_window_is_evening_only(rules):
    start, end = eligible_window(date(2026, 10, 20), rules)
    assert start == datetime(2026, 10, 20, 18, 0)
    assert end == datetime(2026, 10, 20, 22, 0)


def test_open_saturday_window(rules):
    start, end = eligible_window(date(2026, 10, 24), rules)
    assert start == datetime(2026, 10, 24, 9, 0)
    assert end == datetime(2026, 10, 24, 21, 0)


def test_window_end_at_midnight():
    rules = SchedulingRules(weekday_start_hour=20, weekday_end_hour=24)
    _, end = eligible_window(date(2026, 10, 20), rules)
    assert end == datetime(2026, 10, 21, 0, 0)


def test_candidate_hours(rules):
    assert candidate_start_hours(date(2026, 10, 20), rules) == [18, 19, 20]
    assert candidate_start_hours(date(2026, 10, 24), rules) == [10, 14, 18]
    assert candidate_start_hours(date(2026, 10, 24), rules, saturday_bands=[9, 13, 17]) == [9, 13, 17]
    assert candidate_start_hours(date(2026, 10, 25), rules) == []


def test_fits_window(rules):
    assert fits_window(datetime(2026, 10, 20, 21, 0), datetime(2026, 10, 20, 22, 0), rules)
    assert not fits_window(datetime(2026, 10, 20, 21, 30), datetime(2026, 10, 20, 22, 30), rules)
    assert not fits_window(datetime(2026, 10, 20, 17, 0), datetime(2026, 10, 20, 18, 0), rules)
    assert not fits_window(datetime(2026, 10, 25, 19, 0), datetime(2026, 10, 25, 20, 0), rules)


def test_parse_hhmm_and_weekday_index():
    assert parse_hhmm("09:30") == time(9, 30)
    assert parse_hhmm(" 18:05 ") == time(18, 5)
    for bad in (None, "", "9am", "25:00", "12:60"):
        with pytest.raises(ValueError):
            parse_hhmm(bad)
    assert weekday_index("monday") == 0
    assert weekday_index("Sunday") == 6
    assert weekday_index("Funday") is None
    assert weekday_index(None) is None


def test_describe_rules_mentions_every_boundary(rules):
    text = describe_rules(rules)
    assert "18:00" in text and "22:00" in text
    assert "Sundays" in text
    assert "ceil(day_of_month / 7)" in text
    assert "09:00" in text and "21:00" in text
