from __future__ import annotations

from datetime import UTC, datetime

from story_timeline.core.duration import (
    DAY_MS,
    HOUR_MS,
    MINUTE_MS,
    MONTH_MS,
    WEEK_MS,
    YEAR_MS,
    format_duration,
    parse_abstract_timeframe,
    parse_duration,
)


def test_parse_duration_reads_leading_number_and_unit_keyword() -> None:
    assert parse_duration("2 hours") == 2 * HOUR_MS
    assert parse_duration("3 days") == 3 * DAY_MS
    assert parse_duration("1.5 hours") == 5_400_000
    assert parse_duration("45 min") == 45 * MINUTE_MS
    assert parse_duration("2 Weeks") == 2 * WEEK_MS
    assert parse_duration("2 months") == 2 * MONTH_MS
    assert parse_duration("10 years") == 10 * YEAR_MS


def test_parse_duration_defaults_amount_to_one_without_number() -> None:
    assert parse_duration("a week") == WEEK_MS
    assert parse_duration("hour") == HOUR_MS


def test_parse_duration_never_raises_on_bad_input() -> None:
    assert parse_duration(None) == 0
    assert parse_duration("") == 0
    assert parse_duration("   ") == 0
    assert parse_duration("soon") == 0
    assert parse_duration("-3 days") == 0
    assert parse_duration("1" * 400 + " days") == 0
    assert parse_duration("9" * 320 + " years") == 0


def test_format_duration_uses_largest_exact_unit() -> None:
    assert format_duration(7_776_000_000) == "3 months"
    assert format_duration(HOUR_MS) == "1 hour"
    assert format_duration(36 * HOUR_MS) == "36 hours"
    assert format_duration(14 * DAY_MS) == "2 weeks"
    assert format_duration(YEAR_MS) == "1 year"
    assert format_duration(90 * MINUTE_MS) == "90 minutes"


def test_format_duration_handles_empty_and_fractional_values() -> None:
    assert format_duration(None) == ""
    assert format_duration(0) == ""
    assert format_duration(-HOUR_MS) == ""
    assert format_duration(36 * HOUR_MS + 30_000) == "1.5 days"
    assert format_duration(90_000) == "1 minute"


def test_three_months_round_trip_matches_published_example() -> None:
    assert parse_duration("3 months") == 7_776_000_000
    assert parse_duration(format_duration(7_776_000_000)) == 7_776_000_000


def test_formatted_unit_multiples_parse_back_to_same_value() -> None:
    for ms in (MINUTE_MS, 5 * HOUR_MS, 3 * DAY_MS, 2 * WEEK_MS, 4 * MONTH_MS, 2 * YEAR_MS):
        assert parse_duration(format_duration(ms)) == ms


def test_parse_abstract_timeframe_anchors_labels_on_synthetic_axis() -> None:
    assert parse_abstract_timeframe("Day 3") == datetime(2000, 1, 3, tzinfo=UTC)
    assert parse_abstract_timeframe("week 2") == datetime(2000, 1, 8, tzinfo=UTC)
    assert parse_abstract_timeframe("Month 14") == datetime(2001, 2, 1, tzinfo=UTC)
    assert parse_abstract_timeframe("The Year 5 reckoning") == datetime(2004, 1, 1, tzinfo=UTC)
    assert parse_abstract_timeframe("Day 0") == datetime(2000, 1, 1, tzinfo=UTC)


def test_parse_abstract_timeframe_returns_none_for_unplaceable_labels() -> None:
    assert parse_abstract_timeframe(None) is None
    assert parse_abstract_timeframe("Prologue") is None
    assert parse_abstract_timeframe("Year 99999999") is None
