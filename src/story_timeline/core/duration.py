"""Canonical millisecond durations parsed from free-form story-time text."""

from __future__ import annotations

import math
import re
from datetime import UTC, datetime, timedelta
from typing import Final

MINUTE_MS: Final[int] = 60 * 1000
HOUR_MS: Final[int] = 60 * MINUTE_MS
DAY_MS: Final[int] = 24 * HOUR_MS
WEEK_MS: Final[int] = 7 * DAY_MS
MONTH_MS: Final[int] = 30 * DAY_MS
YEAR_MS: Final[int] = 365 * DAY_MS

# Keyword priority matters: "min" must win before "month" is considered.
_PARSE_UNITS: Final[tuple[tuple[tuple[str, ...], int], ...]] = (
    (("minute", "min"), MINUTE_MS),
    (("hour",), HOUR_MS),
    (("week",), WEEK_MS),
    (("month",), MONTH_MS),
    (("year",), YEAR_MS),
    (("day",), DAY_MS),
)
_FORMAT_UNITS: Final[tuple[tuple[str, int], ...]] = (
    ("year", YEAR_MS),
    ("month", MONTH_MS),
    ("week", WEEK_MS),
    ("day", DAY_MS),
    ("hour", HOUR_MS),
    ("minute", MINUTE_MS),
)
_LEADING_NUMBER = re.compile(r"^[-+]?(?:\d+(?:\.\d*)?|\.\d+)")
_ABSTRACT_TIMEFRAME = re.compile(r"(day|week|month|year)\s*(\d+)", re.IGNORECASE)
_ABSTRACT_ANCHOR = datetime(2000, 1, 1, tzinfo=UTC)


def parse_duration(text: str | None) -> int:
    """Parse human duration text like "3 days" into milliseconds.

    Never raises. Missing numbers count as 1, unknown units yield 0.
    """
    if not text:
        return 0
    lowered = text.strip().lower()
    if not lowered:
        return 0
    amount = 1.0
    match = _LEADING_NUMBER.match(lowered)
    if match:
        try:
            amount = float(match.group(0))
        except ValueError:
            amount = 1.0
    amount = max(0.0, amount)
    for keywords, multiplier in _PARSE_UNITS:
        if any(keyword in lowered for keyword in keywords):
            total = amount * multiplier
            # Overlong digit runs parse to inf.
            return int(round(total)) if math.isfinite(total) else 0
    return 0


def _unit_label(value: int, unit: str) -> str:
    return f"{value} {unit}" if value == 1 else f"{value} {unit}s"


def format_duration(ms: int | None) -> str:
    """Format milliseconds using the largest unit that divides them exactly."""
    if not ms or ms <= 0:
        return ""
    for unit, size in _FORMAT_UNITS:
        if ms >= size and ms % size == 0:
            return _unit_label(ms // size, unit)
    days = ms / DAY_MS
    if days >= 1:
        rounded = round(days, 2)
        text = str(int(rounded)) if rounded.is_integer() else str(rounded)
        return f"{text} days"
    return _unit_label(ms // MINUTE_MS, "minute")


def parse_abstract_timeframe(label: str | None) -> datetime | None:
    """Anchor labels like "Day 3" or "Year 2" onto a synthetic 2000-01-01 axis."""
    if not label:
        return None
    match = _ABSTRACT_TIMEFRAME.search(label)
    if match is None:
        return None
    unit = match.group(1).lower()
    offset = max(0, int(match.group(2)) - 1)
    try:
        if unit == "day":
            return _ABSTRACT_ANCHOR + timedelta(days=offset)
        if unit == "week":
            return _ABSTRACT_ANCHOR + timedelta(days=offset * 7)
        if unit == "month":
            year_shift, month_index = divmod(offset, 12)
            return _ABSTRACT_ANCHOR.replace(year=2000 + year_shift, month=month_index + 1)
        return _ABSTRACT_ANCHOR.replace(year=2000 + offset)
    except (OverflowError, ValueError):
        return None
