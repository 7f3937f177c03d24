"""Ordinal-day arithmetic for Gregorian, fixed 360-day, and custom calendars."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Final

from story_timeline.core.temporal_schema import CalendarConfig, MonthConfig, default_months

EPOCH_DATE: Final[date] = date(1970, 1, 1)
INVALID_DATE_LABEL: Final[str] = "Invalid Date"
GREGORIAN_NOMINAL_YEAR_DAYS: Final[int] = 365
_FALLBACK_MONTH: Final[MonthConfig] = MonthConfig(name="Month 1", days=30)
_FIXED360_MONTHS: Final[tuple[MonthConfig, ...]] = tuple(default_months())
_GREGORIAN_MONTHS: Final[tuple[str, ...]] = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)
_SYSTEM_NAMES: Final[dict[str, str]] = {
    "gregorian": "Gregorian (Standard)",
    "fixed360": "Fixed 360 (12x30)",
    "custom": "Custom",
}
_DISPLAY_PATTERN = re.compile(
    r"^(?P<month>.+?)\s+(?P<day>\d+),\s*Year\s+(?P<year>-?\d+)$", re.IGNORECASE
)
_GREGORIAN_DISPLAY_PATTERN = re.compile(
    r"^(?P<month>[A-Za-z]+)\s+(?P<day>\d+),\s*(?P<year>-?\d+)$"
)


class CalendarParseError(ValueError):
    """Raised when display text does not name a date in the active calendar."""


@dataclass(frozen=True)
class CalendarDate:
    """Calendar position with zero-based month and day indexes."""

    year: int
    month: int
    day: int
    month_name: str


def parse_instant(raw: str | None) -> datetime | None:
    """Parse an ISO-like instant to an aware UTC datetime, or None."""
    if raw is None:
        return None
    value = raw.strip()
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    try:
        return parsed.astimezone(UTC)
    except OverflowError:
        return None


def ordinal_from_instant(raw: str | None) -> int | None:
    """Whole days between the 1970-01-01 epoch and an ISO instant."""
    parsed = parse_instant(raw)
    if parsed is None:
        return None
    return (parsed.date() - EPOCH_DATE).days


def instant_from_ordinal(ordinal: int) -> str:
    """Midnight UTC ISO instant for an ordinal day."""
    moment = datetime(1970, 1, 1, tzinfo=UTC) + timedelta(days=ordinal)
    return moment.isoformat()


class CalendarSystem:
    """Converts ordinal days to display strings under one calendar config."""

    def __init__(self, config: CalendarConfig | None = None) -> None:
        self._config = config or CalendarConfig()

    @property
    def config(self) -> CalendarConfig:
        return self._config

    @property
    def system_name(self) -> str:
        return _SYSTEM_NAMES.get(self._config.system, "Unknown")

    def months(self) -> tuple[MonthConfig, ...]:
        """Month layout for non-Gregorian systems; never empty."""
        if self._config.system == "fixed360":
            return _FIXED360_MONTHS
        if not self._config.months:
            return (_FALLBACK_MONTH,)
        return tuple(self._config.months)

    def days_in_year(self) -> int:
        """Year length in days; nominal 365 for Gregorian."""
        if self._config.system == "gregorian":
            return GREGORIAN_NOMINAL_YEAR_DAYS
        return sum(month.days for month in self.months())

    def to_calendar_date(self, ordinal: int) -> CalendarDate:
        if self._config.system == "gregorian":
            moment = EPOCH_DATE + timedelta(days=ordinal)
            return CalendarDate(
                year=moment.year,
                month=moment.month - 1,
                day=moment.day - 1,
                month_name=_GREGORIAN_MONTHS[moment.month - 1],
            )
        months = self.months()
        year_offset, day_of_year = divmod(ordinal, self.days_in_year())
        remaining = day_of_year
        for index, month in enumerate(months):
            if remaining < month.days:
                return CalendarDate(
                    year=self._config.epoch_year + year_offset,
                    month=index,
                    day=remaining,
                    month_name=month.name,
                )
            remaining -= month.days
        # divmod keeps day_of_year below the year length, so the loop always returns.
        raise AssertionError("day_of_year exceeded calendar year length")

    def to_display(self, ordinal: int) -> str:
        position = self.to_calendar_date(ordinal)
        if self._config.system == "gregorian":
            return f"{position.month_name} {position.day + 1}, {position.year}"
        return f"{position.month_name} {position.day + 1}, Year {position.year}"

    def year_label(self, ordinal: int) -> str:
        position = self.to_calendar_date(ordinal)
        if self._config.system == "gregorian":
            return str(position.year)
        return f"Year {position.year}"

    def format_instant(self, raw: str | None) -> str:
        """Display an ISO instant in the active calendar; never raises."""
        ordinal = ordinal_from_instant(raw)
        if ordinal is None:
            return INVALID_DATE_LABEL
        try:
            return self.to_display(ordinal)
        except (OverflowError, ValueError):
            return INVALID_DATE_LABEL

    def to_ordinal(self, position: CalendarDate) -> int:
        """Inverse of ``to_calendar_date`` for zero-based positions."""
        if self._config.system == "gregorian":
            try:
                target = date(position.year, position.month + 1, position.day + 1)
            except ValueError as exc:
                raise CalendarParseError(str(exc)) from exc
            return (target - EPOCH_DATE).days
        months = self.months()
        if not 0 <= position.month < len(months):
            raise CalendarParseError(f"Month index {position.month} is out of range.")
        if not 0 <= position.day < months[position.month].days:
            raise CalendarParseError(
                f"Day {position.day + 1} is out of range for {months[position.month].name}."
            )
        before = sum(month.days for month in months[: position.month])
        years = position.year - self._config.epoch_year
        return years * self.days_in_year() + before + position.day

    def from_display(self, text: str) -> int:
        """Parse display text (or an ISO date under Gregorian) into an ordinal."""
        value = text.strip()
        if self._config.system == "gregorian":
            ordinal = ordinal_from_instant(value)
            if ordinal is not None:
                return ordinal
            match = _GREGORIAN_DISPLAY_PATTERN.match(value)
            if match is None:
                raise CalendarParseError(f"Unrecognized Gregorian date: {text!r}.")
            month_name = match.group("month").lower()
            names = [name.lower() for name in _GREGORIAN_MONTHS]
            if month_name not in names:
                raise CalendarParseError(f"Unknown month name in {text!r}.")
            month_index = names.index(month_name)
            return self.to_ordinal(
                CalendarDate(
                    year=int(match.group("year")),
                    month=month_index,
                    day=int(match.group("day")) - 1,
                    month_name=_GREGORIAN_MONTHS[month_index],
                )
            )
        match = _DISPLAY_PATTERN.match(value)
        if match is None:
            raise CalendarParseError(f"Unrecognized calendar date: {text!r}.")
        month_name = match.group("month").strip().lower()
        for index, month in enumerate(self.months()):
            if month.name.lower() == month_name:
                return self.to_ordinal(
                    CalendarDate(
                        year=int(match.group("year")),
                        month=index,
                        day=int(match.group("day")) - 1,
                        month_name=month.name,
                    )
                )
        raise CalendarParseError(f"Unknown month name in {text!r}.")
