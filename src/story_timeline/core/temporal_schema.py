"""Canonical temporal schema shared by the consistency and scheduling stages."""

from __future__ import annotations

import re
from typing import Final, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

CalendarSystemName = Literal["gregorian", "fixed360", "custom"]
ParadoxType = Literal["simultaneous_presence", "causality_violation", "orphan_gap"]
TimelineItemClass = Literal["warning", "projected", "normal"]

DEFAULT_PLOTLINE_ID: Final[str] = "main"
DEFAULT_PLOTLINE_NAME: Final[str] = "Main Plot"
DEFAULT_PLOTLINE_COLOR: Final[str] = "#3b82f6"
PLOTLINE_COLORS: Final[tuple[str, ...]] = (
    "#3b82f6",
    "#10b981",
    "#f59e0b",
    "#ef4444",
    "#8b5cf6",
    "#ec4899",
    "#06b6d4",
    "#84cc16",
    "#f97316",
    "#6366f1",
)
TEMPORAL_FIELDS: Final[tuple[str, ...]] = (
    "chronological_date",
    "abstract_timeframe",
    "duration",
    "plotline_tag",
    "depends_on",
    "pov_character_id",
)
_COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{3,8}$")


class SchemaModel(BaseModel):
    """Strict model configuration for temporal artifacts."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class MonthConfig(SchemaModel):
    """One named month of a custom calendar."""

    name: str = Field(min_length=1, max_length=120)
    days: int = Field(ge=1, le=1000)


def default_months() -> list[MonthConfig]:
    """Twelve 30-day months, the preset for fixed and fresh custom calendars."""
    return [MonthConfig(name=f"Month {index}", days=30) for index in range(1, 13)]


class CalendarConfig(SchemaModel):
    """Active calendar: system, epoch year label, and custom month layout."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True, frozen=True)

    system: CalendarSystemName = "gregorian"
    epoch_year: int = Field(default=1, ge=-1_000_000, le=1_000_000)
    months: list[MonthConfig] = Field(default_factory=default_months)


class Plotline(SchemaModel):
    """Named, colored lane that groups scenes on the timeline."""

    id: str = Field(min_length=1, max_length=140)
    name: str = Field(min_length=1, max_length=200)
    color: str = DEFAULT_PLOTLINE_COLOR

    @field_validator("color")
    @classmethod
    def _validate_color(cls, value: str) -> str:
        if not _COLOR_PATTERN.match(value):
            raise ValueError("color must be a hex color like #3b82f6.")
        return value.lower()


def default_plotline() -> Plotline:
    return Plotline(
        id=DEFAULT_PLOTLINE_ID, name=DEFAULT_PLOTLINE_NAME, color=DEFAULT_PLOTLINE_COLOR
    )


class TemporalRecord(SchemaModel):
    """Projection of one scene onto the fields story-time ordering cares about."""

    id: str = Field(min_length=1, max_length=140)
    title: str = ""
    manuscript_index: int = Field(default=0, ge=0)
    chronological_date: str | None = None
    abstract_timeframe: str | None = None
    duration_ms: int | None = Field(default=None, ge=0)
    duration_projected: bool = False
    plotline_tag: str | None = None
    depends_on: str | None = None
    pov_character_id: str | None = None

    @field_validator(
        "chronological_date",
        "abstract_timeframe",
        "plotline_tag",
        "depends_on",
        "pov_character_id",
    )
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value or None

    @property
    def time_key(self) -> str:
        """Ordering key: absolute date first, abstract label as fallback."""
        return self.chronological_date or self.abstract_timeframe or ""

    @property
    def is_assigned(self) -> bool:
        return bool(self.chronological_date or self.abstract_timeframe)


class ParadoxWarning(SchemaModel):
    """Derived flag that temporal facts on two or more scenes disagree."""

    type: ParadoxType
    scene_ids: list[str] = Field(min_length=1)
    message: str = Field(min_length=1)


class NarrativeConnector(SchemaModel):
    """Reading-order pair of assigned scenes, flagged when story time runs backwards."""

    from_id: str
    to_id: str
    is_flashback: bool = False


class TemporalFieldUpdate(SchemaModel):
    """Partial temporal update; only explicitly set fields are written."""

    chronological_date: str | None = None
    abstract_timeframe: str | None = None
    duration: str | None = None
    plotline_tag: str | None = None
    depends_on: str | None = None
    pov_character_id: str | None = None

    @field_validator(*TEMPORAL_FIELDS)
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value or None

    def changes(self) -> dict[str, str | None]:
        """Return the explicitly provided fields in canonical order."""
        return {
            name: getattr(self, name) for name in TEMPORAL_FIELDS if name in self.model_fields_set
        }


class TimelineItem(SchemaModel):
    """Render-ready interval for one assigned scene."""

    id: str
    title: str
    lane_id: str
    start_utc: str
    end_utc: str
    css_class: TimelineItemClass
    tooltip: str
