"""Typed contracts shared by API handlers and Python interfaces."""

from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from story_timeline.core.temporal_schema import (
    CalendarConfig,
    NarrativeConnector,
    ParadoxWarning,
    Plotline,
    TemporalFieldUpdate,
    TemporalRecord,
    TimelineItem,
)
from story_timeline.domain.models import SceneNode

COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{3,8}$")


class ContractModel(BaseModel):
    """Base model config used by all API contracts."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


def _validate_color(value: str | None) -> str | None:
    if value is None:
        return None
    if not COLOR_PATTERN.match(value):
        raise ValueError("color must be a hex color like #3b82f6.")
    return value.lower()


class ManuscriptScene(ContractModel):
    """Scene node as exchanged in manuscript JSON files and import requests."""

    id: str = Field(min_length=1, max_length=140)
    title: str = Field(default="", max_length=500)
    word_count: int = Field(default=0, ge=0)
    chronological_date: str | None = None
    abstract_timeframe: str | None = None
    duration: str | None = Field(default=None, max_length=120)
    plotline_tag: str | None = None
    depends_on: str | None = None
    pov_character_id: str | None = None
    children: list[ManuscriptScene] = Field(default_factory=list)

    def to_scene_node(self) -> SceneNode:
        return SceneNode.from_mapping(self.model_dump())

    @classmethod
    def from_scene_node(cls, node: SceneNode) -> ManuscriptScene:
        return cls(
            id=node.id,
            title=node.title,
            word_count=node.word_count,
            chronological_date=node.chronological_date,
            abstract_timeframe=node.abstract_timeframe,
            duration=node.duration,
            plotline_tag=node.plotline_tag,
            depends_on=node.depends_on,
            pov_character_id=node.pov_character_id,
            children=[cls.from_scene_node(child) for child in node.children],
        )


class ManuscriptDocument(ContractModel):
    """Whole-project manuscript: scene tree plus optional plotlines and calendar."""

    scenes: list[ManuscriptScene] = Field(default_factory=list)
    plotlines: list[Plotline] = Field(default_factory=list)
    calendar: CalendarConfig | None = None

    @model_validator(mode="after")
    def _validate_unique_ids(self) -> ManuscriptDocument:
        seen: set[str] = set()
        pending = list(self.scenes)
        while pending:
            scene = pending.pop()
            if scene.id in seen:
                raise ValueError(f"Duplicate scene id: {scene.id}")
            seen.add(scene.id)
            pending.extend(scene.children)
        plotline_ids = [plotline.id for plotline in self.plotlines]
        if len(plotline_ids) != len(set(plotline_ids)):
            raise ValueError("Plotline ids must be unique.")
        return self

    def scene_nodes(self) -> list[SceneNode]:
        return [scene.to_scene_node() for scene in self.scenes]


class ManuscriptImportResponse(ContractModel):
    scene_count: int
    plotline_count: int
    dependency_issues: list[str] = Field(default_factory=list)


class TemporalFieldsUpdateRequest(ContractModel):
    """Explicit temporal edits; omitted fields are left untouched, null clears."""

    chronological_date: str | None = None
    abstract_timeframe: str | None = None
    duration: str | None = Field(default=None, max_length=120)
    plotline_tag: str | None = None
    depends_on: str | None = None
    pov_character_id: str | None = None

    def to_update(self) -> TemporalFieldUpdate:
        return TemporalFieldUpdate(
            **{name: getattr(self, name) for name in self.model_fields_set}
        )


class SchedulingMoveRequest(ContractModel):
    """Drag or resize gesture on the timeline surface."""

    scene_id: str = Field(min_length=1, max_length=140)
    start: datetime
    end: datetime | None = None
    lane_id: str | None = None


class SchedulingDropRequest(ContractModel):
    """Holding-pen scene dropped at an instant, optionally onto a lane."""

    scene_id: str = Field(min_length=1, max_length=140)
    at: datetime
    lane_id: str | None = None


class ReorderPreviewEntryResponse(ContractModel):
    position: int
    scene_id: str
    title: str
    time_key: str


class ReorderPlanResponse(ContractModel):
    changed: bool
    applied: bool = False
    current_ids: list[str]
    ordered_ids: list[str]
    preview: list[ReorderPreviewEntryResponse]


class TimelineViewResponse(ContractModel):
    """Everything the timeline surface needs to render one project."""

    assigned: list[TemporalRecord]
    unassigned: list[TemporalRecord]
    warnings: list[ParadoxWarning]
    connectors: list[NarrativeConnector]
    items: list[TimelineItem]
    plotlines: list[Plotline]
    write_errors: dict[str, str] = Field(default_factory=dict)
    records_needing_review: list[str] = Field(default_factory=list)


class CalendarResponse(ContractModel):
    config: CalendarConfig
    system_name: str
    days_in_year: int
    records_needing_review: list[str] = Field(default_factory=list)


class CalendarFormatResponse(ContractModel):
    value: str
    display: str


class CalendarParseResponse(ContractModel):
    display: str
    ordinal: int
    value: str


class CalendarReviewRequest(ContractModel):
    scene_ids: list[str] = Field(min_length=1)


class PlotlineCreateRequest(ContractModel):
    name: str = Field(min_length=1, max_length=200)
    color: str | None = None

    @field_validator("color")
    @classmethod
    def _check_color(cls, value: str | None) -> str | None:
        return _validate_color(value)


class PlotlineUpdateRequest(ContractModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    color: str | None = None

    @field_validator("color")
    @classmethod
    def _check_color(cls, value: str | None) -> str | None:
        return _validate_color(value)


class PlotlineRemovalResponse(ContractModel):
    plotline_id: str
    reset_scene_ids: list[str]


class StatusEventResponse(ContractModel):
    sequence: int
    created_at_utc: str
    scope: str
    code: str
    severity: str
    message: str
    scene_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SceneWriteErrorResponse(ContractModel):
    scene_id: str
    code: str
    message: str
    failed_at_utc: str
    failure_count: int = Field(ge=1)


def save_manuscript_json(path: Path, document: ManuscriptDocument) -> None:
    """Persist a manuscript as readable JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(document.model_dump_json(indent=2, exclude_none=True) + "\n", encoding="utf-8")


def load_manuscript_json(path: Path) -> ManuscriptDocument:
    """Load and validate manuscript JSON from disk."""
    return ManuscriptDocument.model_validate_json(path.read_text(encoding="utf-8"))
