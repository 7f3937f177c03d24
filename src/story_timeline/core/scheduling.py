"""Translate timeline gestures into temporal updates and derive timeline read models."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from story_timeline.core.calendar_system import parse_instant
from story_timeline.core.duration import MINUTE_MS, format_duration, parse_abstract_timeframe
from story_timeline.core.temporal_projection import PROJECTED_DURATION_MS
from story_timeline.core.temporal_schema import (
    DEFAULT_PLOTLINE_ID,
    NarrativeConnector,
    ParadoxWarning,
    Plotline,
    TemporalFieldUpdate,
    TemporalRecord,
    TimelineItem,
)

_LATEST_INSTANT = datetime.max.replace(tzinfo=UTC)


@dataclass(frozen=True)
class DropPlan:
    """Fields to persist for a drop, plus whether the duration is only projected."""

    update: TemporalFieldUpdate
    lane_id: str
    projected_duration: bool


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def plan_move(
    *,
    start: datetime,
    end: datetime | None = None,
    lane_id: str | None = None,
) -> TemporalFieldUpdate:
    """Move or resize: start becomes the date, an end delta of a minute or more the duration."""
    start_utc = _as_utc(start)
    fields: dict[str, str | None] = {"chronological_date": start_utc.isoformat()}
    if lane_id:
        fields["plotline_tag"] = lane_id
    if end is not None:
        delta_ms = int((_as_utc(end) - start_utc) / timedelta(milliseconds=1))
        if delta_ms >= MINUTE_MS:
            fields["duration"] = format_duration(delta_ms)
    return TemporalFieldUpdate(**fields)


def resolve_lane(lane_id: str | None, known_lanes: Sequence[str]) -> str:
    """Requested lane if known, else the first known lane, else the default lane."""
    if lane_id and lane_id in known_lanes:
        return lane_id
    if known_lanes:
        return known_lanes[0]
    return DEFAULT_PLOTLINE_ID


def plan_drop(
    record: TemporalRecord,
    *,
    at: datetime,
    lane_id: str | None,
    known_lanes: Sequence[str],
) -> DropPlan:
    """Place an unassigned scene on the timeline at the drop instant."""
    lane = resolve_lane(lane_id, known_lanes)
    update = TemporalFieldUpdate(
        chronological_date=_as_utc(at).isoformat(),
        plotline_tag=lane,
    )
    has_user_duration = bool(record.duration_ms) and not record.duration_projected
    return DropPlan(update=update, lane_id=lane, projected_duration=not has_user_duration)


def narrative_connectors(records: Sequence[TemporalRecord]) -> list[NarrativeConnector]:
    """Pair each assigned scene with its next assigned scene in reading order."""
    ordered = sorted(
        (record for record in records if record.is_assigned),
        key=lambda record: record.manuscript_index,
    )
    return [
        NarrativeConnector(
            from_id=previous.id,
            to_id=current.id,
            is_flashback=current.time_key < previous.time_key,
        )
        for previous, current in zip(ordered, ordered[1:])
    ]


def _record_start(record: TemporalRecord) -> datetime | None:
    return parse_instant(record.chronological_date) or parse_abstract_timeframe(
        record.abstract_timeframe
    )


def _interval_end(start: datetime, duration_ms: int) -> datetime:
    # Ends past year 9999 are pinned to the last representable instant.
    try:
        return start + timedelta(milliseconds=duration_ms)
    except OverflowError:
        return _LATEST_INSTANT


def timeline_items(
    records: Sequence[TemporalRecord],
    *,
    warnings: Sequence[ParadoxWarning],
    plotlines: Sequence[Plotline],
) -> list[TimelineItem]:
    """Render-ready intervals; scenes whose start cannot be placed are omitted."""
    lane_ids = [plotline.id for plotline in plotlines]
    messages_by_scene: dict[str, list[str]] = {}
    for warning in warnings:
        for scene_id in warning.scene_ids:
            messages_by_scene.setdefault(scene_id, []).append(warning.message)

    items: list[TimelineItem] = []
    for record in records:
        if not record.is_assigned:
            continue
        start = _record_start(record)
        if start is None:
            continue
        projected = record.duration_projected or not record.duration_ms
        duration_ms = PROJECTED_DURATION_MS if not record.duration_ms else record.duration_ms
        messages = messages_by_scene.get(record.id, [])
        if messages:
            css_class = "warning"
        elif projected:
            css_class = "projected"
        else:
            css_class = "normal"
        items.append(
            TimelineItem(
                id=record.id,
                title=record.title,
                lane_id=resolve_lane(record.plotline_tag, lane_ids),
                start_utc=start.isoformat(),
                end_utc=_interval_end(start, duration_ms).isoformat(),
                css_class=css_class,
                tooltip="\n".join(messages) or record.title,
            )
        )
    return items
