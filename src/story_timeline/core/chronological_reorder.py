"""Derive manuscript order from story-time order."""

from __future__ import annotations

from dataclasses import dataclass

from story_timeline.core.paradox_detection import sort_by_time_key
from story_timeline.core.temporal_contracts import validate_record_input, validate_reorder_output
from story_timeline.core.temporal_projection import split_assignment
from story_timeline.core.temporal_schema import TemporalRecord

DEFAULT_PREVIEW_LIMIT = 10


@dataclass(frozen=True)
class ReorderPreviewEntry:
    """One row of the confirmation preview shown before commit."""

    position: int
    scene_id: str
    title: str
    time_key: str


@dataclass(frozen=True)
class ReorderPlan:
    """Proposed manuscript order; nothing is written until the caller commits it."""

    current_ids: list[str]
    ordered_ids: list[str]
    preview: list[ReorderPreviewEntry]

    @property
    def changed(self) -> bool:
        return self.current_ids != self.ordered_ids


def plan_chronological_reorder(
    records: list[TemporalRecord],
    *,
    preview_limit: int = DEFAULT_PREVIEW_LIMIT,
) -> ReorderPlan:
    """Sorted assigned records first, then the holding pen in its prior order."""
    if preview_limit < 0:
        raise ValueError("preview_limit must be >= 0.")
    validate_record_input(records)
    in_manuscript_order = sorted(records, key=lambda record: record.manuscript_index)
    assigned, unassigned = split_assignment(in_manuscript_order)
    ordered = [*sort_by_time_key(assigned), *unassigned]
    current_ids = [record.id for record in in_manuscript_order]
    ordered_ids = [record.id for record in ordered]
    validate_reorder_output(current_ids, ordered_ids)
    preview = [
        ReorderPreviewEntry(
            position=position,
            scene_id=record.id,
            title=record.title,
            time_key=record.time_key,
        )
        for position, record in enumerate(ordered[:preview_limit], start=1)
    ]
    return ReorderPlan(current_ids=current_ids, ordered_ids=ordered_ids, preview=preview)
