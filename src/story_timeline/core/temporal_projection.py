"""Project manuscript scenes onto temporal records."""

from __future__ import annotations

from collections.abc import Collection, Iterable

from story_timeline.core.duration import parse_duration
from story_timeline.core.temporal_schema import TemporalRecord
from story_timeline.domain.models import SceneNode, flatten_scene_tree

PROJECTED_DURATION_MS = 2 * 60 * 60 * 1000


def project_temporal_records(
    scenes: Iterable[SceneNode],
    *,
    projected_ids: Collection[str] = (),
) -> list[TemporalRecord]:
    """Flatten the scene tree and keep only the fields story-time reasoning needs.

    Scenes listed in ``projected_ids`` without a user duration get the two-hour
    visualization default, flagged as projected.
    """
    records: list[TemporalRecord] = []
    for index, scene in enumerate(flatten_scene_tree(scenes)):
        duration_ms = parse_duration(scene.duration) or None
        projected = False
        if duration_ms is None and scene.id in projected_ids:
            duration_ms = PROJECTED_DURATION_MS
            projected = True
        records.append(
            TemporalRecord(
                id=scene.id,
                title=scene.title,
                manuscript_index=index,
                chronological_date=scene.chronological_date,
                abstract_timeframe=scene.abstract_timeframe,
                duration_ms=duration_ms,
                duration_projected=projected,
                plotline_tag=scene.plotline_tag,
                depends_on=scene.depends_on,
                pov_character_id=scene.pov_character_id,
            )
        )
    return records


def split_assignment(
    records: Iterable[TemporalRecord],
) -> tuple[list[TemporalRecord], list[TemporalRecord]]:
    """Split records into (assigned, unassigned), each in manuscript order."""
    assigned: list[TemporalRecord] = []
    unassigned: list[TemporalRecord] = []
    for record in records:
        (assigned if record.is_assigned else unassigned).append(record)
    return assigned, unassigned
