"""Consistency analysis over assigned temporal records."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Final

from story_timeline.core.calendar_system import parse_instant
from story_timeline.core.temporal_contracts import validate_record_input, validate_warning_output
from story_timeline.core.temporal_schema import ParadoxWarning, TemporalRecord

DEFAULT_GAP_THRESHOLD_DAYS: Final[int] = 1095
_DAY_SECONDS: Final[int] = 24 * 60 * 60

logger = logging.getLogger(__name__)


def sort_by_time_key(records: Iterable[TemporalRecord]) -> list[TemporalRecord]:
    """Stable ascending sort on the story-time key; ties keep input order."""
    return sorted(records, key=lambda record: record.time_key)


def day_gap(first: str | None, second: str | None) -> float | None:
    """Absolute gap in days between two ISO dates, None when either is unparseable."""
    first_moment = parse_instant(first)
    second_moment = parse_instant(second)
    if first_moment is None or second_moment is None:
        return None
    return abs((second_moment - first_moment).total_seconds()) / _DAY_SECONDS


def detect_simultaneous_presence(assigned: list[TemporalRecord]) -> list[ParadoxWarning]:
    by_time: dict[str, dict[str, list[TemporalRecord]]] = {}
    for record in assigned:
        if not record.pov_character_id:
            continue
        by_pov = by_time.setdefault(record.time_key, {})
        by_pov.setdefault(record.pov_character_id, []).append(record)

    warnings: list[ParadoxWarning] = []
    for time_key, by_pov in by_time.items():
        for pov_id, scenes in by_pov.items():
            if len(scenes) < 2:
                continue
            warnings.append(
                ParadoxWarning(
                    type="simultaneous_presence",
                    scene_ids=[scene.id for scene in scenes],
                    message=f"Character ({pov_id}) appears in multiple scenes at {time_key}",
                )
            )
    return warnings


def detect_causality_violations(assigned: list[TemporalRecord]) -> list[ParadoxWarning]:
    by_id = {record.id: record for record in assigned}
    warnings: list[ParadoxWarning] = []
    for record in assigned:
        if not record.depends_on or record.depends_on == record.id:
            continue
        cause = by_id.get(record.depends_on)
        if cause is None:
            continue
        if record.time_key < cause.time_key:
            warnings.append(
                ParadoxWarning(
                    type="causality_violation",
                    scene_ids=[record.id, cause.id],
                    message=f'"{record.title}" occurs before its cause "{cause.title}"',
                )
            )
    return warnings


def detect_orphan_gaps(
    chronological: list[TemporalRecord],
    *,
    threshold_days: int = DEFAULT_GAP_THRESHOLD_DAYS,
) -> list[ParadoxWarning]:
    warnings: list[ParadoxWarning] = []
    for previous, current in zip(chronological, chronological[1:]):
        # Abstract timeframes have no metric distance.
        if not previous.chronological_date or not current.chronological_date:
            continue
        gap = day_gap(previous.chronological_date, current.chronological_date)
        if gap is None or gap <= threshold_days:
            continue
        warnings.append(
            ParadoxWarning(
                type="orphan_gap",
                scene_ids=[previous.id, current.id],
                message=(
                    f"Large time gap ({int(gap // 365)} years) between "
                    f'"{previous.title}" and "{current.title}"'
                ),
            )
        )
    return warnings


def analyze_consistency(
    records: list[TemporalRecord],
    *,
    gap_threshold_days: int = DEFAULT_GAP_THRESHOLD_DAYS,
) -> list[ParadoxWarning]:
    """Return presence, causality, then gap warnings for the assigned records."""
    validate_record_input(records)
    assigned = [record for record in records if record.is_assigned]
    if not assigned:
        return []
    warnings = [
        *detect_simultaneous_presence(assigned),
        *detect_causality_violations(assigned),
        *detect_orphan_gaps(sort_by_time_key(assigned), threshold_days=gap_threshold_days),
    ]
    validate_warning_output(warnings, records)
    logger.debug(
        "consistency.analyzed records=%s assigned=%s warnings=%s",
        len(records),
        len(assigned),
        len(warnings),
    )
    return warnings
