"""Validation helpers that enforce stage contracts and deterministic ordering."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass

from story_timeline.core.temporal_schema import ParadoxWarning, TemporalRecord


@dataclass(frozen=True)
class TemporalStageContract:
    """Track one engine stage input/output contract boundary."""

    stage_id: str
    inputs: tuple[str, ...]
    outputs: tuple[str, ...]
    validator_functions: tuple[str, ...]
    description: str


TEMPORAL_STAGE_CONTRACTS: tuple[TemporalStageContract, ...] = (
    TemporalStageContract(
        stage_id="projection.records",
        inputs=("SceneNode[]",),
        outputs=("TemporalRecord[]",),
        validator_functions=("validate_record_input",),
        description="Flatten the manuscript tree into temporal records.",
    ),
    TemporalStageContract(
        stage_id="consistency.paradoxes",
        inputs=("TemporalRecord[]",),
        outputs=("ParadoxWarning[]",),
        validator_functions=("validate_record_input", "validate_warning_output"),
        description="Detect simultaneous presence, causality, and orphan-gap paradoxes.",
    ),
    TemporalStageContract(
        stage_id="reorder.chronological",
        inputs=("TemporalRecord[]",),
        outputs=("SceneId[]",),
        validator_functions=("validate_record_input", "validate_reorder_output"),
        description="Rewrite manuscript order from story-time order.",
    ),
)


def registered_temporal_stage_contracts() -> tuple[TemporalStageContract, ...]:
    """Return the tracked stage-level contract registry."""
    return TEMPORAL_STAGE_CONTRACTS


def validate_record_input(records: list[TemporalRecord]) -> None:
    """Scene ids must be unique across the flattened manuscript."""
    duplicates = sorted(
        scene_id for scene_id, count in Counter(r.id for r in records).items() if count > 1
    )
    if duplicates:
        raise ValueError(f"Duplicate scene ids in manuscript: {', '.join(duplicates)}.")


def validate_warning_output(
    warnings: list[ParadoxWarning], records: list[TemporalRecord]
) -> None:
    """Warnings may only reference assigned records."""
    assigned_ids = {record.id for record in records if record.is_assigned}
    for warning in warnings:
        unknown = [scene_id for scene_id in warning.scene_ids if scene_id not in assigned_ids]
        if unknown:
            raise ValueError(f"{warning.type} warning references unassigned scenes: {unknown}.")


def validate_reorder_output(before: list[str], after: list[str]) -> None:
    """Reordering must be a permutation: nothing dropped, nothing duplicated."""
    if len(after) != len(set(after)):
        raise ValueError("Reordered manuscript contains duplicate scene ids.")
    if Counter(before) != Counter(after):
        raise ValueError("Reordered manuscript must contain exactly the original scene ids.")
