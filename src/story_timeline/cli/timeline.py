"""CLI for checking a manuscript JSON file for temporal paradoxes."""

from __future__ import annotations

import argparse
import os
from pathlib import Path

from story_timeline.adapters.memory_manuscript_store import InMemoryManuscriptStore
from story_timeline.api.contracts import (
    ManuscriptDocument,
    ManuscriptScene,
    load_manuscript_json,
    save_manuscript_json,
)
from story_timeline.application.timeline_engine import TimelineEngine
from story_timeline.core.calendar_system import INVALID_DATE_LABEL
from story_timeline.core.chronological_reorder import DEFAULT_PREVIEW_LIMIT
from story_timeline.core.paradox_detection import DEFAULT_GAP_THRESHOLD_DAYS


def _default_gap_threshold() -> int:
    raw = os.environ.get("STORY_TIMELINE_GAP_THRESHOLD_DAYS", "").strip()
    try:
        value = int(raw) if raw else DEFAULT_GAP_THRESHOLD_DAYS
    except ValueError:
        return DEFAULT_GAP_THRESHOLD_DAYS
    return max(1, min(365_000, value))


def build_arg_parser() -> argparse.ArgumentParser:
    """Define CLI flags for manuscript consistency checks."""
    parser = argparse.ArgumentParser(
        description="Report temporal paradoxes in a manuscript and optionally reorder it."
    )
    parser.add_argument("--input", required=True, help="Path to manuscript JSON.")
    parser.add_argument(
        "--output",
        default="",
        help="Where to write the reordered manuscript with --reorder. Defaults to in-place.",
    )
    parser.add_argument(
        "--reorder",
        action="store_true",
        help="Rewrite manuscript order to follow story time.",
    )
    parser.add_argument("--gap-threshold-days", type=int, default=_default_gap_threshold())
    parser.add_argument("--preview-limit", type=int, default=DEFAULT_PREVIEW_LIMIT)
    parser.add_argument(
        "--fail-on-warnings",
        action="store_true",
        help="Exit non-zero when any paradox warning is reported.",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Analyze one manuscript file and print warnings, connectors, and reorder preview."""
    parser = build_arg_parser()
    parsed = parser.parse_args(argv)
    if int(parsed.gap_threshold_days) <= 0:
        parser.error("--gap-threshold-days must be positive")
    if int(parsed.preview_limit) < 0:
        parser.error("--preview-limit must be >= 0")

    input_path = Path(str(parsed.input))
    document = load_manuscript_json(input_path)
    store = InMemoryManuscriptStore(
        document.scene_nodes(),
        plotlines=document.plotlines,
        calendar=document.calendar,
    )
    engine = TimelineEngine(store, gap_threshold_days=int(parsed.gap_threshold_days))

    print(f"Manuscript: {input_path}")
    print(f"Calendar: {engine.calendar.system_name}")
    print(
        f"Scenes: {len(engine.records)} "
        f"(assigned {len(engine.assigned_scenes)}, unassigned {len(engine.unassigned_scenes)})"
    )
    for issue in engine.dependency_issues():
        print(f"dependency: {issue}")

    warnings = engine.paradox_warnings
    print(f"Warnings: {len(warnings)}")
    for warning in warnings:
        print(f"- [{warning.type}] {warning.message} ({', '.join(warning.scene_ids)})")

    flashbacks = [connector for connector in engine.narrative_connectors if connector.is_flashback]
    print(f"Flashbacks: {len(flashbacks)}")
    for connector in flashbacks:
        print(f"- {connector.from_id} -> {connector.to_id}")

    preview_limit = int(parsed.preview_limit)
    if parsed.reorder:
        plan = engine.apply_chronological_reorder(preview_limit=preview_limit)
    else:
        plan = engine.preview_chronological_reorder(preview_limit=preview_limit)
    print(f"Chronological order {'differs' if plan.changed else 'matches manuscript order'}.")
    for entry in plan.preview:
        when = engine.format_date(entry.time_key) if entry.time_key else "unassigned"
        if when == INVALID_DATE_LABEL:
            when = entry.time_key
        print(f"{entry.position:>3}. {entry.title} [{when}]")

    if parsed.reorder and plan.changed:
        output_path = Path(str(parsed.output)) if str(parsed.output).strip() else input_path
        save_manuscript_json(
            output_path,
            ManuscriptDocument(
                scenes=[ManuscriptScene.from_scene_node(node) for node in store.list_scenes()],
                plotlines=document.plotlines,
                calendar=document.calendar,
            ),
        )
        print(f"Wrote reordered manuscript: {output_path}")

    if parsed.fail_on_warnings and warnings:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
