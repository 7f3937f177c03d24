from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from story_timeline.adapters.memory_manuscript_store import InMemoryManuscriptStore
from story_timeline.application import timeline_engine
from story_timeline.application.planning import DependencyCycleError
from story_timeline.application.timeline_engine import (
    TimelineEngine,
    UnknownPlotlineError,
    UnknownSceneError,
)
from story_timeline.core.temporal_projection import PROJECTED_DURATION_MS
from story_timeline.core.temporal_schema import (
    PLOTLINE_COLORS,
    MonthConfig,
    TemporalFieldUpdate,
    TemporalRecord,
    default_plotline,
)
from story_timeline.domain.models import SceneNode
from story_timeline.domain.ports import ManuscriptStoreError


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[dict[str, object]] = []

    def report(
        self,
        *,
        scope: str,
        code: str,
        severity: str,
        message: str,
        metadata: dict[str, object] | None = None,
    ) -> None:
        self.events.append(
            {
                "scope": scope,
                "code": code,
                "severity": severity,
                "message": message,
                "metadata": metadata or {},
            }
        )


class FailingStore(InMemoryManuscriptStore):
    def update_temporal_fields(self, scene_id: str, fields: dict[str, str | None]) -> None:
        raise ManuscriptStoreError("disk full")

    def replace_order(self, scene_ids: list[str]) -> None:
        raise ManuscriptStoreError("read-only project")


class FlakyStore(InMemoryManuscriptStore):
    failing = True

    def update_temporal_fields(self, scene_id: str, fields: dict[str, str | None]) -> None:
        if self.failing:
            raise ManuscriptStoreError("locked")
        super().update_temporal_fields(scene_id, fields)


def _scenes() -> list[SceneNode]:
    return [
        SceneNode(
            id="s1",
            title="Departure",
            chronological_date="2024-03-01",
            pov_character_id="alice",
        ),
        SceneNode(id="s2", title="Arrival", chronological_date="2024-02-01", depends_on="s1"),
        SceneNode(id="s3", title="Interlude"),
        SceneNode(
            id="s4",
            title="Reunion",
            chronological_date="2024-03-01",
            pov_character_id="alice",
        ),
    ]


def _engine(
    store: InMemoryManuscriptStore | None = None,
) -> tuple[TimelineEngine, InMemoryManuscriptStore, RecordingSink]:
    backing = store or InMemoryManuscriptStore(_scenes())
    sink = RecordingSink()
    return TimelineEngine(backing, status_sink=sink), backing, sink


def _stored(store: InMemoryManuscriptStore, scene_id: str) -> SceneNode:
    return next(node for node in store.list_scenes() if node.id == scene_id)


def test_engine_derives_assignment_and_warnings_on_load() -> None:
    engine, _, _ = _engine()
    assert [record.id for record in engine.assigned_scenes] == ["s1", "s2", "s4"]
    assert [record.id for record in engine.unassigned_scenes] == ["s3"]
    assert [warning.type for warning in engine.paradox_warnings] == [
        "simultaneous_presence",
        "causality_violation",
    ]
    assert [(c.from_id, c.to_id, c.is_flashback) for c in engine.narrative_connectors] == [
        ("s1", "s2", True),
        ("s2", "s4", False),
    ]
    assert engine.plotlines == [default_plotline()]


def test_update_recomputes_warnings_and_persists_changed_fields_only() -> None:
    engine, store, _ = _engine()
    updated = engine.update_temporal_fields(
        "s2", TemporalFieldUpdate(chronological_date="2024-04-01")
    )
    assert updated.chronological_date == "2024-04-01"
    assert [warning.type for warning in engine.paradox_warnings] == ["simultaneous_presence"]
    assert _stored(store, "s2").chronological_date == "2024-04-01"
    assert store.write_count == 1

    engine.update_temporal_fields("s2", TemporalFieldUpdate(chronological_date="2024-04-01"))
    assert store.write_count == 1


def test_clearing_dates_moves_scene_back_to_holding_pen() -> None:
    engine, _, _ = _engine()
    engine.update_temporal_fields("s4", TemporalFieldUpdate(chronological_date=None))
    assert "s4" in [record.id for record in engine.unassigned_scenes]
    assert [warning.type for warning in engine.paradox_warnings] == ["causality_violation"]


def test_unknown_scene_is_rejected() -> None:
    engine, _, _ = _engine()
    with pytest.raises(UnknownSceneError):
        engine.update_temporal_fields("nope", TemporalFieldUpdate(duration="1 hour"))
    with pytest.raises(UnknownSceneError):
        engine.handle_scheduling_drop("nope", at=datetime(2024, 1, 1, tzinfo=UTC))


def test_dependency_cycle_is_rejected_before_any_change() -> None:
    engine, store, _ = _engine()
    with pytest.raises(DependencyCycleError) as excinfo:
        engine.update_temporal_fields("s1", TemporalFieldUpdate(depends_on="s2"))
    assert excinfo.value.cycle == ["s1", "s2", "s1"]
    assert engine.record("s1").depends_on is None
    assert store.write_count == 0


def test_drop_assigns_date_lane_and_projected_duration() -> None:
    engine, store, _ = _engine()
    record = engine.handle_scheduling_drop("s3", at=datetime(2024, 5, 1, tzinfo=UTC))
    assert record.chronological_date == "2024-05-01T00:00:00+00:00"
    assert record.plotline_tag == "main"
    assert record.duration_ms == PROJECTED_DURATION_MS
    assert record.duration_projected
    assert _stored(store, "s3").duration is None
    items = {item.id: item for item in engine.timeline_items}
    assert items["s3"].css_class == "projected"
    assert items["s1"].css_class == "warning"


def test_move_with_resize_replaces_projected_duration() -> None:
    engine, store, _ = _engine()
    start = datetime(2024, 5, 1, tzinfo=UTC)
    engine.handle_scheduling_drop("s3", at=start)
    record = engine.handle_scheduling_move("s3", start=start, end=start + timedelta(hours=3))
    assert record.duration_ms == 3 * 60 * 60 * 1000
    assert not record.duration_projected
    assert _stored(store, "s3").duration == "3 hours"


def test_reorder_preview_does_not_write_and_apply_is_idempotent() -> None:
    engine, store, _ = _engine()
    preview = engine.preview_chronological_reorder(preview_limit=2)
    assert preview.ordered_ids == ["s2", "s1", "s4", "s3"]
    assert [entry.scene_id for entry in preview.preview] == ["s2", "s1"]
    assert store.write_count == 0

    applied = engine.apply_chronological_reorder()
    assert applied.changed
    assert [node.id for node in store.list_scenes()] == ["s2", "s1", "s4", "s3"]
    assert [record.id for record in engine.records] == ["s2", "s1", "s4", "s3"]

    again = engine.apply_chronological_reorder()
    assert not again.changed
    assert again.ordered_ids == applied.ordered_ids
    assert store.write_count == 1


def test_write_failure_is_surfaced_without_rollback() -> None:
    engine, _, sink = _engine(FailingStore(_scenes()))
    record = engine.update_temporal_fields("s3", TemporalFieldUpdate(abstract_timeframe="Day 2"))
    assert record.is_assigned
    assert "s3" in [item.id for item in engine.assigned_scenes]
    assert engine.write_errors == {"s3": "disk full"}
    assert sink.events[-1]["code"] == "temporal_write_failed"
    assert sink.events[-1]["severity"] == "error"

    engine.apply_chronological_reorder()
    assert sink.events[-1]["code"] == "reorder_write_failed"


def test_successful_write_clears_previous_error() -> None:
    store = FlakyStore(_scenes())
    engine, _, sink = _engine(store)
    engine.update_temporal_fields("s3", TemporalFieldUpdate(abstract_timeframe="Day 2"))
    assert "s3" in engine.write_errors

    store.failing = False
    engine.update_temporal_fields("s3", TemporalFieldUpdate(abstract_timeframe="Day 3"))
    assert engine.write_errors == {}
    assert [event["code"] for event in sink.events] == [
        "temporal_write_failed",
        "temporal_write_recovered",
    ]
    assert sink.events[-1]["metadata"] == {"scene_id": "s3", "fields": ["abstract_timeframe"]}

    engine.update_temporal_fields("s3", TemporalFieldUpdate(abstract_timeframe="Day 4"))
    assert len(sink.events) == 2


def test_calendar_structure_change_flags_assigned_scenes_for_review() -> None:
    engine, store, sink = _engine()
    engine.set_system("fixed360")
    assert engine.records_needing_review == ["s1", "s2", "s4"]
    assert sink.events[-1]["code"] == "calendar_structure_changed"
    saved = store.load_calendar_config()
    assert saved is not None and saved.system == "fixed360"
    assert engine.format_date("1970-01-31") == "Month 2 1, Year 1"

    engine.mark_reviewed(["s1"])
    assert engine.records_needing_review == ["s2", "s4"]


def test_epoch_change_keeps_month_structure_and_review_list() -> None:
    engine, _, sink = _engine()
    engine.set_start_year(5)
    assert engine.records_needing_review == []
    assert sink.events == []
    assert engine.calendar.config.epoch_year == 5


def test_custom_months_swap_atomically_and_validate() -> None:
    engine, _, _ = _engine()
    engine.set_system("custom")
    engine.mark_reviewed(["s1", "s2", "s4"])
    engine.set_custom_months(
        [MonthConfig(name="Frost", days=10), MonthConfig(name="Thaw", days=20)]
    )
    assert engine.calendar.days_in_year() == 30
    assert engine.records_needing_review == ["s1", "s2", "s4"]
    with pytest.raises(ValidationError):
        engine.set_start_year(2_000_000)
    assert engine.calendar.config.epoch_year == 1


def test_plotline_lifecycle_resets_orphaned_tags() -> None:
    engine, store, _ = _engine()
    side = engine.add_plotline("Subplot")
    assert side.color == PLOTLINE_COLORS[1]
    assert [plotline.id for plotline in store.list_plotlines()] == ["main", side.id]

    renamed = engine.update_plotline(side.id, name="B-plot", color="#FF0000")
    assert (renamed.name, renamed.color) == ("B-plot", "#ff0000")

    engine.update_temporal_fields("s1", TemporalFieldUpdate(plotline_tag=side.id))
    assert engine.remove_plotline(side.id) == ["s1"]
    assert engine.record("s1").plotline_tag is None
    assert _stored(store, "s1").plotline_tag is None
    assert [plotline.id for plotline in engine.plotlines] == ["main"]

    with pytest.raises(UnknownPlotlineError):
        engine.update_plotline("missing", name="x")


def test_dependency_issues_report_stored_cycles() -> None:
    store = InMemoryManuscriptStore(
        [
            SceneNode(id="a", title="A", depends_on="b"),
            SceneNode(id="b", title="B", depends_on="a"),
        ]
    )
    engine, _, _ = _engine(store)
    assert engine.dependency_issues() == ["Scene dependency cycle: a -> b -> a."]


def test_gap_threshold_must_be_positive() -> None:
    with pytest.raises(ValueError, match="gap_threshold_days"):
        TimelineEngine(InMemoryManuscriptStore(), gap_threshold_days=0)


def test_overlong_duration_text_is_stored_without_breaking_later_updates() -> None:
    engine, store, _ = _engine()
    overlong = TemporalFieldUpdate(duration="1" * 400 + " days")
    record = engine.update_temporal_fields("s1", overlong)
    assert record.duration_ms is None
    later = engine.update_temporal_fields(
        "s1", TemporalFieldUpdate(chronological_date="2024-01-01")
    )
    assert later.chronological_date == "2024-01-01"
    assert [item.id for item in engine.timeline_items] == ["s1", "s2", "s4"]
    assert store.write_count == 2


def test_failed_recompute_leaves_engine_state_untouched(monkeypatch: pytest.MonkeyPatch) -> None:
    engine, store, _ = _engine()
    real_analyze = timeline_engine.analyze_consistency

    def exploding(records: list[TemporalRecord], *, gap_threshold_days: int) -> list[object]:
        if any(record.abstract_timeframe == "Day 9" for record in records):
            raise OverflowError("date value out of range")
        return list(real_analyze(records, gap_threshold_days=gap_threshold_days))

    monkeypatch.setattr(timeline_engine, "analyze_consistency", exploding)
    with pytest.raises(OverflowError):
        engine.update_temporal_fields("s3", TemporalFieldUpdate(abstract_timeframe="Day 9"))
    assert engine.record("s3").abstract_timeframe is None
    assert [record.id for record in engine.unassigned_scenes] == ["s3"]
    assert store.write_count == 0

    updated = engine.update_temporal_fields("s3", TemporalFieldUpdate(abstract_timeframe="Day 2"))
    assert updated.is_assigned
    assert _stored(store, "s3").abstract_timeframe == "Day 2"
    assert store.write_count == 1
