from __future__ import annotations

from pathlib import Path

import pytest

from story_timeline.adapters.sqlite_status_store import SQLiteStatusStore


def _fail(store: SQLiteStatusStore, scene_id: str, message: str = "database is locked") -> None:
    store.report(
        scope="persistence",
        code="temporal_write_failed",
        severity="error",
        message=message,
        metadata={"scene_id": scene_id, "fields": ["duration"]},
    )


def test_status_feed_lists_newest_first_with_scene_and_metadata(tmp_path: Path) -> None:
    store = SQLiteStatusStore(db_path=tmp_path / "status.db")
    _fail(store, "s1")
    store.report(
        scope="calendar",
        code="calendar_structure_changed",
        severity="warning",
        message="Calendar month structure changed.",
        metadata={"scene_ids": ["s1", "s2"]},
    )

    listed = store.list_recent(limit=10)
    assert [event.code for event in listed] == [
        "calendar_structure_changed",
        "temporal_write_failed",
    ]
    assert listed[0].sequence > listed[1].sequence
    assert listed[0].scene_id is None
    assert listed[0].metadata["scene_ids"] == ["s1", "s2"]
    assert listed[1].scene_id == "s1"
    assert listed[1].metadata == {"fields": ["duration"], "scene_id": "s1"}

    calendar_only = store.list_recent(limit=10, scope="calendar")
    assert [event.code for event in calendar_only] == ["calendar_structure_changed"]


def test_scene_errors_accumulate_and_resolve_on_recovery(tmp_path: Path) -> None:
    store = SQLiteStatusStore(db_path=tmp_path / "status.db")
    _fail(store, "s1")
    _fail(store, "s1", message="disk full")
    _fail(store, "s2")

    errors = {error.scene_id: error for error in store.open_scene_errors()}
    assert set(errors) == {"s1", "s2"}
    assert errors["s1"].message == "disk full"
    assert errors["s1"].failure_count == 2
    assert errors["s2"].failure_count == 1

    store.report(
        scope="persistence",
        code="temporal_write_recovered",
        severity="info",
        message="Saved temporal fields for scene 's1'.",
        metadata={"scene_id": "s1"},
    )
    assert [error.scene_id for error in store.open_scene_errors()] == ["s2"]


def test_failures_without_a_scene_only_reach_the_feed(tmp_path: Path) -> None:
    store = SQLiteStatusStore(db_path=tmp_path / "status.db")
    store.report(
        scope="persistence",
        code="reorder_write_failed",
        severity="error",
        message="read-only project",
        metadata={"scene_count": 4},
    )
    assert store.open_scene_errors() == []
    assert store.list_recent(limit=1)[0].code == "reorder_write_failed"


def test_discard_scene_errors_drops_scenes_missing_from_manuscript(tmp_path: Path) -> None:
    store = SQLiteStatusStore(db_path=tmp_path / "status.db")
    _fail(store, "s1")
    _fail(store, "gone")
    assert store.discard_scene_errors({"s1", "s2"}) == 1
    assert [error.scene_id for error in store.open_scene_errors()] == ["s1"]


def test_feed_keeps_only_the_newest_events(tmp_path: Path) -> None:
    store = SQLiteStatusStore(db_path=tmp_path / "status.db", max_events=2)
    for index in range(5):
        store.report(
            scope="calendar",
            code=f"code_{index}",
            severity="warning",
            message=f"event {index}",
        )
    assert [event.code for event in store.list_recent(limit=10)] == ["code_4", "code_3"]


def test_status_store_validates_arguments(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="max_events"):
        SQLiteStatusStore(db_path=tmp_path / "status.db", max_events=0)
    store = SQLiteStatusStore(db_path=tmp_path / "status.db")
    assert store.max_events == 10_000
    with pytest.raises(ValueError, match="limit"):
        store.list_recent(limit=0)
