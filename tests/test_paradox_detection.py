from __future__ import annotations

from datetime import date, timedelta

import pytest

from story_timeline.core.paradox_detection import (
    analyze_consistency,
    day_gap,
    detect_causality_violations,
    detect_orphan_gaps,
    detect_simultaneous_presence,
    sort_by_time_key,
)
from story_timeline.core.temporal_schema import TemporalRecord


def _record(
    record_id: str,
    *,
    index: int = 0,
    date_value: str | None = None,
    abstract: str | None = None,
    pov: str | None = None,
    depends_on: str | None = None,
    title: str | None = None,
) -> TemporalRecord:
    return TemporalRecord(
        id=record_id,
        title=title or record_id.title(),
        manuscript_index=index,
        chronological_date=date_value,
        abstract_timeframe=abstract,
        pov_character_id=pov,
        depends_on=depends_on,
    )


def _days_after_2000(days: int) -> str:
    return (date(2000, 1, 1) + timedelta(days=days)).isoformat()


def test_same_pov_at_same_time_produces_one_presence_warning() -> None:
    records = [
        _record("a", index=0, date_value="2024-01-01", pov="alice"),
        _record("b", index=1, date_value="2024-01-01", pov="alice"),
    ]
    warnings = analyze_consistency(records)
    assert len(warnings) == 1
    assert warnings[0].type == "simultaneous_presence"
    assert warnings[0].scene_ids == ["a", "b"]
    assert warnings[0].message == "Character (alice) appears in multiple scenes at 2024-01-01"


def test_different_pov_at_same_time_is_not_a_paradox() -> None:
    records = [
        _record("a", date_value="2024-01-01", pov="alice"),
        _record("b", date_value="2024-01-01", pov="bob"),
        _record("c", date_value="2024-01-01"),
    ]
    assert detect_simultaneous_presence(records) == []


def test_effect_before_cause_produces_causality_warning() -> None:
    cause = _record("a", index=0, date_value="2024-02-01", title="Departure")
    effect = _record("b", index=1, date_value="2024-01-01", depends_on="a", title="Arrival")
    warnings = analyze_consistency([cause, effect])
    assert len(warnings) == 1
    assert warnings[0].type == "causality_violation"
    assert warnings[0].scene_ids == ["b", "a"]
    assert warnings[0].message == '"Arrival" occurs before its cause "Departure"'


def test_swapping_dates_clears_causality_warning() -> None:
    cause = _record("a", date_value="2024-01-01")
    effect = _record("b", date_value="2024-02-01", depends_on="a")
    assert detect_causality_violations([cause, effect]) == []


def test_causality_ignores_self_dangling_and_unassigned_dependencies() -> None:
    unassigned_cause = _record("u", index=0)
    records = [
        unassigned_cause,
        _record("self", index=1, date_value="2024-01-01", depends_on="self"),
        _record("dangling", index=2, date_value="2024-01-01", depends_on="missing"),
        _record("late", index=3, date_value="2024-01-01", depends_on="u"),
    ]
    assert analyze_consistency(records) == []


def test_orphan_gap_flags_1200_days_but_not_1000() -> None:
    far = [
        _record("a", date_value=_days_after_2000(0), title="Childhood"),
        _record("b", date_value=_days_after_2000(1200), title="Return"),
    ]
    near = [
        _record("a", date_value=_days_after_2000(0)),
        _record("b", date_value=_days_after_2000(1000)),
    ]
    far_warnings = analyze_consistency(far)
    assert [warning.type for warning in far_warnings] == ["orphan_gap"]
    assert far_warnings[0].scene_ids == ["a", "b"]
    assert far_warnings[0].message == 'Large time gap (3 years) between "Childhood" and "Return"'
    assert analyze_consistency(near) == []


def test_orphan_gap_threshold_is_configurable() -> None:
    records = [
        _record("a", date_value=_days_after_2000(0)),
        _record("b", date_value=_days_after_2000(1000)),
    ]
    warnings = detect_orphan_gaps(sort_by_time_key(records), threshold_days=500)
    assert len(warnings) == 1


def test_orphan_gap_skips_abstract_and_unparseable_dates() -> None:
    records = [
        _record("a", date_value="2000-01-01"),
        _record("b", date_value="sometime"),
        _record("c", abstract="Year 9"),
    ]
    assert detect_orphan_gaps(sort_by_time_key(records)) == []
    assert day_gap("2000-01-01", "sometime") is None
    assert day_gap("2000-01-01", "2000-01-11") == pytest.approx(10.0)


def test_unassigned_records_are_never_analyzed() -> None:
    records = [
        _record("a", index=0, pov="alice"),
        _record("b", index=1, pov="alice"),
        _record("c", index=2, depends_on="a"),
    ]
    assert analyze_consistency(records) == []


def test_warnings_are_grouped_presence_then_causality_then_gap() -> None:
    records = [
        _record("gap-start", index=0, date_value="1990-01-01"),
        _record("a", index=1, date_value="2024-02-01", pov="alice"),
        _record("b", index=2, date_value="2024-02-01", pov="alice"),
        _record("c", index=3, date_value="2024-01-01", depends_on="a"),
    ]
    types = [warning.type for warning in analyze_consistency(records)]
    assert types == ["simultaneous_presence", "causality_violation", "orphan_gap"]


def test_duplicate_scene_ids_are_rejected() -> None:
    with pytest.raises(ValueError, match="Duplicate scene ids"):
        analyze_consistency([_record("a"), _record("a")])


def test_sort_by_time_key_is_stable_for_ties() -> None:
    records = [
        _record("second", date_value="2024-01-02"),
        _record("tie-1", date_value="2024-01-01"),
        _record("tie-2", date_value="2024-01-01"),
    ]
    assert [record.id for record in sort_by_time_key(records)] == ["tie-1", "tie-2", "second"]
