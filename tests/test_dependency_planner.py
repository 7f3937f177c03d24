from __future__ import annotations

import pytest

from story_timeline.application.planning import DependencyCycleError, DependencyPlanner
from story_timeline.core.temporal_schema import TemporalRecord


def test_validate_scene_dependencies_reports_unknown_targets_and_cycles() -> None:
    records = [
        TemporalRecord(id="a", depends_on="b"),
        TemporalRecord(id="b", depends_on="a"),
        TemporalRecord(id="c", depends_on="ghost"),
        TemporalRecord(id="d"),
    ]
    issues = DependencyPlanner().validate_scene_dependencies(records)
    assert "Scene 'c' references unknown dependency 'ghost'." in issues
    assert "Scene dependency cycle: a -> b -> a." in issues
    assert len(issues) == 2


def test_cycle_through_finds_cycle_closed_by_new_edge() -> None:
    planner = DependencyPlanner()
    graph = {"a": None, "b": "a", "c": "b"}
    assert planner.cycle_through(graph, "a", "c") == ["a", "c", "b", "a"]
    assert planner.cycle_through(graph, "c", "a") is None
    assert planner.cycle_through(graph, "a", None) is None


def test_ensure_acyclic_rejects_self_dependency() -> None:
    planner = DependencyPlanner()
    with pytest.raises(DependencyCycleError) as excinfo:
        planner.ensure_acyclic({"a": None}, "a", "a")
    assert excinfo.value.cycle == ["a", "a"]
    assert "cannot depend on its own consequence" in str(excinfo.value)


def test_cycle_through_tolerates_preexisting_unrelated_cycles() -> None:
    planner = DependencyPlanner()
    graph = {"x": "y", "y": "x", "a": None}
    assert planner.cycle_through(graph, "a", "x") is None
