"""Planning services that validate scene causality dependencies."""

from __future__ import annotations

from collections.abc import Iterable

from story_timeline.core.temporal_schema import TemporalRecord


class DependencyCycleError(ValueError):
    """Raised when a depends_on edit would make the causality graph cyclic."""

    def __init__(self, scene_id: str, cycle: list[str]) -> None:
        self.scene_id = scene_id
        self.cycle = cycle
        super().__init__(
            f"Scene '{scene_id}' cannot depend on its own consequence: {' -> '.join(cycle)}."
        )


class DependencyPlanner:
    """Computes causality views over the single depends_on edge of each scene."""

    def dependency_graph(self, records: Iterable[TemporalRecord]) -> dict[str, str | None]:
        return {record.id: record.depends_on for record in records}

    def validate_scene_dependencies(self, records: list[TemporalRecord]) -> list[str]:
        issues: list[str] = []
        known = {record.id for record in records}
        for record in records:
            if record.depends_on and record.depends_on not in known:
                issues.append(
                    f"Scene '{record.id}' references unknown dependency '{record.depends_on}'."
                )
        graph = self.dependency_graph(records)
        for cycle in self._cycles(graph):
            issues.append(f"Scene dependency cycle: {' -> '.join(cycle)}.")
        return issues

    def cycle_through(
        self, graph: dict[str, str | None], scene_id: str, depends_on: str | None
    ) -> list[str] | None:
        """Return the cycle that setting ``scene_id -> depends_on`` would close, if any."""
        if not depends_on:
            return None
        path = [scene_id]
        seen = {scene_id}
        current: str | None = depends_on
        while current is not None:
            path.append(current)
            if current == scene_id:
                return path
            if current in seen:
                # Pre-existing cycle not involving scene_id.
                return None
            seen.add(current)
            current = graph.get(current)
        return None

    def ensure_acyclic(
        self, graph: dict[str, str | None], scene_id: str, depends_on: str | None
    ) -> None:
        cycle = self.cycle_through(graph, scene_id, depends_on)
        if cycle is not None:
            raise DependencyCycleError(scene_id, cycle)

    def _cycles(self, graph: dict[str, str | None]) -> list[list[str]]:
        cycles: list[list[str]] = []
        settled: set[str] = set()
        for start in graph:
            if start in settled:
                continue
            path: list[str] = []
            position: dict[str, int] = {}
            node: str | None = start
            while node is not None and node in graph and node not in settled:
                if node in position:
                    cycles.append([*path[position[node] :], node])
                    break
                position[node] = len(path)
                path.append(node)
                node = graph[node]
            settled.update(path)
        return cycles
