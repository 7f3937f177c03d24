"""In-process manuscript store backing file-based workflows."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace

from story_timeline.core.temporal_schema import TEMPORAL_FIELDS, CalendarConfig, Plotline
from story_timeline.domain.models import SceneNode, flatten_scene_tree
from story_timeline.domain.ports import ManuscriptStoreError


class InMemoryManuscriptStore:
    """Holds a manuscript tree in memory; same write semantics as the SQLite store."""

    def __init__(
        self,
        scenes: Iterable[SceneNode] = (),
        *,
        plotlines: Iterable[Plotline] = (),
        calendar: CalendarConfig | None = None,
    ) -> None:
        self._scenes = list(scenes)
        self._plotlines = list(plotlines)
        self._calendar = calendar
        self.write_count = 0

    def list_scenes(self) -> list[SceneNode]:
        return list(self._scenes)

    def list_plotlines(self) -> list[Plotline]:
        return list(self._plotlines)

    def update_temporal_fields(self, scene_id: str, fields: dict[str, str | None]) -> None:
        unknown = sorted(set(fields) - set(TEMPORAL_FIELDS))
        if unknown:
            raise ManuscriptStoreError(f"Unsupported temporal fields: {', '.join(unknown)}.")
        updated, found = _replace_in_tree(self._scenes, scene_id, fields)
        if not found:
            raise ManuscriptStoreError(f"Scene '{scene_id}' does not exist.")
        self._scenes = updated
        self.write_count += 1

    def replace_order(self, scene_ids: list[str]) -> None:
        """Flatten the tree into ``scene_ids`` order."""
        nodes = {node.id: replace(node, children=()) for node in flatten_scene_tree(self._scenes)}
        if set(nodes) != set(scene_ids) or len(nodes) != len(scene_ids):
            raise ManuscriptStoreError("Reorder must list every stored scene exactly once.")
        self._scenes = [nodes[scene_id] for scene_id in scene_ids]
        self.write_count += 1

    def save_plotlines(self, plotlines: list[Plotline]) -> None:
        self._plotlines = list(plotlines)
        self.write_count += 1

    def load_calendar_config(self) -> CalendarConfig | None:
        return self._calendar

    def save_calendar_config(self, config: CalendarConfig) -> None:
        self._calendar = config
        self.write_count += 1


def _replace_in_tree(
    nodes: list[SceneNode], scene_id: str, fields: dict[str, str | None]
) -> tuple[list[SceneNode], bool]:
    found = False
    result: list[SceneNode] = []
    for node in nodes:
        if node.id == scene_id:
            node = replace(node, **fields)
            found = True
        elif node.children:
            children, child_found = _replace_in_tree(list(node.children), scene_id, fields)
            if child_found:
                node = replace(node, children=tuple(children))
                found = True
        result.append(node)
    return result, found
