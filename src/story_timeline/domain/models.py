"""Manuscript-side scene shapes consumed by the temporal engine."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field


@dataclass(frozen=True)
class SceneNode:
    """One manuscript node with the temporal metadata the writer attached to it."""

    id: str
    title: str
    word_count: int = 0
    chronological_date: str | None = None
    abstract_timeframe: str | None = None
    duration: str | None = None
    plotline_tag: str | None = None
    depends_on: str | None = None
    pov_character_id: str | None = None
    children: tuple[SceneNode, ...] = field(default_factory=tuple)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> SceneNode:
        """Build a node tree from manifest-style dictionaries."""

        def optional_text(key: str) -> str | None:
            value = payload.get(key)
            if value is None:
                return None
            text = str(value).strip()
            return text or None

        raw_children = payload.get("children")
        children: tuple[SceneNode, ...] = ()
        if isinstance(raw_children, list):
            children = tuple(
                cls.from_mapping(child) for child in raw_children if isinstance(child, Mapping)
            )
        raw_word_count = payload.get("word_count")
        word_count = int(raw_word_count) if isinstance(raw_word_count, (int, float)) else 0
        return cls(
            id=str(payload["id"]),
            title=str(payload.get("title") or payload.get("name") or "Untitled"),
            word_count=max(0, word_count),
            chronological_date=optional_text("chronological_date"),
            abstract_timeframe=optional_text("abstract_timeframe"),
            duration=optional_text("duration"),
            plotline_tag=optional_text("plotline_tag"),
            depends_on=optional_text("depends_on"),
            pov_character_id=optional_text("pov_character_id"),
            children=children,
        )


def flatten_scene_tree(nodes: Iterable[SceneNode]) -> Iterator[SceneNode]:
    """Yield nodes depth-first, parent before children, which is manuscript order."""
    for node in nodes:
        yield node
        if node.children:
            yield from flatten_scene_tree(node.children)
