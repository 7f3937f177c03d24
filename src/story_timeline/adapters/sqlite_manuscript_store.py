"""SQLite-backed manuscript store for scenes, plotlines, and calendar settings."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from story_timeline.core.temporal_schema import TEMPORAL_FIELDS, CalendarConfig, Plotline
from story_timeline.domain.models import SceneNode
from story_timeline.domain.ports import ManuscriptStoreError

CALENDAR_SETTINGS_KEY = "calendar"


@dataclass(frozen=True)
class _SceneRow:
    node: SceneNode
    parent_id: str | None


class SQLiteManuscriptStore:
    """Persist one project's manuscript tree and temporal settings in SQLite."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_schema()

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(str(self._db_path))
        connection.row_factory = sqlite3.Row
        return connection

    def _initialize_schema(self) -> None:
        with self._connect() as connection:
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS scenes (
                    scene_id TEXT PRIMARY KEY,
                    parent_id TEXT,
                    position INTEGER NOT NULL,
                    title TEXT NOT NULL,
                    word_count INTEGER NOT NULL DEFAULT 0,
                    chronological_date TEXT,
                    abstract_timeframe TEXT,
                    duration TEXT,
                    plotline_tag TEXT,
                    depends_on TEXT,
                    pov_character_id TEXT,
                    updated_at_utc TEXT NOT NULL
                )
                """
            )
            connection.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_scenes_parent_position
                ON scenes(parent_id, position)
                """
            )
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS plotlines (
                    plotline_id TEXT PRIMARY KEY,
                    position INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    color TEXT NOT NULL
                )
                """
            )
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS project_settings (
                    setting_key TEXT PRIMARY KEY,
                    value_json TEXT NOT NULL,
                    updated_at_utc TEXT NOT NULL
                )
                """
            )

    def import_scenes(self, scenes: list[SceneNode]) -> int:
        """Replace the whole manuscript tree; returns the number of stored scenes."""
        now = datetime.now(UTC).isoformat()
        rows: list[tuple[object, ...]] = []

        def collect(nodes: tuple[SceneNode, ...] | list[SceneNode], parent_id: str | None) -> None:
            for position, node in enumerate(nodes):
                rows.append(
                    (
                        node.id,
                        parent_id,
                        position,
                        node.title,
                        node.word_count,
                        node.chronological_date,
                        node.abstract_timeframe,
                        node.duration,
                        node.plotline_tag,
                        node.depends_on,
                        node.pov_character_id,
                        now,
                    )
                )
                collect(node.children, node.id)

        collect(scenes, None)
        try:
            with self._connect() as connection:
                connection.execute("DELETE FROM scenes")
                connection.executemany(
                    """
                    INSERT INTO scenes (
                        scene_id,
                        parent_id,
                        position,
                        title,
                        word_count,
                        chronological_date,
                        abstract_timeframe,
                        duration,
                        plotline_tag,
                        depends_on,
                        pov_character_id,
                        updated_at_utc
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    rows,
                )
        except sqlite3.IntegrityError as exc:
            raise ManuscriptStoreError(f"Manuscript import rejected: {exc}") from exc
        return len(rows)

    def list_scenes(self) -> list[SceneNode]:
        """Load the manuscript tree with children in stored position order."""
        with self._connect() as connection:
            rows = connection.execute(
                """
                SELECT
                    scene_id,
                    parent_id,
                    title,
                    word_count,
                    chronological_date,
                    abstract_timeframe,
                    duration,
                    plotline_tag,
                    depends_on,
                    pov_character_id
                FROM scenes
                ORDER BY position ASC, scene_id ASC
                """
            ).fetchall()
        scene_rows = [self._scene_from_row(row) for row in rows]
        nodes = {scene_row.node.id: scene_row.node for scene_row in scene_rows}
        children_by_parent: dict[str | None, list[str]] = {}
        for scene_row in scene_rows:
            # Rows whose parent vanished are promoted to the top level.
            parent = scene_row.parent_id if scene_row.parent_id in nodes else None
            children_by_parent.setdefault(parent, []).append(scene_row.node.id)

        def build(scene_id: str, visiting: frozenset[str]) -> SceneNode:
            child_ids = [
                child_id
                for child_id in children_by_parent.get(scene_id, [])
                if child_id not in visiting
            ]
            children = tuple(build(child_id, visiting | {child_id}) for child_id in child_ids)
            return replace(nodes[scene_id], children=children)

        return [
            build(scene_id, frozenset({scene_id})) for scene_id in children_by_parent.get(None, [])
        ]

    def update_temporal_fields(self, scene_id: str, fields: dict[str, str | None]) -> None:
        unknown = sorted(set(fields) - set(TEMPORAL_FIELDS))
        if unknown:
            raise ManuscriptStoreError(f"Unsupported temporal fields: {', '.join(unknown)}.")
        if not fields:
            return
        columns = [name for name in TEMPORAL_FIELDS if name in fields]
        assignments = ", ".join(f"{column} = ?" for column in columns)
        values = [fields[column] for column in columns]
        with self._connect() as connection:
            updated = connection.execute(
                f"UPDATE scenes SET {assignments}, updated_at_utc = ? WHERE scene_id = ?",
                (*values, datetime.now(UTC).isoformat(), scene_id),
            )
        if updated.rowcount == 0:
            raise ManuscriptStoreError(f"Scene '{scene_id}' does not exist.")

    def replace_order(self, scene_ids: list[str]) -> None:
        """Flatten the manuscript into ``scene_ids`` order in one transaction."""
        now = datetime.now(UTC).isoformat()
        with self._connect() as connection:
            existing = {
                str(row["scene_id"])
                for row in connection.execute("SELECT scene_id FROM scenes").fetchall()
            }
            if existing != set(scene_ids) or len(scene_ids) != len(existing):
                raise ManuscriptStoreError("Reorder must list every stored scene exactly once.")
            connection.executemany(
                """
                UPDATE scenes
                SET parent_id = NULL, position = ?, updated_at_utc = ?
                WHERE scene_id = ?
                """,
                [(position, now, scene_id) for position, scene_id in enumerate(scene_ids)],
            )

    def list_plotlines(self) -> list[Plotline]:
        with self._connect() as connection:
            rows = connection.execute(
                """
                SELECT plotline_id, name, color
                FROM plotlines
                ORDER BY position ASC
                """
            ).fetchall()
        return [
            Plotline(id=str(row["plotline_id"]), name=str(row["name"]), color=str(row["color"]))
            for row in rows
        ]

    def save_plotlines(self, plotlines: list[Plotline]) -> None:
        with self._connect() as connection:
            connection.execute("DELETE FROM plotlines")
            connection.executemany(
                """
                INSERT INTO plotlines (plotline_id, position, name, color)
                VALUES (?, ?, ?, ?)
                """,
                [
                    (plotline.id, position, plotline.name, plotline.color)
                    for position, plotline in enumerate(plotlines)
                ],
            )

    def load_calendar_config(self) -> CalendarConfig | None:
        with self._connect() as connection:
            row = connection.execute(
                """
                SELECT value_json
                FROM project_settings
                WHERE setting_key = ?
                """,
                (CALENDAR_SETTINGS_KEY,),
            ).fetchone()
        if row is None:
            return None
        try:
            return CalendarConfig.model_validate_json(str(row["value_json"]))
        except ValidationError as exc:
            raise ManuscriptStoreError(f"Stored calendar settings are invalid: {exc}") from exc

    def save_calendar_config(self, config: CalendarConfig) -> None:
        with self._connect() as connection:
            connection.execute(
                """
                INSERT INTO project_settings (setting_key, value_json, updated_at_utc)
                VALUES (?, ?, ?)
                ON CONFLICT(setting_key) DO UPDATE SET
                    value_json = excluded.value_json,
                    updated_at_utc = excluded.updated_at_utc
                """,
                (CALENDAR_SETTINGS_KEY, config.model_dump_json(), datetime.now(UTC).isoformat()),
            )

    @staticmethod
    def _scene_from_row(row: sqlite3.Row) -> _SceneRow:
        def optional(key: str) -> str | None:
            value = row[key]
            return None if value is None else str(value)

        return _SceneRow(
            node=SceneNode(
                id=str(row["scene_id"]),
                title=str(row["title"]),
                word_count=int(row["word_count"]),
                chronological_date=optional("chronological_date"),
                abstract_timeframe=optional("abstract_timeframe"),
                duration=optional("duration"),
                plotline_tag=optional("plotline_tag"),
                depends_on=optional("depends_on"),
                pov_character_id=optional("pov_character_id"),
            ),
            parent_id=optional("parent_id"),
        )
