"""SQLite status channel: a bounded notice feed plus the open write error per scene."""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_MAX_EVENTS = 10_000


@dataclass(frozen=True)
class StoredStatusEvent:
    """One notice in the feed, numbered in the order it was reported."""

    sequence: int
    created_at_utc: str
    scope: str
    code: str
    severity: str
    message: str
    scene_id: str | None
    metadata_json: str

    @property
    def metadata(self) -> dict[str, object]:
        loaded = json.loads(self.metadata_json)
        return loaded if isinstance(loaded, dict) else {}


@dataclass(frozen=True)
class SceneWriteError:
    """Latest unresolved persistence failure for a scene."""

    scene_id: str
    code: str
    message: str
    failed_at_utc: str
    failure_count: int


def _scene_id_from(metadata: dict[str, object]) -> str | None:
    value = metadata.get("scene_id")
    return value if isinstance(value, str) and value else None


class SQLiteStatusStore:
    """Status sink backed by two tables.

    ``status_feed`` keeps the newest ``max_events`` notices, trimmed on every write.
    ``scene_write_errors`` holds one row per scene whose last temporal write failed;
    a later non-error persistence notice for the same scene resolves the row.
    """

    def __init__(self, db_path: Path, *, max_events: int = DEFAULT_MAX_EVENTS) -> None:
        if max_events <= 0:
            raise ValueError("max_events must be positive.")
        self._db_path = db_path
        self._max_events = max_events
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_schema()

    @property
    def max_events(self) -> int:
        return self._max_events

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(str(self._db_path))
        connection.row_factory = sqlite3.Row
        return connection

    def _initialize_schema(self) -> None:
        with self._connect() as connection:
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS status_feed (
                    sequence INTEGER PRIMARY KEY AUTOINCREMENT,
                    created_at_utc TEXT NOT NULL,
                    scope TEXT NOT NULL,
                    code TEXT NOT NULL,
                    severity TEXT NOT NULL,
                    message TEXT NOT NULL,
                    scene_id TEXT,
                    metadata_json TEXT NOT NULL
                )
                """
            )
            connection.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_status_feed_scope
                ON status_feed(scope, sequence DESC)
                """
            )
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS scene_write_errors (
                    scene_id TEXT PRIMARY KEY,
                    code TEXT NOT NULL,
                    message TEXT NOT NULL,
                    failed_at_utc TEXT NOT NULL,
                    failure_count INTEGER NOT NULL
                )
                """
            )

    def report(
        self,
        *,
        scope: str,
        code: str,
        severity: str,
        message: str,
        metadata: dict[str, object] | None = None,
    ) -> None:
        """Append a notice and keep the per-scene error table in step with it."""
        details = metadata or {}
        scene_id = _scene_id_from(details)
        created_at_utc = datetime.now(UTC).isoformat()
        payload = json.dumps(details, ensure_ascii=False, sort_keys=True, default=str)
        with self._connect() as connection:
            cursor = connection.execute(
                """
                INSERT INTO status_feed (
                    created_at_utc, scope, code, severity, message, scene_id, metadata_json
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (created_at_utc, scope, code, severity, message, scene_id, payload),
            )
            sequence = int(cursor.lastrowid or 0)
            connection.execute(
                "DELETE FROM status_feed WHERE sequence <= ?",
                (sequence - self._max_events,),
            )
            if scope == "persistence" and scene_id is not None:
                if severity == "error":
                    connection.execute(
                        """
                        INSERT INTO scene_write_errors (
                            scene_id, code, message, failed_at_utc, failure_count
                        )
                        VALUES (?, ?, ?, ?, 1)
                        ON CONFLICT(scene_id) DO UPDATE SET
                            code = excluded.code,
                            message = excluded.message,
                            failed_at_utc = excluded.failed_at_utc,
                            failure_count = scene_write_errors.failure_count + 1
                        """,
                        (scene_id, code, message, created_at_utc),
                    )
                else:
                    connection.execute(
                        "DELETE FROM scene_write_errors WHERE scene_id = ?", (scene_id,)
                    )
        logger.info(
            "status.recorded sequence=%s scope=%s code=%s scene_id=%s",
            sequence,
            scope,
            code,
            scene_id,
        )

    def list_recent(self, *, limit: int = 100, scope: str | None = None) -> list[StoredStatusEvent]:
        """Newest first, optionally filtered by scope."""
        if limit <= 0:
            raise ValueError("limit must be positive.")
        where = "WHERE scope = ?" if scope is not None else ""
        params: tuple[object, ...] = (scope, limit) if scope is not None else (limit,)
        with self._connect() as connection:
            rows = connection.execute(
                f"""
                SELECT
                    sequence, created_at_utc, scope, code, severity, message,
                    scene_id, metadata_json
                FROM status_feed
                {where}
                ORDER BY sequence DESC
                LIMIT ?
                """,
                params,
            ).fetchall()
        return [
            StoredStatusEvent(
                sequence=int(row["sequence"]),
                created_at_utc=str(row["created_at_utc"]),
                scope=str(row["scope"]),
                code=str(row["code"]),
                severity=str(row["severity"]),
                message=str(row["message"]),
                scene_id=row["scene_id"],
                metadata_json=str(row["metadata_json"]),
            )
            for row in rows
        ]

    def open_scene_errors(self) -> list[SceneWriteError]:
        """Unresolved write failures, most recent first."""
        with self._connect() as connection:
            rows = connection.execute(
                """
                SELECT scene_id, code, message, failed_at_utc, failure_count
                FROM scene_write_errors
                ORDER BY failed_at_utc DESC, scene_id ASC
                """
            ).fetchall()
        return [
            SceneWriteError(
                scene_id=str(row["scene_id"]),
                code=str(row["code"]),
                message=str(row["message"]),
                failed_at_utc=str(row["failed_at_utc"]),
                failure_count=int(row["failure_count"]),
            )
            for row in rows
        ]

    def discard_scene_errors(self, keep_scene_ids: set[str]) -> int:
        """Drop error rows for scenes no longer in the manuscript."""
        with self._connect() as connection:
            rows = connection.execute("SELECT scene_id FROM scene_write_errors").fetchall()
            stale = [str(row["scene_id"]) for row in rows if row["scene_id"] not in keep_scene_ids]
            connection.executemany(
                "DELETE FROM scene_write_errors WHERE scene_id = ?",
                [(scene_id,) for scene_id in stale],
            )
        return len(stale)
