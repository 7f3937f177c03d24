"""Ports for the manuscript store the temporal engine reads from and writes to."""

from __future__ import annotations

from typing import Protocol

from story_timeline.core.temporal_schema import CalendarConfig, Plotline
from story_timeline.domain.models import SceneNode


class ManuscriptStoreError(RuntimeError):
    """Raised by store implementations when a durable write fails."""


class ManuscriptStore(Protocol):
    """Owns scenes, plotlines, and project calendar settings."""

    def list_scenes(self) -> list[SceneNode]:
        ...

    def list_plotlines(self) -> list[Plotline]:
        ...

    def update_temporal_fields(self, scene_id: str, fields: dict[str, str | None]) -> None:
        ...

    def replace_order(self, scene_ids: list[str]) -> None:
        ...

    def save_plotlines(self, plotlines: list[Plotline]) -> None:
        ...

    def load_calendar_config(self) -> CalendarConfig | None:
        ...

    def save_calendar_config(self, config: CalendarConfig) -> None:
        ...


class StatusSink(Protocol):
    """User-facing channel for persistence failures and review notices."""

    def report(
        self,
        *,
        scope: str,
        code: str,
        severity: str,
        message: str,
        metadata: dict[str, object] | None = None,
    ) -> None:
        ...
