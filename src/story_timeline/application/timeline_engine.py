"""Per-project temporal engine: owns temporal state and keeps derived views current."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from uuid import uuid4

from story_timeline.application.planning import DependencyPlanner
from story_timeline.core.calendar_system import CalendarSystem
from story_timeline.core.chronological_reorder import (
    DEFAULT_PREVIEW_LIMIT,
    ReorderPlan,
    plan_chronological_reorder,
)
from story_timeline.core.paradox_detection import DEFAULT_GAP_THRESHOLD_DAYS, analyze_consistency
from story_timeline.core.scheduling import (
    narrative_connectors,
    plan_drop,
    plan_move,
    timeline_items,
)
from story_timeline.core.temporal_contracts import validate_record_input
from story_timeline.core.temporal_projection import project_temporal_records, split_assignment
from story_timeline.core.temporal_schema import (
    PLOTLINE_COLORS,
    CalendarConfig,
    CalendarSystemName,
    MonthConfig,
    NarrativeConnector,
    ParadoxWarning,
    Plotline,
    TemporalFieldUpdate,
    TemporalRecord,
    TimelineItem,
    default_plotline,
)
from story_timeline.domain.models import SceneNode, flatten_scene_tree
from story_timeline.domain.ports import ManuscriptStore, StatusSink

logger = logging.getLogger(__name__)


class UnknownSceneError(KeyError):
    """Raised when an action names a scene the manuscript does not contain."""


class UnknownPlotlineError(KeyError):
    """Raised when an action names a plotline the project does not contain."""


@dataclass(frozen=True)
class _DerivedViews:
    records: list[TemporalRecord]
    assigned: list[TemporalRecord]
    unassigned: list[TemporalRecord]
    warnings: list[ParadoxWarning]
    connectors: list[NarrativeConnector]


def _month_structure(calendar: CalendarSystem) -> tuple[tuple[str, int], ...] | None:
    if calendar.config.system == "gregorian":
        return None
    return tuple((month.name, month.days) for month in calendar.months())


class TimelineEngine:
    """Owns one project's temporal records, plotlines, and calendar.

    Every mutation recomputes warnings, connectors, and assignment views before
    returning. Writes go to the store immediately; a failed write is reported once
    through the status sink and kept in ``write_errors`` without rolling back.
    """

    def __init__(
        self,
        store: ManuscriptStore,
        *,
        status_sink: StatusSink | None = None,
        gap_threshold_days: int = DEFAULT_GAP_THRESHOLD_DAYS,
    ) -> None:
        if gap_threshold_days <= 0:
            raise ValueError("gap_threshold_days must be positive.")
        self._store = store
        self._status_sink = status_sink
        self._gap_threshold_days = gap_threshold_days
        self._planner = DependencyPlanner()
        self._scenes: dict[str, SceneNode] = {}
        self._plotlines: list[Plotline] = []
        self._calendar = CalendarSystem()
        self._projected_ids: set[str] = set()
        self._write_errors: dict[str, str] = {}
        self._needs_review: set[str] = set()
        self._views: _DerivedViews | None = None
        self.reload()

    def reload(self) -> None:
        """Re-read scenes, plotlines, and calendar settings from the store."""
        flat = [
            replace(node, children=())
            for node in flatten_scene_tree(self._store.list_scenes())
        ]
        validate_record_input(project_temporal_records(flat))
        scenes = {node.id: node for node in flat}
        projected_ids = self._projected_ids & set(scenes)
        views = self._derive(scenes, projected_ids)
        self._scenes = scenes
        self._projected_ids = projected_ids
        self._views = views
        self._plotlines = self._store.list_plotlines() or [default_plotline()]
        self._calendar = CalendarSystem(self._store.load_calendar_config() or CalendarConfig())
        self._needs_review &= set(self._scenes)
        self._write_errors = {
            scene_id: error
            for scene_id, error in self._write_errors.items()
            if scene_id in self._scenes
        }
        logger.info(
            "timeline.load scenes=%s plotlines=%s calendar=%s",
            len(self._scenes),
            len(self._plotlines),
            self._calendar.config.system,
        )

    # Derived, read-only views.

    @property
    def records(self) -> list[TemporalRecord]:
        return list(self._current_views().records)

    @property
    def assigned_scenes(self) -> list[TemporalRecord]:
        return list(self._current_views().assigned)

    @property
    def unassigned_scenes(self) -> list[TemporalRecord]:
        return list(self._current_views().unassigned)

    @property
    def paradox_warnings(self) -> list[ParadoxWarning]:
        return list(self._current_views().warnings)

    @property
    def narrative_connectors(self) -> list[NarrativeConnector]:
        return list(self._current_views().connectors)

    @property
    def timeline_items(self) -> list[TimelineItem]:
        views = self._current_views()
        return timeline_items(views.assigned, warnings=views.warnings, plotlines=self._plotlines)

    @property
    def plotlines(self) -> list[Plotline]:
        return list(self._plotlines)

    @property
    def calendar(self) -> CalendarSystem:
        return self._calendar

    @property
    def write_errors(self) -> dict[str, str]:
        """Last persistence error per scene; cleared by the next successful write."""
        return dict(self._write_errors)

    @property
    def records_needing_review(self) -> list[str]:
        """Assigned scenes flagged after the calendar month structure changed."""
        return [scene_id for scene_id in self._scenes if scene_id in self._needs_review]

    def record(self, scene_id: str) -> TemporalRecord:
        for record in self._current_views().records:
            if record.id == scene_id:
                return record
        raise UnknownSceneError(scene_id)

    def format_date(self, raw: str | None) -> str:
        return self._calendar.format_instant(raw)

    def dependency_issues(self) -> list[str]:
        """Unknown dependency targets and cycles already present in stored data."""
        return self._planner.validate_scene_dependencies(self._current_views().records)

    # Temporal mutations.

    def update_temporal_fields(
        self, scene_id: str, update: TemporalFieldUpdate
    ) -> TemporalRecord:
        """Apply explicit temporal fields, persist the changed subset, and recompute views."""
        return self._apply_update(scene_id, update)

    def handle_scheduling_move(
        self,
        scene_id: str,
        *,
        start: datetime,
        end: datetime | None = None,
        lane_id: str | None = None,
    ) -> TemporalRecord:
        """Apply a drag or resize from the timeline surface."""
        self._require_scene(scene_id)
        update = plan_move(start=start, end=end, lane_id=lane_id)
        logger.info(
            "timeline.move scene_id=%s start=%s duration=%s lane=%s",
            scene_id,
            update.chronological_date,
            update.duration,
            update.plotline_tag,
        )
        return self.update_temporal_fields(scene_id, update)

    def handle_scheduling_drop(
        self,
        scene_id: str,
        *,
        at: datetime,
        lane_id: str | None = None,
    ) -> TemporalRecord:
        """Place a holding-pen scene on the timeline."""
        record = self.record(scene_id)
        plan = plan_drop(
            record,
            at=at,
            lane_id=lane_id,
            known_lanes=[plotline.id for plotline in self._plotlines],
        )
        logger.info(
            "timeline.drop scene_id=%s at=%s lane=%s projected=%s",
            scene_id,
            plan.update.chronological_date,
            plan.lane_id,
            plan.projected_duration,
        )
        return self._apply_update(
            scene_id, plan.update, mark_projected=plan.projected_duration
        )

    # Chronological reordering.

    def preview_chronological_reorder(
        self, *, preview_limit: int = DEFAULT_PREVIEW_LIMIT
    ) -> ReorderPlan:
        return plan_chronological_reorder(
            self._current_views().records, preview_limit=preview_limit
        )

    def apply_chronological_reorder(
        self, *, preview_limit: int = DEFAULT_PREVIEW_LIMIT
    ) -> ReorderPlan:
        """Replace manuscript order with story-time order in one store call."""
        plan = self.preview_chronological_reorder(preview_limit=preview_limit)
        if not plan.changed:
            logger.info("timeline.reorder changed=false scenes=%s", len(plan.ordered_ids))
            return plan
        scenes = {scene_id: self._scenes[scene_id] for scene_id in plan.ordered_ids}
        self._views = self._derive(scenes, self._projected_ids)
        self._scenes = scenes
        logger.info("timeline.reorder changed=true scenes=%s", len(plan.ordered_ids))
        try:
            self._store.replace_order(list(plan.ordered_ids))
        except Exception as exc:  # noqa: BLE001
            self._report_failure(
                code="reorder_write_failed",
                message=f"Failed to save chronological order: {exc}",
                metadata={"scene_count": len(plan.ordered_ids)},
            )
        return plan

    # Calendar configuration.

    def apply_calendar_config(self, config: CalendarConfig) -> CalendarConfig:
        """Swap system, epoch, and months together."""
        previous = self._calendar
        self._calendar = CalendarSystem(config)
        if _month_structure(previous) != _month_structure(self._calendar):
            flagged = [record.id for record in self._current_views().assigned]
            self._needs_review.update(flagged)
            if flagged:
                self._report(
                    scope="calendar",
                    code="calendar_structure_changed",
                    severity="warning",
                    message=(
                        f"Calendar month structure changed; {len(flagged)} dated scenes "
                        "should be reviewed."
                    ),
                    metadata={"scene_ids": flagged, "system": config.system},
                )
        logger.info(
            "calendar.apply system=%s epoch_year=%s months=%s",
            config.system,
            config.epoch_year,
            len(config.months),
        )
        try:
            self._store.save_calendar_config(config)
        except Exception as exc:  # noqa: BLE001
            self._report_failure(
                code="calendar_write_failed",
                message=f"Failed to save calendar settings: {exc}",
                metadata={"system": config.system},
            )
        return config

    def set_system(self, system: CalendarSystemName) -> CalendarConfig:
        current = self._calendar.config
        return self.apply_calendar_config(
            CalendarConfig(system=system, epoch_year=current.epoch_year, months=current.months)
        )

    def set_start_year(self, year: int) -> CalendarConfig:
        current = self._calendar.config
        return self.apply_calendar_config(
            CalendarConfig(system=current.system, epoch_year=year, months=current.months)
        )

    def set_custom_months(self, months: list[MonthConfig]) -> CalendarConfig:
        current = self._calendar.config
        return self.apply_calendar_config(
            CalendarConfig(system=current.system, epoch_year=current.epoch_year, months=months)
        )

    def mark_reviewed(self, scene_ids: list[str]) -> None:
        self._needs_review.difference_update(scene_ids)

    # Plotlines.

    def add_plotline(self, name: str, color: str | None = None) -> Plotline:
        plotline = Plotline(
            id=f"plotline-{uuid4().hex[:12]}",
            name=name,
            color=color or PLOTLINE_COLORS[len(self._plotlines) % len(PLOTLINE_COLORS)],
        )
        self._plotlines = [*self._plotlines, plotline]
        self._persist_plotlines()
        return plotline

    def update_plotline(
        self, plotline_id: str, *, name: str | None = None, color: str | None = None
    ) -> Plotline:
        existing = self._require_plotline(plotline_id)
        updated = Plotline(
            id=existing.id,
            name=name if name is not None else existing.name,
            color=color if color is not None else existing.color,
        )
        self._plotlines = [updated if p.id == plotline_id else p for p in self._plotlines]
        self._persist_plotlines()
        return updated

    def remove_plotline(self, plotline_id: str) -> list[str]:
        """Delete a lane and move its scenes back to the default lane.

        Returns the ids of scenes whose plotline tag was cleared.
        """
        self._require_plotline(plotline_id)
        self._plotlines = [p for p in self._plotlines if p.id != plotline_id]
        self._persist_plotlines()
        orphaned = [node.id for node in self._scenes.values() if node.plotline_tag == plotline_id]
        for scene_id in orphaned:
            self.update_temporal_fields(scene_id, TemporalFieldUpdate(plotline_tag=None))
        return orphaned

    # Internals.

    def _require_scene(self, scene_id: str) -> SceneNode:
        node = self._scenes.get(scene_id)
        if node is None:
            raise UnknownSceneError(scene_id)
        return node

    def _require_plotline(self, plotline_id: str) -> Plotline:
        for plotline in self._plotlines:
            if plotline.id == plotline_id:
                return plotline
        raise UnknownPlotlineError(plotline_id)

    def _apply_update(
        self,
        scene_id: str,
        update: TemporalFieldUpdate,
        *,
        mark_projected: bool = False,
    ) -> TemporalRecord:
        node = self._require_scene(scene_id)
        changes = {
            name: value
            for name, value in update.changes().items()
            if getattr(node, name) != value
        }
        projected_ids = set(self._projected_ids)
        if mark_projected:
            projected_ids.add(scene_id)
        if changes.get("duration"):
            projected_ids.discard(scene_id)
        if not changes and projected_ids == self._projected_ids:
            return self.record(scene_id)
        if "depends_on" in changes:
            graph = {scene.id: scene.depends_on for scene in self._scenes.values()}
            self._planner.ensure_acyclic(graph, scene_id, changes["depends_on"])
        scenes = dict(self._scenes)
        if changes:
            scenes[scene_id] = replace(node, **changes)
        # Nothing is committed until the candidate views derive cleanly.
        views = self._derive(scenes, projected_ids)
        self._scenes = scenes
        self._projected_ids = projected_ids
        self._views = views
        if changes:
            self._persist_fields(scene_id, changes)
        return self.record(scene_id)

    def _current_views(self) -> _DerivedViews:
        if self._views is None:
            self._refresh()
        assert self._views is not None
        return self._views

    def _refresh(self) -> None:
        self._views = self._derive(self._scenes, self._projected_ids)

    def _derive(self, scenes: dict[str, SceneNode], projected_ids: set[str]) -> _DerivedViews:
        records = project_temporal_records(scenes.values(), projected_ids=projected_ids)
        assigned, unassigned = split_assignment(records)
        return _DerivedViews(
            records=records,
            assigned=assigned,
            unassigned=unassigned,
            warnings=analyze_consistency(records, gap_threshold_days=self._gap_threshold_days),
            connectors=narrative_connectors(records),
        )

    def _persist_fields(self, scene_id: str, changes: dict[str, str | None]) -> None:
        try:
            self._store.update_temporal_fields(scene_id, changes)
        except Exception as exc:  # noqa: BLE001
            self._write_errors[scene_id] = str(exc)
            self._report_failure(
                code="temporal_write_failed",
                message=f"Failed to save temporal fields for scene '{scene_id}': {exc}",
                metadata={"scene_id": scene_id, "fields": sorted(changes)},
            )
            return
        if self._write_errors.pop(scene_id, None) is not None:
            self._report(
                scope="persistence",
                code="temporal_write_recovered",
                severity="info",
                message=f"Saved temporal fields for scene '{scene_id}'.",
                metadata={"scene_id": scene_id, "fields": sorted(changes)},
            )

    def _persist_plotlines(self) -> None:
        try:
            self._store.save_plotlines(list(self._plotlines))
        except Exception as exc:  # noqa: BLE001
            self._report_failure(
                code="plotline_write_failed",
                message=f"Failed to save plotlines: {exc}",
                metadata={"plotline_count": len(self._plotlines)},
            )

    def _report_failure(self, *, code: str, message: str, metadata: dict[str, object]) -> None:
        logger.warning("persistence.failed code=%s message=%s", code, message)
        self._report(
            scope="persistence",
            code=code,
            severity="error",
            message=message,
            metadata=metadata,
        )

    def _report(
        self,
        *,
        scope: str,
        code: str,
        severity: str,
        message: str,
        metadata: dict[str, object],
    ) -> None:
        if self._status_sink is None:
            return
        self._status_sink.report(
            scope=scope,
            code=code,
            severity=severity,
            message=message,
            metadata=metadata,
        )
