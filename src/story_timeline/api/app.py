"""FastAPI application exposing the temporal engine for one manuscript project."""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import AsyncIterator, Callable, Iterator
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path
from typing import Literal, TypeVar

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, ValidationError

from story_timeline.adapters.sqlite_manuscript_store import SQLiteManuscriptStore
from story_timeline.adapters.sqlite_status_store import (
    DEFAULT_MAX_EVENTS,
    SQLiteStatusStore,
    SceneWriteError,
    StoredStatusEvent,
)
from story_timeline.api.contracts import (
    CalendarFormatResponse,
    CalendarParseResponse,
    CalendarResponse,
    CalendarReviewRequest,
    ManuscriptDocument,
    ManuscriptImportResponse,
    PlotlineCreateRequest,
    PlotlineRemovalResponse,
    PlotlineUpdateRequest,
    ReorderPlanResponse,
    ReorderPreviewEntryResponse,
    SceneWriteErrorResponse,
    SchedulingDropRequest,
    SchedulingMoveRequest,
    StatusEventResponse,
    TemporalFieldsUpdateRequest,
    TimelineViewResponse,
)
from story_timeline.application.planning import DependencyCycleError
from story_timeline.application.timeline_engine import (
    TimelineEngine,
    UnknownPlotlineError,
    UnknownSceneError,
)
from story_timeline.core.calendar_system import CalendarParseError, instant_from_ordinal
from story_timeline.core.chronological_reorder import DEFAULT_PREVIEW_LIMIT, ReorderPlan
from story_timeline.core.paradox_detection import DEFAULT_GAP_THRESHOLD_DAYS
from story_timeline.core.temporal_schema import CalendarConfig, Plotline, TemporalRecord
from story_timeline.domain.ports import ManuscriptStoreError

DEFAULT_DB_PATH = Path("work/local/story_timeline.db")

logger = logging.getLogger(__name__)

T = TypeVar("T")


class HealthResponse(BaseModel):
    """Simple health payload used by probes."""

    status: Literal["ok"] = "ok"
    service: str = "story_timeline"


class ApiRootResponse(BaseModel):
    """Describes currently available API capabilities and runtime mode."""

    name: str = "story_timeline"
    stage: Literal["local-preview"] = "local-preview"
    persistence: Literal["sqlite"] = "sqlite"
    endpoints: list[str] = Field(
        default_factory=lambda: [
            "/healthz",
            "/api/v1",
            "/api/v1/manuscript",
            "/api/v1/timeline",
            "/api/v1/timeline/move",
            "/api/v1/timeline/drop",
            "/api/v1/timeline/reorder/preview",
            "/api/v1/timeline/reorder",
            "/api/v1/scenes/{scene_id}",
            "/api/v1/scenes/{scene_id}/temporal",
            "/api/v1/calendar",
            "/api/v1/calendar/format",
            "/api/v1/calendar/parse",
            "/api/v1/calendar/review",
            "/api/v1/plotlines",
            "/api/v1/plotlines/{plotline_id}",
            "/api/v1/status",
            "/api/v1/status/scenes",
        ]
    )


def _resolve_db_path(db_path: Path | None) -> Path:
    """Resolve DB path from explicit arg, env var, then default path."""
    if db_path is not None:
        return db_path
    env_value = os.environ.get("STORY_TIMELINE_DB_PATH", "").strip()
    if env_value:
        return Path(env_value)
    return DEFAULT_DB_PATH


def _cors_origins() -> list[str]:
    raw = os.environ.get("STORY_TIMELINE_CORS_ORIGINS", "").strip()
    if raw:
        return [origin.strip() for origin in raw.split(",") if origin.strip()]
    return [
        "http://127.0.0.1:5173",
        "http://localhost:5173",
    ]


def _int_env(name: str, default: int, *, minimum: int, maximum: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, min(maximum, value))


def _reorder_response(plan: ReorderPlan, *, applied: bool) -> ReorderPlanResponse:
    return ReorderPlanResponse(
        changed=plan.changed,
        applied=applied,
        current_ids=list(plan.current_ids),
        ordered_ids=list(plan.ordered_ids),
        preview=[
            ReorderPreviewEntryResponse(
                position=entry.position,
                scene_id=entry.scene_id,
                title=entry.title,
                time_key=entry.time_key,
            )
            for entry in plan.preview
        ],
    )


def _status_response(event: StoredStatusEvent) -> StatusEventResponse:
    return StatusEventResponse(
        sequence=event.sequence,
        created_at_utc=event.created_at_utc,
        scope=event.scope,
        code=event.code,
        severity=event.severity,
        message=event.message,
        scene_id=event.scene_id,
        metadata=event.metadata,
    )


def _scene_error_response(error: SceneWriteError) -> SceneWriteErrorResponse:
    return SceneWriteErrorResponse(
        scene_id=error.scene_id,
        code=error.code,
        message=error.message,
        failed_at_utc=error.failed_at_utc,
        failure_count=error.failure_count,
    )


def create_app(db_path: Path | None = None) -> FastAPI:
    """Create the API application."""
    effective_db_path = _resolve_db_path(db_path)
    store = SQLiteManuscriptStore(db_path=effective_db_path)
    gap_threshold_days = _int_env(
        "STORY_TIMELINE_GAP_THRESHOLD_DAYS",
        DEFAULT_GAP_THRESHOLD_DAYS,
        minimum=1,
        maximum=365_000,
    )
    status_max_events = _int_env(
        "STORY_TIMELINE_STATUS_MAX_EVENTS",
        DEFAULT_MAX_EVENTS,
        minimum=10,
        maximum=2_000_000,
    )
    status_store = SQLiteStatusStore(db_path=effective_db_path, max_events=status_max_events)
    engine = TimelineEngine(
        store,
        status_sink=status_store,
        gap_threshold_days=gap_threshold_days,
    )
    engine_lock = threading.Lock()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        open_errors = status_store.open_scene_errors()
        if open_errors:
            logger.warning(
                "status.open_scene_errors count=%s scene_ids=%s",
                len(open_errors),
                ",".join(error.scene_id for error in open_errors),
            )
        yield

    app = FastAPI(
        title="story_timeline API",
        version="0.1.0",
        description=(
            "Local preview API for placing manuscript scenes in story time, "
            "surfacing temporal paradoxes, and reordering chapters chronologically."
        ),
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        openapi_tags=[
            {"name": "system", "description": "Service health and runtime metadata."},
            {"name": "api", "description": "API discovery and root-level capability listing."},
            {"name": "manuscript", "description": "Manuscript import and scene temporal edits."},
            {"name": "timeline", "description": "Timeline read model and scheduling gestures."},
            {"name": "calendar", "description": "Calendar system configuration and display."},
            {"name": "plotlines", "description": "Plotline lanes shown on the timeline."},
            {"name": "status", "description": "Persistence failures and review notices."},
        ],
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    logger.info(
        "api.start db_path=%s gap_threshold_days=%s status_max_events=%s",
        effective_db_path,
        gap_threshold_days,
        status_max_events,
    )

    @contextmanager
    def engine_session() -> Iterator[TimelineEngine]:
        """Serialize engine access and translate domain errors to HTTP errors."""
        with engine_lock:
            try:
                yield engine
            except UnknownSceneError as exc:
                raise HTTPException(status_code=404, detail="Scene not found") from exc
            except UnknownPlotlineError as exc:
                raise HTTPException(status_code=404, detail="Plotline not found") from exc
            except DependencyCycleError as exc:
                raise HTTPException(status_code=409, detail=str(exc)) from exc
            except CalendarParseError as exc:
                raise HTTPException(status_code=422, detail=str(exc)) from exc
            except ValidationError as exc:
                raise HTTPException(
                    status_code=422,
                    detail=exc.errors(include_url=False, include_context=False),
                ) from exc

    def run(action: Callable[[TimelineEngine], T]) -> T:
        with engine_session() as session:
            return action(session)

    def timeline_view(current: TimelineEngine) -> TimelineViewResponse:
        return TimelineViewResponse(
            assigned=current.assigned_scenes,
            unassigned=current.unassigned_scenes,
            warnings=current.paradox_warnings,
            connectors=current.narrative_connectors,
            items=current.timeline_items,
            plotlines=current.plotlines,
            write_errors=current.write_errors,
            records_needing_review=current.records_needing_review,
        )

    def calendar_view(current: TimelineEngine) -> CalendarResponse:
        return CalendarResponse(
            config=current.calendar.config,
            system_name=current.calendar.system_name,
            days_in_year=current.calendar.days_in_year(),
            records_needing_review=current.records_needing_review,
        )

    @app.get("/healthz", response_model=HealthResponse, tags=["system"])
    def healthz() -> HealthResponse:
        return HealthResponse()

    @app.get("/api/v1", response_model=ApiRootResponse, tags=["api"])
    def api_v1_root() -> ApiRootResponse:
        return ApiRootResponse()

    @app.put("/api/v1/manuscript", response_model=ManuscriptImportResponse, tags=["manuscript"])
    def import_manuscript(payload: ManuscriptDocument) -> ManuscriptImportResponse:
        with engine_session() as current:
            try:
                scene_count = store.import_scenes(payload.scene_nodes())
                if payload.plotlines:
                    store.save_plotlines(list(payload.plotlines))
                if payload.calendar is not None:
                    store.save_calendar_config(payload.calendar)
            except ManuscriptStoreError as exc:
                status_store.report(
                    scope="persistence",
                    code="manuscript_import_failed",
                    severity="error",
                    message=str(exc),
                )
                raise HTTPException(status_code=422, detail=str(exc)) from exc
            current.reload()
            status_store.discard_scene_errors({record.id for record in current.records})
            issues = current.dependency_issues()
            logger.info(
                "manuscript.import scenes=%s plotlines=%s dependency_issues=%s",
                scene_count,
                len(current.plotlines),
                len(issues),
            )
            return ManuscriptImportResponse(
                scene_count=scene_count,
                plotline_count=len(current.plotlines),
                dependency_issues=issues,
            )

    @app.get("/api/v1/timeline", response_model=TimelineViewResponse, tags=["timeline"])
    def get_timeline() -> TimelineViewResponse:
        return run(timeline_view)

    @app.get("/api/v1/scenes/{scene_id}", response_model=TemporalRecord, tags=["manuscript"])
    def get_scene(scene_id: str) -> TemporalRecord:
        return run(lambda current: current.record(scene_id))

    @app.patch(
        "/api/v1/scenes/{scene_id}/temporal",
        response_model=TemporalRecord,
        tags=["manuscript"],
    )
    def update_scene_temporal(
        scene_id: str, payload: TemporalFieldsUpdateRequest
    ) -> TemporalRecord:
        return run(lambda current: current.update_temporal_fields(scene_id, payload.to_update()))

    @app.post("/api/v1/timeline/move", response_model=TemporalRecord, tags=["timeline"])
    def move_scene(payload: SchedulingMoveRequest) -> TemporalRecord:
        return run(
            lambda current: current.handle_scheduling_move(
                payload.scene_id,
                start=payload.start,
                end=payload.end,
                lane_id=payload.lane_id,
            )
        )

    @app.post("/api/v1/timeline/drop", response_model=TemporalRecord, tags=["timeline"])
    def drop_scene(payload: SchedulingDropRequest) -> TemporalRecord:
        return run(
            lambda current: current.handle_scheduling_drop(
                payload.scene_id,
                at=payload.at,
                lane_id=payload.lane_id,
            )
        )

    @app.get(
        "/api/v1/timeline/reorder/preview",
        response_model=ReorderPlanResponse,
        tags=["timeline"],
    )
    def preview_reorder(
        limit: int = Query(default=DEFAULT_PREVIEW_LIMIT, ge=0, le=500),
    ) -> ReorderPlanResponse:
        plan = run(lambda current: current.preview_chronological_reorder(preview_limit=limit))
        return _reorder_response(plan, applied=False)

    @app.post("/api/v1/timeline/reorder", response_model=ReorderPlanResponse, tags=["timeline"])
    def apply_reorder(
        limit: int = Query(default=DEFAULT_PREVIEW_LIMIT, ge=0, le=500),
    ) -> ReorderPlanResponse:
        plan = run(lambda current: current.apply_chronological_reorder(preview_limit=limit))
        return _reorder_response(plan, applied=plan.changed)

    @app.get("/api/v1/calendar", response_model=CalendarResponse, tags=["calendar"])
    def get_calendar() -> CalendarResponse:
        return run(calendar_view)

    @app.put("/api/v1/calendar", response_model=CalendarResponse, tags=["calendar"])
    def put_calendar(payload: CalendarConfig) -> CalendarResponse:
        with engine_session() as current:
            current.apply_calendar_config(payload)
            return calendar_view(current)

    @app.get("/api/v1/calendar/format", response_model=CalendarFormatResponse, tags=["calendar"])
    def format_calendar_date(value: str = Query(min_length=1)) -> CalendarFormatResponse:
        display = run(lambda current: current.format_date(value))
        return CalendarFormatResponse(value=value, display=display)

    @app.get("/api/v1/calendar/parse", response_model=CalendarParseResponse, tags=["calendar"])
    def parse_calendar_date(display: str = Query(min_length=1)) -> CalendarParseResponse:
        ordinal = run(lambda current: current.calendar.from_display(display))
        return CalendarParseResponse(
            display=display,
            ordinal=ordinal,
            value=instant_from_ordinal(ordinal),
        )

    @app.post("/api/v1/calendar/review", response_model=CalendarResponse, tags=["calendar"])
    def mark_calendar_reviewed(payload: CalendarReviewRequest) -> CalendarResponse:
        with engine_session() as current:
            current.mark_reviewed(payload.scene_ids)
            return calendar_view(current)

    @app.get("/api/v1/plotlines", response_model=list[Plotline], tags=["plotlines"])
    def list_plotlines() -> list[Plotline]:
        return run(lambda current: current.plotlines)

    @app.post("/api/v1/plotlines", response_model=Plotline, tags=["plotlines"], status_code=201)
    def create_plotline(payload: PlotlineCreateRequest) -> Plotline:
        return run(lambda current: current.add_plotline(payload.name, payload.color))

    @app.patch("/api/v1/plotlines/{plotline_id}", response_model=Plotline, tags=["plotlines"])
    def update_plotline(plotline_id: str, payload: PlotlineUpdateRequest) -> Plotline:
        return run(
            lambda current: current.update_plotline(
                plotline_id, name=payload.name, color=payload.color
            )
        )

    @app.delete(
        "/api/v1/plotlines/{plotline_id}",
        response_model=PlotlineRemovalResponse,
        tags=["plotlines"],
    )
    def delete_plotline(plotline_id: str) -> PlotlineRemovalResponse:
        reset = run(lambda current: current.remove_plotline(plotline_id))
        return PlotlineRemovalResponse(plotline_id=plotline_id, reset_scene_ids=reset)

    @app.get("/api/v1/status", response_model=list[StatusEventResponse], tags=["status"])
    def list_status(
        limit: int = Query(default=100, ge=1, le=500),
        scope: str | None = Query(default=None, min_length=1, max_length=80),
    ) -> list[StatusEventResponse]:
        return [
            _status_response(event)
            for event in status_store.list_recent(limit=limit, scope=scope)
        ]

    @app.get(
        "/api/v1/status/scenes",
        response_model=list[SceneWriteErrorResponse],
        tags=["status"],
    )
    def list_scene_errors() -> list[SceneWriteErrorResponse]:
        return [_scene_error_response(error) for error in status_store.open_scene_errors()]

    return app


app = create_app()
