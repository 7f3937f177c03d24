"""Python-first interface for manuscript files and timeline API interactions."""

from __future__ import annotations

from datetime import datetime

import httpx

from story_timeline.api.contracts import (
    CalendarFormatResponse,
    CalendarResponse,
    ManuscriptDocument,
    ManuscriptImportResponse,
    PlotlineCreateRequest,
    PlotlineRemovalResponse,
    ReorderPlanResponse,
    SceneWriteErrorResponse,
    SchedulingDropRequest,
    SchedulingMoveRequest,
    StatusEventResponse,
    TemporalFieldsUpdateRequest,
    TimelineViewResponse,
    load_manuscript_json,
    save_manuscript_json,
)
from story_timeline.core.temporal_schema import CalendarConfig, Plotline, TemporalRecord


class TimelineApiClient:
    """Tiny typed API client for Python users."""

    def __init__(self, api_base_url: str = "http://127.0.0.1:8000", timeout: float = 30.0) -> None:
        self._api_base_url = api_base_url.rstrip("/")
        self._timeout = timeout

    @property
    def api_base_url(self) -> str:
        """Return normalized API base URL."""
        return self._api_base_url

    def _url(self, path: str) -> str:
        return f"{self._api_base_url}{path}"

    def import_manuscript(self, document: ManuscriptDocument) -> ManuscriptImportResponse:
        """Replace the server-side manuscript with ``document``."""
        response = httpx.put(
            self._url("/api/v1/manuscript"),
            json=document.model_dump(mode="json"),
            timeout=self._timeout,
        )
        response.raise_for_status()
        return ManuscriptImportResponse.model_validate(response.json())

    def timeline(self) -> TimelineViewResponse:
        response = httpx.get(self._url("/api/v1/timeline"), timeout=self._timeout)
        response.raise_for_status()
        return TimelineViewResponse.model_validate(response.json())

    def update_temporal_fields(
        self, scene_id: str, request: TemporalFieldsUpdateRequest
    ) -> TemporalRecord:
        """Send only the fields set on ``request``; explicit None clears a field."""
        response = httpx.patch(
            self._url(f"/api/v1/scenes/{scene_id}/temporal"),
            json=request.model_dump(mode="json", exclude_unset=True),
            timeout=self._timeout,
        )
        response.raise_for_status()
        return TemporalRecord.model_validate(response.json())

    def move_scene(
        self,
        scene_id: str,
        *,
        start: datetime,
        end: datetime | None = None,
        lane_id: str | None = None,
    ) -> TemporalRecord:
        request = SchedulingMoveRequest(scene_id=scene_id, start=start, end=end, lane_id=lane_id)
        response = httpx.post(
            self._url("/api/v1/timeline/move"),
            json=request.model_dump(mode="json"),
            timeout=self._timeout,
        )
        response.raise_for_status()
        return TemporalRecord.model_validate(response.json())

    def drop_scene(
        self, scene_id: str, *, at: datetime, lane_id: str | None = None
    ) -> TemporalRecord:
        request = SchedulingDropRequest(scene_id=scene_id, at=at, lane_id=lane_id)
        response = httpx.post(
            self._url("/api/v1/timeline/drop"),
            json=request.model_dump(mode="json"),
            timeout=self._timeout,
        )
        response.raise_for_status()
        return TemporalRecord.model_validate(response.json())

    def preview_reorder(self, *, limit: int = 10) -> ReorderPlanResponse:
        response = httpx.get(
            self._url("/api/v1/timeline/reorder/preview"),
            params={"limit": limit},
            timeout=self._timeout,
        )
        response.raise_for_status()
        return ReorderPlanResponse.model_validate(response.json())

    def apply_reorder(self, *, limit: int = 10) -> ReorderPlanResponse:
        """Commit story-time order as the new manuscript order."""
        response = httpx.post(
            self._url("/api/v1/timeline/reorder"),
            params={"limit": limit},
            timeout=self._timeout,
        )
        response.raise_for_status()
        return ReorderPlanResponse.model_validate(response.json())

    def calendar(self) -> CalendarResponse:
        response = httpx.get(self._url("/api/v1/calendar"), timeout=self._timeout)
        response.raise_for_status()
        return CalendarResponse.model_validate(response.json())

    def set_calendar(self, config: CalendarConfig) -> CalendarResponse:
        response = httpx.put(
            self._url("/api/v1/calendar"),
            json=config.model_dump(mode="json"),
            timeout=self._timeout,
        )
        response.raise_for_status()
        return CalendarResponse.model_validate(response.json())

    def format_date(self, value: str) -> str:
        """Render an ISO instant in the project's active calendar."""
        response = httpx.get(
            self._url("/api/v1/calendar/format"),
            params={"value": value},
            timeout=self._timeout,
        )
        response.raise_for_status()
        return CalendarFormatResponse.model_validate(response.json()).display

    def add_plotline(self, *, name: str, color: str | None = None) -> Plotline:
        request = PlotlineCreateRequest(name=name, color=color)
        response = httpx.post(
            self._url("/api/v1/plotlines"),
            json=request.model_dump(mode="json", exclude_none=True),
            timeout=self._timeout,
        )
        response.raise_for_status()
        return Plotline.model_validate(response.json())

    def remove_plotline(self, plotline_id: str) -> PlotlineRemovalResponse:
        response = httpx.delete(
            self._url(f"/api/v1/plotlines/{plotline_id}"),
            timeout=self._timeout,
        )
        response.raise_for_status()
        return PlotlineRemovalResponse.model_validate(response.json())

    def status(self, *, limit: int = 100) -> list[StatusEventResponse]:
        response = httpx.get(
            self._url("/api/v1/status"),
            params={"limit": limit},
            timeout=self._timeout,
        )
        response.raise_for_status()
        return [StatusEventResponse.model_validate(item) for item in response.json()]

    def scene_errors(self) -> list[SceneWriteErrorResponse]:
        response = httpx.get(self._url("/api/v1/status/scenes"), timeout=self._timeout)
        response.raise_for_status()
        return [SceneWriteErrorResponse.model_validate(item) for item in response.json()]


__all__ = [
    "ManuscriptDocument",
    "TimelineApiClient",
    "load_manuscript_json",
    "save_manuscript_json",
]
