"""FastAPI application exposing the time clock API."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from .aggregation import Clock
from .config import TrackerSettings
from .errors import ClockStateError, EventNotFound, IncidentNotFound, InvalidEventKind
from .models import (
    ChangeLogEntry,
    DailySummary,
    EventKind,
    EventStatus,
    Incident,
    OpenDayReport,
    PeriodSummary,
    SessionPair,
    TodayStatus,
)
from .paths import get_db_path
from .service import TimeClockService
from .sweeper import OpenDaySweeper, SweeperRunner

logger = logging.getLogger(__name__)


class ClockPayload(BaseModel):
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class EventUpdate(BaseModel):
    modified_by: str
    timestamp: Optional[datetime] = None
    kind: Optional[EventKind] = None
    notes: Optional[str] = None
    status: Optional[EventStatus] = None

    model_config = ConfigDict(extra="forbid")


class ResolvePayload(BaseModel):
    resolved_by: str
    clock_out_at: Optional[datetime] = None

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    db_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    clock: Optional[Clock] = None,
    run_sweeper: bool = True,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_db_path = Path(db_path or get_db_path())
    resolved_settings = settings or TrackerSettings()
    service = TimeClockService(resolved_db_path, resolved_settings, clock)
    sweeper = OpenDaySweeper(service)
    runner = SweeperRunner(sweeper)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if run_sweeper:
            runner.start()
        yield
        runner.stop()

    app = FastAPI(title="Time Clock", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InvalidEventKind)
    async def invalid_kind_handler(request: Request, exc: InvalidEventKind) -> JSONResponse:
        logger.warning("Rejecting request for %s: %s", request.url.path, exc)
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    app.state.service = service
    app.state.sweeper = sweeper
    app.state.sweeper_runner = runner

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        last = request.app.state.sweeper.last_run_date
        return {
            "sweeper_running": request.app.state.sweeper_runner.is_running(),
            "last_sweep_date": last.isoformat() if last else None,
            "database_path": str(service.db_path),
            "utc_offset_hours": resolved_settings.utc_offset_hours,
            "lookback_days": resolved_settings.lookback_days,
        }

    @app.post("/api/users/{user_id}/clock-in")
    def clock_in(
        user_id: str, payload: Optional[ClockPayload] = None
    ) -> Dict[str, Any]:
        payload = payload or ClockPayload()
        try:
            event = service.clock_in(
                user_id, timestamp=payload.timestamp, notes=payload.notes
            )
        except ClockStateError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return event.to_payload()

    @app.post("/api/users/{user_id}/clock-out")
    def clock_out(
        user_id: str, payload: Optional[ClockPayload] = None
    ) -> Dict[str, Any]:
        payload = payload or ClockPayload()
        try:
            event = service.clock_out(
                user_id, timestamp=payload.timestamp, notes=payload.notes
            )
        except ClockStateError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return event.to_payload()

    @app.get("/api/users/{user_id}/today")
    def today(user_id: str) -> Dict[str, Any]:
        return today_payload(service.get_today_status(user_id))

    @app.get("/api/users/{user_id}/history")
    def history(
        user_id: str,
        start: Optional[str] = Query(
            default=None,
            description="Start date in YYYY-MM-DD format (inclusive).",
        ),
        end: Optional[str] = Query(
            default=None,
            description="End date in YYYY-MM-DD format (inclusive).",
        ),
    ) -> Dict[str, Any]:
        end_day = _parse_date(end) if end else service.today()
        start_day = _parse_date(start) if start else end_day - timedelta(days=6)
        if end_day < start_day:
            raise HTTPException(
                status_code=400, detail="end date must be on or after start date"
            )
        summary = service.get_daily_summaries(user_id, start_day, end_day)
        return {
            "start": start_day.isoformat(),
            "end": end_day.isoformat(),
            **period_payload(summary),
        }

    @app.get("/api/users/{user_id}/events")
    def list_events(
        user_id: str,
        start: Optional[str] = Query(default=None),
        end: Optional[str] = Query(default=None),
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=50, ge=1, le=500),
    ) -> Dict[str, Any]:
        events, total = service.list_events(
            user_id,
            start_date=_parse_date(start) if start else None,
            end_date=_parse_date(end) if end else None,
            page=page,
            limit=limit,
        )
        return {
            "entries": [event.to_payload() for event in events],
            "total": total,
            "page": page,
            "limit": limit,
        }

    @app.get("/api/events/{event_id}")
    def get_event(event_id: str) -> Dict[str, Any]:
        try:
            return service.get_event(event_id).to_payload()
        except EventNotFound as exc:
            raise HTTPException(status_code=404, detail="Event not found") from exc

    @app.patch("/api/events/{event_id}")
    def update_event_endpoint(event_id: str, payload: EventUpdate) -> Dict[str, Any]:
        updates = payload.model_dump(exclude_unset=True)
        modified_by = updates.pop("modified_by")
        try:
            event = service.update_event(event_id, modified_by=modified_by, **updates)
        except EventNotFound as exc:
            raise HTTPException(status_code=404, detail="Event not found") from exc
        return event.to_payload()

    @app.delete("/api/events/{event_id}", status_code=204)
    def delete_event_endpoint(
        event_id: str, deleted_by: str = Query(...)
    ) -> None:
        try:
            service.delete_event(event_id, deleted_by=deleted_by)
        except EventNotFound as exc:
            raise HTTPException(status_code=404, detail="Event not found") from exc

    @app.post("/api/users/{user_id}/open-days")
    def detect_open_days(user_id: str) -> Dict[str, Any]:
        reports = service.detect_and_report_open_days(user_id)
        return {"user_id": user_id, "reports": [report_payload(r) for r in reports]}

    @app.post("/api/sweeps")
    def trigger_sweep(request: Request) -> Dict[str, Any]:
        result = request.app.state.sweeper.run_now()
        return {
            "processed": result.processed,
            "failed": result.failed,
            "reports": result.reports,
        }

    @app.get("/api/audit")
    def list_audit(entity_id: Optional[str] = Query(default=None)) -> Dict[str, Any]:
        entries = service.list_audit_entries(entity_id)
        return {"entries": [audit_payload(entry) for entry in entries]}

    @app.get("/api/incidents")
    def list_incidents(
        user_id: Optional[str] = Query(default=None),
        status: Optional[str] = Query(default=None),
    ) -> Dict[str, Any]:
        incidents = service.list_incidents(user_id=user_id, status=status)
        return {"incidents": [incident_payload(i) for i in incidents]}

    @app.post("/api/incidents/{incident_id}/resolve")
    def resolve_incident(incident_id: int, payload: ResolvePayload) -> Dict[str, Any]:
        try:
            event = service.resolve_incident(
                incident_id,
                resolved_by=payload.resolved_by,
                clock_out_at=payload.clock_out_at,
            )
        except IncidentNotFound as exc:
            raise HTTPException(status_code=404, detail="Incident not found") from exc
        except ClockStateError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return event.to_payload()

    return app


def _parse_date(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc


def pair_payload(session: SessionPair) -> Dict[str, Any]:
    return {
        "clock_in": session.clock_in.to_payload(),
        "clock_out": session.clock_out.to_payload() if session.clock_out else None,
        "duration_minutes": round(session.duration_minutes, 2),
    }


def day_payload(summary: DailySummary) -> Dict[str, Any]:
    return {
        "date": summary.date,
        "pairs": [pair_payload(p) for p in summary.pairs],
        "total_minutes": round(summary.total_minutes, 2),
        "total_hours": summary.total_hours,
        "is_complete": summary.is_complete,
        "has_modifications": summary.has_modifications,
    }


def period_payload(summary: PeriodSummary) -> Dict[str, Any]:
    return {
        "daily_summaries": [day_payload(day) for day in summary.daily_summaries],
        "total_days": summary.total_days,
        "total_hours": summary.total_hours,
        "average_hours_per_day": summary.average_hours_per_day,
    }


def today_payload(status: TodayStatus) -> Dict[str, Any]:
    return {
        "is_clocked_in": status.is_clocked_in,
        "last_event": status.last_event.to_payload() if status.last_event else None,
        "today_events": [event.to_payload() for event in status.today_events],
        "total_hours_today": status.total_hours_today,
    }


def report_payload(report: OpenDayReport) -> Dict[str, Any]:
    return {
        "user_id": report.user_id,
        "open_entry_id": report.open_entry_id,
        "open_timestamp": report.open_timestamp.isoformat(),
        "implied_end_of_day": report.implied_end_of_day.isoformat(),
    }


def audit_payload(entry: ChangeLogEntry) -> Dict[str, Any]:
    return {
        "entity_id": entry.entity_id,
        "action": entry.action,
        "actor": entry.actor,
        "old_value": entry.old_value,
        "new_value": entry.new_value,
        "description": entry.description,
    }


def incident_payload(incident: Incident) -> Dict[str, Any]:
    return {
        "id": incident.id,
        "user_id": incident.user_id,
        "open_entry_id": incident.open_entry_id,
        "open_timestamp": incident.open_timestamp.isoformat(),
        "implied_end": incident.implied_end.isoformat(),
        "status": incident.status,
        "created_at": incident.created_at.isoformat() if incident.created_at else None,
        "resolved_at": incident.resolved_at.isoformat() if incident.resolved_at else None,
        "resolution_event_id": incident.resolution_event_id,
    }
