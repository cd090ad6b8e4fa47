"""Service layer wiring the summary engine to the event store."""

from __future__ import annotations

import dataclasses
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional

from .aggregation import Clock, DailyAggregator, utc_now
from .config import TrackerSettings
from .db import (
    database_connection,
    delete_event,
    fetch_audit_entries,
    fetch_event,
    fetch_events,
    fetch_events_page,
    fetch_incident,
    fetch_incidents,
    fetch_last_event,
    fetch_user_ids,
    insert_audit_entry,
    insert_event,
    insert_incident,
    mark_incident_resolved,
    replace_event,
)
from .errors import ClockStateError
from .incidents import IncompleteDayDetector
from .models import (
    ChangeLogEntry,
    EventKind,
    EventStatus,
    Incident,
    OpenDayReport,
    PeriodSummary,
    TimeEvent,
    TodayStatus,
)

logger = logging.getLogger(__name__)

_UNSET = object()

_ACTION_DESCRIPTIONS = {
    EventKind.CLOCK_IN: "User clocked in",
    EventKind.CLOCK_OUT: "User clocked out",
}


@dataclass(slots=True)
class SweepResult:
    processed: int = 0
    failed: int = 0
    reports: int = 0


class TimeClockService:
    """Clock actions, summaries and open-day handling for one event store."""

    def __init__(
        self,
        db_path: Path,
        settings: Optional[TrackerSettings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.db_path = Path(db_path)
        self.settings = settings or TrackerSettings()
        self._clock = clock or utc_now
        self.aggregator = DailyAggregator(self.settings, self._clock)
        self.detector = IncompleteDayDetector(self.settings, self._clock)

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> date:
        return self.settings.local_date(self._clock())

    def aware(self, value: datetime) -> datetime:
        """Attach the local offset to naive datetimes."""
        if value.tzinfo is not None:
            return value
        return value.replace(tzinfo=self.settings.tzinfo)

    def day_range(self, start_date: date, end_date: date) -> tuple[datetime, datetime]:
        """Instant range covering the inclusive local dates ``start_date..end_date``."""
        return (
            self.settings.start_of_day(start_date),
            self.settings.start_of_day(end_date + timedelta(days=1)),
        )

    # Clock actions

    def clock_in(
        self,
        user_id: str,
        *,
        timestamp: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> TimeEvent:
        at = self.aware(timestamp) if timestamp else self._clock()
        open_in = self._open_clock_in(user_id, at)
        # A clock-in forgotten on an earlier day is left to the incident flow.
        same_day = open_in is not None and (
            self.settings.local_date(open_in.timestamp) == self.settings.local_date(at)
        )
        if same_day:
            raise ClockStateError("You must clock out before clocking in again")
        return self._record(user_id, EventKind.CLOCK_IN, at, timestamp is not None, notes)

    def clock_out(
        self,
        user_id: str,
        *,
        timestamp: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> TimeEvent:
        at = self.aware(timestamp) if timestamp else self._clock()
        if self._open_clock_in(user_id, at) is None:
            raise ClockStateError("You must clock in before clocking out")
        return self._record(user_id, EventKind.CLOCK_OUT, at, timestamp is not None, notes)

    def _open_clock_in(self, user_id: str, at: datetime) -> Optional[TimeEvent]:
        """The user's latest event at or before ``at`` when it is a clock-in."""
        with database_connection(self.db_path) as conn:
            last = fetch_last_event(conn, user_id, at)
        if last is None or last.kind != EventKind.CLOCK_IN:
            return None
        return last

    def _record(
        self,
        user_id: str,
        kind: EventKind,
        timestamp: datetime,
        is_manual: bool,
        notes: Optional[str],
    ) -> TimeEvent:
        event = TimeEvent(
            id=str(uuid.uuid4()),
            user_id=user_id,
            kind=kind,
            timestamp=timestamp,
            is_manual=is_manual,
            notes=notes,
        )
        with database_connection(self.db_path) as conn:
            insert_event(conn, event)
            insert_audit_entry(
                conn,
                ChangeLogEntry(
                    entity_id=event.id,
                    action=kind.value,
                    actor=user_id,
                    new_value=event.to_payload(),
                    description=_ACTION_DESCRIPTIONS[kind],
                ),
                entity_type="time_event",
                created_at=self._clock(),
            )
        logger.info("User %s %s at %s", user_id, kind.value, event.timestamp.isoformat())
        return event

    # Summaries

    def get_daily_summaries(
        self, user_id: str, start_date: date, end_date: date
    ) -> PeriodSummary:
        start, end = self.day_range(start_date, end_date)
        with database_connection(self.db_path) as conn:
            events = fetch_events(conn, user_id, start, end)
        return self.aggregator.summarize(events)

    def get_today_status(self, user_id: str) -> TodayStatus:
        start, end = self.day_range(self.today(), self.today())
        with database_connection(self.db_path) as conn:
            events = fetch_events(conn, user_id, start, end)
            last_event = fetch_last_event(conn, user_id)
        return self.aggregator.today_status(events, last_event)

    # Open days and incidents

    def detect_open_days(self, user_id: str) -> list[OpenDayReport]:
        start, end = self.detector.window()
        with database_connection(self.db_path) as conn:
            events = fetch_events(conn, user_id, start, end)
        return self.detector.detect_open_days(user_id, events)

    def detect_and_report_open_days(self, user_id: str) -> list[OpenDayReport]:
        """Detect open days and raise an incident for each one."""
        reports = self.detect_open_days(user_id)
        if not reports:
            return reports
        with database_connection(self.db_path) as conn:
            for report in reports:
                incident_id = insert_incident(conn, report, created_at=self._clock())
                if incident_id is None:
                    logger.debug(
                        "Incident for entry %s already recorded", report.open_entry_id
                    )
                else:
                    logger.info(
                        "Created incident %s for user %s (entry %s)",
                        incident_id,
                        user_id,
                        report.open_entry_id,
                    )
        return reports

    def sweep_all_users(self) -> SweepResult:
        """Run open-day detection for every user active in the lookback window."""
        start, end = self.detector.window()
        with database_connection(self.db_path) as conn:
            user_ids = fetch_user_ids(conn, start, end)
        logger.info("Sweeping %d user(s) for open days", len(user_ids))

        result = SweepResult()
        for user_id in user_ids:
            try:
                reports = self.detect_and_report_open_days(user_id)
            except Exception:
                logger.exception("Failed to process open days for user %s", user_id)
                result.failed += 1
                continue
            result.processed += 1
            result.reports += len(reports)
        logger.info(
            "Open-day sweep finished: %d processed, %d failed, %d report(s)",
            result.processed,
            result.failed,
            result.reports,
        )
        return result

    def list_incidents(
        self, *, user_id: Optional[str] = None, status: Optional[str] = None
    ) -> list[Incident]:
        with database_connection(self.db_path) as conn:
            return fetch_incidents(conn, user_id=user_id, status=status)

    def resolve_incident(
        self,
        incident_id: int,
        *,
        resolved_by: str,
        clock_out_at: Optional[datetime] = None,
    ) -> TimeEvent:
        """Close an open day by appending a real clock-out for it."""
        with database_connection(self.db_path) as conn:
            incident = fetch_incident(conn, incident_id)
            if incident.status == "resolved":
                raise ClockStateError(f"Incident {incident_id} is already resolved")
            timestamp = self.aware(clock_out_at) if clock_out_at else incident.implied_end
            if timestamp < incident.open_timestamp:
                raise ClockStateError("Clock-out cannot precede the open clock-in")

            event = TimeEvent(
                id=str(uuid.uuid4()),
                user_id=incident.user_id,
                kind=EventKind.CLOCK_OUT,
                timestamp=timestamp,
                is_manual=True,
                notes=f"Clock-out added to resolve incident {incident_id}",
                modified_by=resolved_by,
            )
            insert_event(conn, event)
            mark_incident_resolved(
                conn,
                incident_id,
                resolution_event_id=event.id,
                resolved_at=self._clock(),
            )
            insert_audit_entry(
                conn,
                ChangeLogEntry(
                    entity_id=event.id,
                    action="create",
                    actor=resolved_by,
                    new_value=event.to_payload(),
                    description=f"Clock-out added for incident {incident_id}",
                ),
                entity_type="time_event",
                created_at=self._clock(),
            )
        logger.info("Incident %s resolved by %s", incident_id, resolved_by)
        return event

    # Event administration

    def list_events(
        self,
        user_id: str,
        *,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[TimeEvent], int]:
        start = self.settings.start_of_day(start_date) if start_date else None
        end = (
            self.settings.start_of_day(end_date + timedelta(days=1)) if end_date else None
        )
        with database_connection(self.db_path) as conn:
            return fetch_events_page(
                conn,
                user_id,
                start=start,
                end=end,
                limit=limit,
                offset=(max(page, 1) - 1) * limit,
            )

    def list_audit_entries(self, entity_id: Optional[str] = None) -> list[ChangeLogEntry]:
        with database_connection(self.db_path) as conn:
            return fetch_audit_entries(conn, entity_id)

    def get_event(self, event_id: str) -> TimeEvent:
        with database_connection(self.db_path) as conn:
            return fetch_event(conn, event_id)

    def update_event(
        self,
        event_id: str,
        *,
        modified_by: str,
        timestamp: Optional[datetime] = None,
        kind: Optional[EventKind] = None,
        notes: object = _UNSET,
        status: Optional[EventStatus] = None,
    ) -> TimeEvent:
        """Replace an event with an edited copy and log the old/new pair."""
        with database_connection(self.db_path) as conn:
            current = fetch_event(conn, event_id)
            changes: dict[str, object] = {
                "status": status or EventStatus.MODIFIED,
                "modified_by": modified_by,
            }
            if timestamp is not None:
                changes["timestamp"] = self.aware(timestamp)
                if current.original_timestamp is None:
                    changes["original_timestamp"] = current.timestamp
            if kind is not None:
                changes["kind"] = EventKind(kind)
            if notes is not _UNSET:
                changes["notes"] = notes
            updated = dataclasses.replace(current, **changes)

            replace_event(conn, updated)
            insert_audit_entry(
                conn,
                ChangeLogEntry(
                    entity_id=event_id,
                    action="update",
                    actor=modified_by,
                    old_value=current.to_payload(),
                    new_value=updated.to_payload(),
                    description="Time entry modified by admin",
                ),
                entity_type="time_event",
                created_at=self._clock(),
            )
        return updated

    def delete_event(self, event_id: str, *, deleted_by: str) -> None:
        with database_connection(self.db_path) as conn:
            current = fetch_event(conn, event_id)
            insert_audit_entry(
                conn,
                ChangeLogEntry(
                    entity_id=event_id,
                    action="delete",
                    actor=deleted_by,
                    old_value=current.to_payload(),
                    description="Time entry deleted",
                ),
                entity_type="time_event",
                created_at=self._clock(),
            )
            delete_event(conn, event_id)
