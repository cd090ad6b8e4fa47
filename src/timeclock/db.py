"""SQLite storage for clock events, incidents and the audit log."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from .errors import EventNotFound, IncidentNotFound, InvalidEventKind
from .models import (
    ChangeLogEntry,
    EventKind,
    EventStatus,
    Incident,
    OpenDayReport,
    TimeEvent,
)


DATETIME_FMT = "%Y-%m-%d %H:%M:%S.%f"

_EVENT_COLUMNS = """
    id, user_id, kind, timestamp, is_manual, status,
    notes, original_timestamp, modified_by
"""


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    enable_foreign_keys(conn)
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def enable_foreign_keys(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA foreign_keys = ON;")


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS time_events (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            kind TEXT NOT NULL,
            timestamp TEXT NOT NULL,
            is_manual INTEGER NOT NULL DEFAULT 0,
            status TEXT NOT NULL DEFAULT 'approved',
            notes TEXT,
            original_timestamp TEXT,
            modified_by TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_events_user_timestamp
            ON time_events(user_id, timestamp);

        CREATE TABLE IF NOT EXISTS incidents (
            id INTEGER PRIMARY KEY,
            user_id TEXT NOT NULL,
            open_entry_id TEXT NOT NULL UNIQUE,
            open_timestamp TEXT NOT NULL,
            implied_end TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            created_at TEXT NOT NULL,
            resolved_at TEXT,
            resolution_event_id TEXT
        );

        CREATE TABLE IF NOT EXISTS audit_log (
            id INTEGER PRIMARY KEY,
            created_at TEXT NOT NULL,
            actor TEXT,
            action TEXT NOT NULL,
            entity_type TEXT NOT NULL,
            entity_id TEXT NOT NULL,
            old_value TEXT,
            new_value TEXT,
            description TEXT
        );
        """
    )


def format_timestamp(value: datetime) -> str:
    """Serialize an aware datetime as UTC text that sorts chronologically."""
    return value.astimezone(timezone.utc).strftime(DATETIME_FMT)


def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, DATETIME_FMT).replace(tzinfo=timezone.utc)


def insert_event(conn: sqlite3.Connection, event: TimeEvent) -> TimeEvent:
    conn.execute(
        f"INSERT INTO time_events ({_EVENT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
        _event_params(event),
    )
    return event


def replace_event(conn: sqlite3.Connection, event: TimeEvent) -> TimeEvent:
    """Overwrite the stored row for ``event.id`` with the given value."""
    params = _event_params(event)
    cur = conn.execute(
        """
        UPDATE time_events SET
            user_id = ?, kind = ?, timestamp = ?, is_manual = ?, status = ?,
            notes = ?, original_timestamp = ?, modified_by = ?
        WHERE id = ?
        """,
        (*params[1:], params[0]),
    )
    if cur.rowcount == 0:
        raise EventNotFound(f"No event found for id={event.id}")
    return event


def delete_event(conn: sqlite3.Connection, event_id: str) -> None:
    cur = conn.execute("DELETE FROM time_events WHERE id = ?", (event_id,))
    if cur.rowcount == 0:
        raise EventNotFound(f"No event found for id={event_id}")


def fetch_event(conn: sqlite3.Connection, event_id: str) -> TimeEvent:
    row = conn.execute(
        f"SELECT {_EVENT_COLUMNS} FROM time_events WHERE id = ?", (event_id,)
    ).fetchone()
    if row is None:
        raise EventNotFound(f"No event found for id={event_id}")
    return row_to_event(row)


def fetch_events(
    conn: sqlite3.Connection, user_id: str, start: datetime, end: datetime
) -> list[TimeEvent]:
    """Events for ``user_id`` with ``start <= timestamp < end``, oldest first."""
    rows = conn.execute(
        f"""
        SELECT {_EVENT_COLUMNS}
        FROM time_events
        WHERE user_id = ? AND timestamp >= ? AND timestamp < ?
        ORDER BY timestamp, rowid;
        """,
        (user_id, format_timestamp(start), format_timestamp(end)),
    )
    return [row_to_event(row) for row in rows]


def fetch_events_page(
    conn: sqlite3.Connection,
    user_id: str,
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[TimeEvent], int]:
    """Newest-first page of a user's events plus the total match count."""
    clauses = ["user_id = ?"]
    params: list[object] = [user_id]
    if start is not None:
        clauses.append("timestamp >= ?")
        params.append(format_timestamp(start))
    if end is not None:
        clauses.append("timestamp < ?")
        params.append(format_timestamp(end))
    where = " AND ".join(clauses)

    total = conn.execute(
        f"SELECT COUNT(*) FROM time_events WHERE {where}", params
    ).fetchone()[0]
    rows = conn.execute(
        f"""
        SELECT {_EVENT_COLUMNS}
        FROM time_events
        WHERE {where}
        ORDER BY timestamp DESC, rowid DESC
        LIMIT ? OFFSET ?;
        """,
        (*params, limit, offset),
    )
    return [row_to_event(row) for row in rows], int(total)


def fetch_last_event(
    conn: sqlite3.Connection, user_id: str, at: Optional[datetime] = None
) -> Optional[TimeEvent]:
    """Latest event for ``user_id``, optionally only those at or before ``at``."""
    clauses = ["user_id = ?"]
    params: list[object] = [user_id]
    if at is not None:
        clauses.append("timestamp <= ?")
        params.append(format_timestamp(at))
    where = " AND ".join(clauses)
    row = conn.execute(
        f"""
        SELECT {_EVENT_COLUMNS}
        FROM time_events
        WHERE {where}
        ORDER BY timestamp DESC, rowid DESC
        LIMIT 1;
        """,
        params,
    ).fetchone()
    return row_to_event(row) if row is not None else None


def fetch_user_ids(
    conn: sqlite3.Connection, start: datetime, end: datetime
) -> list[str]:
    """Users with at least one event in ``[start, end)``."""
    rows = conn.execute(
        """
        SELECT DISTINCT user_id
        FROM time_events
        WHERE timestamp >= ? AND timestamp < ?
        ORDER BY user_id;
        """,
        (format_timestamp(start), format_timestamp(end)),
    )
    return [row["user_id"] for row in rows]


def insert_incident(
    conn: sqlite3.Connection, report: OpenDayReport, created_at: datetime
) -> Optional[int]:
    """Record an incident for an open day; ``None`` if one already exists."""
    cur = conn.execute(
        """
        INSERT OR IGNORE INTO incidents (
            user_id,
            open_entry_id,
            open_timestamp,
            implied_end,
            created_at
        ) VALUES (?, ?, ?, ?, ?)
        """,
        (
            report.user_id,
            report.open_entry_id,
            format_timestamp(report.open_timestamp),
            format_timestamp(report.implied_end_of_day),
            format_timestamp(created_at),
        ),
    )
    return cur.lastrowid if cur.rowcount else None


def fetch_incidents(
    conn: sqlite3.Connection,
    *,
    user_id: Optional[str] = None,
    status: Optional[str] = None,
) -> list[Incident]:
    clauses: list[str] = []
    params: list[object] = []
    if user_id is not None:
        clauses.append("user_id = ?")
        params.append(user_id)
    if status is not None:
        clauses.append("status = ?")
        params.append(status)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    rows = conn.execute(
        f"SELECT * FROM incidents {where} ORDER BY open_timestamp DESC, id DESC",
        params,
    )
    return [row_to_incident(row) for row in rows]


def fetch_incident(conn: sqlite3.Connection, incident_id: int) -> Incident:
    row = conn.execute(
        "SELECT * FROM incidents WHERE id = ?", (incident_id,)
    ).fetchone()
    if row is None:
        raise IncidentNotFound(f"No incident found for id={incident_id}")
    return row_to_incident(row)


def mark_incident_resolved(
    conn: sqlite3.Connection,
    incident_id: int,
    *,
    resolution_event_id: str,
    resolved_at: datetime,
) -> None:
    cur = conn.execute(
        """
        UPDATE incidents
        SET status = 'resolved', resolved_at = ?, resolution_event_id = ?
        WHERE id = ?
        """,
        (format_timestamp(resolved_at), resolution_event_id, incident_id),
    )
    if cur.rowcount == 0:
        raise IncidentNotFound(f"No incident found for id={incident_id}")


def insert_audit_entry(
    conn: sqlite3.Connection,
    entry: ChangeLogEntry,
    *,
    entity_type: str,
    created_at: datetime,
) -> None:
    conn.execute(
        """
        INSERT INTO audit_log (
            created_at,
            actor,
            action,
            entity_type,
            entity_id,
            old_value,
            new_value,
            description
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            format_timestamp(created_at),
            entry.actor,
            entry.action,
            entity_type,
            entry.entity_id,
            json.dumps(entry.old_value) if entry.old_value is not None else None,
            json.dumps(entry.new_value) if entry.new_value is not None else None,
            entry.description,
        ),
    )


def fetch_audit_entries(
    conn: sqlite3.Connection, entity_id: Optional[str] = None
) -> list[ChangeLogEntry]:
    if entity_id is None:
        rows = conn.execute("SELECT * FROM audit_log ORDER BY id")
    else:
        rows = conn.execute(
            "SELECT * FROM audit_log WHERE entity_id = ? ORDER BY id", (entity_id,)
        )
    return [
        ChangeLogEntry(
            entity_id=row["entity_id"],
            action=row["action"],
            actor=row["actor"],
            old_value=json.loads(row["old_value"]) if row["old_value"] else None,
            new_value=json.loads(row["new_value"]) if row["new_value"] else None,
            description=row["description"] or "",
        )
        for row in rows
    ]


def row_to_event(row: sqlite3.Row) -> TimeEvent:
    try:
        kind = EventKind(row["kind"])
    except ValueError as exc:
        raise InvalidEventKind(row["id"], row["kind"]) from exc
    return TimeEvent(
        id=row["id"],
        user_id=row["user_id"],
        kind=kind,
        timestamp=parse_timestamp(row["timestamp"]),
        is_manual=bool(row["is_manual"]),
        status=EventStatus(row["status"]),
        notes=row["notes"],
        original_timestamp=(
            parse_timestamp(row["original_timestamp"])
            if row["original_timestamp"]
            else None
        ),
        modified_by=row["modified_by"],
    )


def row_to_incident(row: sqlite3.Row) -> Incident:
    return Incident(
        id=row["id"],
        user_id=row["user_id"],
        open_entry_id=row["open_entry_id"],
        open_timestamp=parse_timestamp(row["open_timestamp"]),
        implied_end=parse_timestamp(row["implied_end"]),
        status=row["status"],
        created_at=parse_timestamp(row["created_at"]),
        resolved_at=parse_timestamp(row["resolved_at"]) if row["resolved_at"] else None,
        resolution_event_id=row["resolution_event_id"],
    )


def _event_params(event: TimeEvent) -> tuple[object, ...]:
    return (
        event.id,
        event.user_id,
        EventKind(event.kind).value,
        format_timestamp(event.timestamp),
        1 if event.is_manual else 0,
        EventStatus(event.status).value,
        event.notes,
        format_timestamp(event.original_timestamp) if event.original_timestamp else None,
        event.modified_by,
    )
