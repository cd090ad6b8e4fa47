"""Domain models for recorded clock events and derived work sessions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union


class EventKind(str, Enum):
    CLOCK_IN = "clock_in"
    CLOCK_OUT = "clock_out"


class EventStatus(str, Enum):
    APPROVED = "approved"
    MODIFIED = "modified"
    PENDING = "pending"
    REJECTED = "rejected"


class ExitReason(str, Enum):
    """Why the preprocessor had to manufacture a clock-out."""

    END_OF_DAY = "end_of_day"
    CONSECUTIVE_ENTRY = "consecutive_entry"


@dataclass(frozen=True, slots=True)
class TimeEvent:
    """A persisted clock-in or clock-out."""

    id: str
    user_id: str
    kind: EventKind
    timestamp: datetime
    is_manual: bool = False
    status: EventStatus = EventStatus.APPROVED
    notes: Optional[str] = None
    original_timestamp: Optional[datetime] = None
    modified_by: Optional[str] = None

    is_synthetic = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "kind": self.kind.value,
            "timestamp": self.timestamp.isoformat(),
            "is_manual": self.is_manual,
            "status": self.status.value,
            "notes": self.notes,
            "original_timestamp": (
                self.original_timestamp.isoformat() if self.original_timestamp else None
            ),
            "modified_by": self.modified_by,
            "is_synthetic": False,
        }


@dataclass(frozen=True, slots=True)
class SyntheticExit:
    """A clock-out manufactured during normalization. Never written to the store."""

    id: str
    user_id: str
    timestamp: datetime
    reason: ExitReason
    note: str

    kind = EventKind.CLOCK_OUT
    is_manual = False
    is_synthetic = True

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "kind": self.kind.value,
            "timestamp": self.timestamp.isoformat(),
            "is_manual": False,
            "reason": self.reason.value,
            "notes": self.note,
            "is_synthetic": True,
        }


ClockOut = Union[TimeEvent, SyntheticExit]


@dataclass(frozen=True, slots=True)
class SessionPair:
    clock_in: TimeEvent
    clock_out: Optional[ClockOut]
    duration_minutes: float

    @property
    def is_open(self) -> bool:
        return self.clock_out is None


@dataclass(frozen=True, slots=True)
class DailySummary:
    date: str
    pairs: tuple[SessionPair, ...]
    total_minutes: float
    is_complete: bool
    has_modifications: bool

    @property
    def total_hours(self) -> float:
        return round(self.total_minutes / 60, 2)


@dataclass(frozen=True, slots=True)
class PeriodSummary:
    daily_summaries: tuple[DailySummary, ...] = ()
    total_days: int = 0
    total_hours: float = 0.0
    average_hours_per_day: float = 0.0


@dataclass(frozen=True, slots=True)
class TodayStatus:
    is_clocked_in: bool
    last_event: Optional[TimeEvent]
    today_events: tuple[TimeEvent, ...]
    total_hours_today: float


@dataclass(frozen=True, slots=True)
class OpenDayReport:
    """A past day that still has a clock-in without any matching clock-out."""

    user_id: str
    open_entry_id: str
    open_timestamp: datetime
    implied_end_of_day: datetime


@dataclass(frozen=True, slots=True)
class ChangeLogEntry:
    entity_id: str
    action: str
    actor: Optional[str]
    old_value: Optional[dict[str, Any]] = None
    new_value: Optional[dict[str, Any]] = None
    description: str = ""


@dataclass(slots=True)
class Incident:
    id: int
    user_id: str
    open_entry_id: str
    open_timestamp: datetime
    implied_end: datetime
    status: str = "pending"
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolution_event_id: Optional[str] = None
