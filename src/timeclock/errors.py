"""Exceptions raised by the time clock."""

from __future__ import annotations


class TimeClockError(Exception):
    """Base class for time clock errors."""


class InvalidEventKind(TimeClockError, ValueError):
    """An event carries a kind other than clock-in or clock-out."""

    def __init__(self, event_id: object, kind: object) -> None:
        super().__init__(f"Event {event_id!r} has unrecognized kind {kind!r}")
        self.event_id = event_id
        self.kind = kind


class ClockStateError(TimeClockError):
    """A clock action does not fit the user's current clocked-in state."""


class EventNotFound(TimeClockError, LookupError):
    pass


class IncidentNotFound(TimeClockError, LookupError):
    pass
