"""Turn a raw clock event list into a strictly alternating in/out sequence."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Iterator, Optional, Sequence, Union

from .config import TrackerSettings
from .errors import InvalidEventKind
from .models import EventKind, ExitReason, SyntheticExit, TimeEvent

logger = logging.getLogger(__name__)

NormalizedEvent = Union[TimeEvent, SyntheticExit]

_KNOWN_KINDS = tuple(EventKind)

END_OF_DAY_NOTE = "Automatic clock-out at end of day (no clock-out recorded)"
CONSECUTIVE_NOTE = "Automatic clock-out before consecutive clock-in"


def normalize(
    events: Iterable[TimeEvent],
    *,
    settings: Optional[TrackerSettings] = None,
    now: Optional[datetime] = None,
) -> list[NormalizedEvent]:
    """Sort events and insert synthetic exits wherever pairing would break.

    Two passes run in order: an end-of-day pass closing clock-ins left open on
    days that are already over, then a consecutive-entry pass closing any
    clock-in immediately followed by another clock-in. Ties in timestamp keep
    their input order.
    """
    settings = settings or TrackerSettings()
    now = now or datetime.now(timezone.utc)
    ordered = sorted(events, key=lambda event: event.timestamp)
    for event in ordered:
        if event.kind not in _KNOWN_KINDS:
            raise InvalidEventKind(event.id, event.kind)

    with_day_ends = list(_insert_end_of_day_exits(ordered, settings, now))
    return list(_insert_consecutive_exits(with_day_ends))


def _insert_end_of_day_exits(
    events: Sequence[TimeEvent], settings: TrackerSettings, now: datetime
) -> Iterator[NormalizedEvent]:
    today = settings.local_date(now)
    for index, event in enumerate(events):
        yield event
        if event.kind != EventKind.CLOCK_IN:
            continue
        following = events[index + 1] if index + 1 < len(events) else None
        if following is not None and following.kind != EventKind.CLOCK_IN:
            continue
        day = settings.local_date(event.timestamp)
        if following is not None and settings.local_date(following.timestamp) == day:
            continue
        if day >= today:
            continue
        logger.debug("Closing clock-in %s at end of %s", event.id, day.isoformat())
        yield SyntheticExit(
            id=f"autoexit-{event.id}",
            user_id=event.user_id,
            timestamp=settings.end_of_day(day),
            reason=ExitReason.END_OF_DAY,
            note=END_OF_DAY_NOTE,
        )


def _insert_consecutive_exits(
    events: Sequence[NormalizedEvent],
) -> Iterator[NormalizedEvent]:
    for index, event in enumerate(events):
        yield event
        if event.kind != EventKind.CLOCK_IN or index + 1 >= len(events):
            continue
        following = events[index + 1]
        if following.kind != EventKind.CLOCK_IN:
            continue
        logger.debug(
            "Clock-in %s followed by clock-in %s; inserting exit",
            event.id,
            following.id,
        )
        yield SyntheticExit(
            id=f"virtual-{event.id}",
            user_id=event.user_id,
            timestamp=following.timestamp,
            reason=ExitReason.CONSECUTIVE_ENTRY,
            note=CONSECUTIVE_NOTE,
        )
