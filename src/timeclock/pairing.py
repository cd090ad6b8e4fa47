"""Match normalized clock events into work sessions."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from .errors import InvalidEventKind
from .models import EventKind, SessionPair, TimeEvent
from .normalization import NormalizedEvent

logger = logging.getLogger(__name__)


def pair(
    normalized: Iterable[NormalizedEvent], *, now: Optional[datetime] = None
) -> list[SessionPair]:
    """Pair each clock-in with the next clock-out.

    Expects chronological input. Clock-outs with nothing open are dropped. A
    clock-in still open at the end is measured against ``now``.
    """
    pairs: list[SessionPair] = []
    open_in: Optional[TimeEvent] = None

    for event in normalized:
        if event.kind == EventKind.CLOCK_IN:
            if open_in is not None:
                pairs.append(SessionPair(open_in, None, 0.0))
            open_in = event  # type: ignore[assignment]
        elif event.kind == EventKind.CLOCK_OUT:
            if open_in is None:
                logger.debug("Dropping orphan clock-out %s", event.id)
                continue
            pairs.append(
                SessionPair(
                    open_in,
                    event,
                    minutes_between(open_in.timestamp, event.timestamp),
                )
            )
            open_in = None
        else:
            raise InvalidEventKind(event.id, event.kind)

    if open_in is not None:
        now = now or datetime.now(timezone.utc)
        pairs.append(SessionPair(open_in, None, minutes_between(open_in.timestamp, now)))
    return pairs


def minutes_between(start: datetime, end: datetime) -> float:
    """Elapsed minutes from ``start`` to ``end``, never negative."""
    return max(0.0, (end - start).total_seconds() / 60)
