"""Detection of past days left with a clock-in that was never closed."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from .aggregation import Clock, DailyAggregator, utc_now
from .config import TrackerSettings
from .models import EventKind, OpenDayReport, TimeEvent

logger = logging.getLogger(__name__)


def find_open_entry(events: Iterable[TimeEvent]) -> Optional[TimeEvent]:
    """Return the clock-in still open after a plain in/out scan, if any.

    Works on raw events only; no synthetic exits are considered.
    """
    open_in: Optional[TimeEvent] = None
    for event in sorted(events, key=lambda e: e.timestamp):
        if event.kind == EventKind.CLOCK_IN:
            open_in = event
        elif event.kind == EventKind.CLOCK_OUT:
            open_in = None
    return open_in


class IncompleteDayDetector:
    """Scan a trailing window of days for clock-ins without an exit."""

    def __init__(
        self, settings: Optional[TrackerSettings] = None, clock: Optional[Clock] = None
    ) -> None:
        self.settings = settings or TrackerSettings()
        self._clock = clock or utc_now
        self._days = DailyAggregator(self.settings, self._clock)

    def window(self) -> tuple[datetime, datetime]:
        """Instant range covering the lookback days, ending at local midnight today."""
        today = self.settings.local_date(self._clock())
        start = self.settings.start_of_day(today - timedelta(days=self.settings.lookback_days))
        return start, self.settings.start_of_day(today)

    def detect_open_days(
        self, user_id: str, events: Iterable[TimeEvent]
    ) -> list[OpenDayReport]:
        today = self.settings.local_date(self._clock()).isoformat()
        reports: list[OpenDayReport] = []
        for day, bucket in sorted(self._days.group_by_day(events).items()):
            if day >= today:
                continue
            open_entry = find_open_entry(bucket)
            if open_entry is None:
                continue
            local_day = self.settings.local_date(open_entry.timestamp)
            reports.append(
                OpenDayReport(
                    user_id=user_id,
                    open_entry_id=open_entry.id,
                    open_timestamp=open_entry.timestamp,
                    implied_end_of_day=self.settings.end_of_day(local_day),
                )
            )
        if reports:
            logger.info("User %s has %d day(s) without clock-out", user_id, len(reports))
        return reports
