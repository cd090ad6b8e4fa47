"""Daily and period work summaries built from raw clock events."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Sequence

from .config import TrackerSettings
from .models import (
    DailySummary,
    EventStatus,
    PeriodSummary,
    TimeEvent,
    TodayStatus,
)
from .normalization import normalize
from .pairing import pair

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DailyAggregator:
    """Group events by local calendar day and total the paired sessions."""

    def __init__(
        self, settings: Optional[TrackerSettings] = None, clock: Optional[Clock] = None
    ) -> None:
        self.settings = settings or TrackerSettings()
        self._clock = clock or utc_now

    def day_key(self, event: TimeEvent) -> str:
        return self.settings.local_date(event.timestamp).isoformat()

    def group_by_day(self, events: Iterable[TimeEvent]) -> dict[str, list[TimeEvent]]:
        buckets: defaultdict[str, list[TimeEvent]] = defaultdict(list)
        for event in events:
            buckets[self.day_key(event)].append(event)
        return dict(buckets)

    def summarize(self, events: Iterable[TimeEvent]) -> PeriodSummary:
        now = self._clock()
        summaries = [
            self.summarize_day(day, bucket, now=now)
            for day, bucket in self.group_by_day(events).items()
        ]
        if not summaries:
            return PeriodSummary()
        summaries.sort(key=lambda summary: summary.date, reverse=True)

        total_hours = round(sum(summary.total_hours for summary in summaries), 2)
        complete_days = sum(1 for summary in summaries if summary.is_complete)
        average = round(total_hours / complete_days, 2) if complete_days else 0.0
        return PeriodSummary(
            daily_summaries=tuple(summaries),
            total_days=len(summaries),
            total_hours=total_hours,
            average_hours_per_day=average,
        )

    def summarize_day(
        self, day: str, bucket: Sequence[TimeEvent], *, now: Optional[datetime] = None
    ) -> DailySummary:
        now = now or self._clock()
        pairs = pair(normalize(bucket, settings=self.settings, now=now), now=now)
        return DailySummary(
            date=day,
            pairs=tuple(pairs),
            total_minutes=sum(p.duration_minutes for p in pairs),
            is_complete=all(p.clock_out is not None for p in pairs),
            has_modifications=any(e.status == EventStatus.MODIFIED for e in bucket),
        )

    def today_status(
        self, events: Iterable[TimeEvent], last_event: Optional[TimeEvent] = None
    ) -> TodayStatus:
        """Clock state and hours so far for the current local day."""
        now = self._clock()
        today = self.settings.local_date(now).isoformat()
        today_events = sorted(
            (event for event in events if self.day_key(event) == today),
            key=lambda event: event.timestamp,
        )
        pairs = pair(normalize(today_events, settings=self.settings, now=now), now=now)
        total_minutes = sum(p.duration_minutes for p in pairs)
        if last_event is None and today_events:
            last_event = today_events[-1]
        return TodayStatus(
            is_clocked_in=bool(pairs) and pairs[-1].clock_out is None,
            last_event=last_event,
            today_events=tuple(today_events),
            total_hours_today=round(total_minutes / 60, 2),
        )
