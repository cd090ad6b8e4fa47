"""Configuration models and helpers for the time clock."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone


@dataclass(slots=True)
class TrackerSettings:
    """Runtime configuration shared by the aggregator, detector and sweeper.

    Local time is a fixed hour offset from UTC. Daylight saving is not modelled.
    """

    utc_offset_hours: int = 1
    lookback_days: int = 30
    sweep_time: time = time(0, 5)
    sweep_poll: timedelta = timedelta(seconds=60)

    @classmethod
    def from_options(
        cls,
        utc_offset_hours: int = 1,
        lookback_days: int = 30,
        sweep_at: str | None = None,
        sweep_poll_seconds: float | None = None,
    ) -> "TrackerSettings":
        sweep_time = (
            datetime.strptime(sweep_at, "%H:%M").time() if sweep_at else time(0, 5)
        )
        poll = sweep_poll_seconds if sweep_poll_seconds is not None else 60.0
        return cls(
            utc_offset_hours=utc_offset_hours,
            lookback_days=lookback_days,
            sweep_time=sweep_time,
            sweep_poll=timedelta(seconds=poll),
        )

    @property
    def tzinfo(self) -> timezone:
        return timezone(timedelta(hours=self.utc_offset_hours))

    def local_date(self, instant: datetime) -> date:
        return instant.astimezone(self.tzinfo).date()

    def start_of_day(self, day: date) -> datetime:
        return datetime.combine(day, time.min, tzinfo=self.tzinfo)

    def end_of_day(self, day: date) -> datetime:
        """Last representable millisecond of ``day`` in local time."""
        return datetime.combine(day, time(23, 59, 59, 999000), tzinfo=self.tzinfo)
