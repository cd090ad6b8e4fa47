"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from .config import TrackerSettings
from .models import DailySummary, PeriodSummary, SessionPair, TodayStatus


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def __init__(
        self,
        settings: Optional[TrackerSettings] = None,
        echo: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.settings = settings or TrackerSettings()
        self._echo = echo or print

    def print_period_summary(self, summary: PeriodSummary) -> None:
        if not summary.daily_summaries:
            self._echo("No clock events recorded for the selected period.")
            return

        for day in summary.daily_summaries:
            self._print_day(day)
            self._echo("")

        self._echo("-" * 40)
        self._echo(f"Days:          {summary.total_days}")
        self._echo(f"Total hours:   {summary.total_hours:.2f}")
        self._echo(f"Average/day:   {summary.average_hours_per_day:.2f}")

    def print_today_status(self, status: TodayStatus) -> None:
        state = "clocked in" if status.is_clocked_in else "clocked out"
        self._echo(f"Currently {state}")
        if status.last_event:
            self._echo(
                f"Last event:  {status.last_event.kind.value} at "
                f"{self._clock_time(status.last_event.timestamp, with_date=True)}"
            )
        self._echo(f"Hours today: {status.total_hours_today:.2f}")

    def _print_day(self, day: DailySummary) -> None:
        flags = []
        if not day.is_complete:
            flags.append("open")
        if day.has_modifications:
            flags.append("modified")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        self._echo(f"{day.date}  {format_duration(day.total_minutes * 60)}{suffix}")
        for session in day.pairs:
            self._echo(f"  {self._describe(session)}")

    def _describe(self, session: SessionPair) -> str:
        start = self._clock_time(session.clock_in.timestamp)
        if session.clock_out is None:
            end = "(open)"
        else:
            end = self._clock_time(session.clock_out.timestamp)
            if session.clock_out.is_synthetic:
                end += "*"
        return f"{start} -> {end:<9} {format_duration(session.duration_minutes * 60)}"

    def _clock_time(self, value: datetime, with_date: bool = False) -> str:
        local = value.astimezone(self.settings.tzinfo)
        return local.strftime("%Y-%m-%d %H:%M" if with_date else "%H:%M")


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
