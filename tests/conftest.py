"""
Pytest configuration and shared fixtures.
"""

import sys
from datetime import datetime, timezone
from itertools import count
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from timeclock.config import TrackerSettings  # noqa: E402
from timeclock.models import EventKind, EventStatus, TimeEvent  # noqa: E402
from timeclock.service import TimeClockService  # noqa: E402

USER_ID = "user-1"
OTHER_USER_ID = "user-2"

# 13:00 local time (UTC+1) on Tuesday 2026-02-10.
NOW = datetime(2026, 2, 10, 12, 0, tzinfo=timezone.utc)

IN = EventKind.CLOCK_IN
OUT = EventKind.CLOCK_OUT


def utc(value: str) -> datetime:
    """Parse 'YYYY-MM-DDTHH:MM' as a UTC instant."""
    return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def settings():
    return TrackerSettings(utc_offset_hours=1, lookback_days=30)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def make_event():
    """Factory for TimeEvent values with sequential ids."""
    ids = count(1)

    def factory(
        kind,
        when,
        *,
        event_id=None,
        user_id=USER_ID,
        status=EventStatus.APPROVED,
        is_manual=False,
    ):
        return TimeEvent(
            id=event_id or str(next(ids)),
            user_id=user_id,
            kind=kind,
            timestamp=utc(when) if isinstance(when, str) else when,
            is_manual=is_manual,
            status=status,
        )

    return factory


@pytest.fixture
def service(tmp_path, settings, clock):
    return TimeClockService(tmp_path / "timeclock.sqlite3", settings, clock)
