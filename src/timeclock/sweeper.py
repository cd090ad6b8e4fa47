"""Daily background sweep that raises incidents for days left open."""

from __future__ import annotations

import logging
import threading
from datetime import date
from typing import Optional

from .service import SweepResult, TimeClockService

logger = logging.getLogger(__name__)


class OpenDaySweeper:
    """Runs ``sweep_all_users`` once per local day after the configured time."""

    def __init__(self, service: TimeClockService) -> None:
        self.service = service
        self.settings = service.settings
        self.last_run_date: Optional[date] = None
        self.last_result: Optional[SweepResult] = None
        self._lock = threading.Lock()

    def run_if_due(self) -> Optional[SweepResult]:
        local_now = self.service.now().astimezone(self.settings.tzinfo)
        with self._lock:
            if self.last_run_date == local_now.date():
                return None
            if local_now.time() < self.settings.sweep_time:
                return None
            self.last_run_date = local_now.date()
        return self.run_now()

    def run_now(self) -> SweepResult:
        result = self.service.sweep_all_users()
        with self._lock:
            self.last_result = result
        return result

    def run_until_stopped(self, stop_event: threading.Event) -> None:
        """Run the sweep loop until the provided event is set."""
        logger.info(
            "Starting open-day sweeper; daily at %s (UTC%+d)",
            self.settings.sweep_time.strftime("%H:%M"),
            self.settings.utc_offset_hours,
        )
        interval = self.settings.sweep_poll.total_seconds()
        while not stop_event.is_set():
            try:
                self.run_if_due()
            except Exception:  # pragma: no cover - defensive log path
                logger.exception("Open-day sweep failed; retrying next poll.")
            stop_event.wait(interval)
        logger.info("Open-day sweeper stopped.")


class SweeperRunner:
    """Manage the open-day sweeper in a background thread."""

    def __init__(self, sweeper: OpenDaySweeper) -> None:
        self.sweeper = sweeper
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self.sweeper.run_until_stopped,
                args=(stop_event,),
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            thread.start()
            logger.info("Sweeper background thread started.")

    def stop(self) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            if not self._thread or not self._thread.is_alive() or not self._stop_event:
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._stop_event = None
        if thread:
            thread.join(timeout=10)
            logger.info("Sweeper background thread stopped.")

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())
