"""Background timer that drives sync cycles, one at a time."""
from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass
from typing import Callable

from jobfeed.config import SchedulerSettings
from jobfeed.errors import SyncInProgressError
from jobfeed.log import get_logger
from jobfeed.sync import SyncCoordinator, SyncSummary

log = get_logger(__name__)


@dataclass
class SchedulerStatus:
    is_running: bool
    is_scheduled: bool
    next_sync_in_seconds: float | None
    last_result: SyncSummary | None
    last_cleanup_count: int | None


class SyncScheduler:
    """Stopped/running state machine around a daemon timer thread.

    The first cycle fires ``initial_delay_seconds`` after ``start()``, then
    every ``interval_minutes``. A tick that comes due while a cycle is still
    in flight (e.g. a manual ``trigger_sync``) is skipped, not queued.
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        settings: SchedulerSettings | None = None,
        *,
        rng: Callable[[], float] = random.random,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.coordinator = coordinator
        self.settings = settings or SchedulerSettings()
        self._rng = rng
        self._clock = clock
        self._cycle_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._stop_event: threading.Event | None = None
        self._thread: threading.Thread | None = None
        self._next_tick_at: float | None = None
        self.last_result: SyncSummary | None = None
        self.last_cleanup_count: int | None = None

    @property
    def interval_seconds(self) -> float:
        return self.settings.interval_minutes * 60.0

    @property
    def is_scheduled(self) -> bool:
        return self._stop_event is not None

    def start(self) -> bool:
        """Returns False (and does nothing) when already running."""
        with self._state_lock:
            if self._stop_event is not None:
                log.info("Scheduler already running")
                return False
            stop = threading.Event()
            self._stop_event = stop
            self._next_tick_at = self._clock() + self.settings.initial_delay_seconds
            self._thread = threading.Thread(
                target=self._loop, args=(stop,), name="jobfeed-scheduler", daemon=True
            )
            self._thread.start()
        log.info(
            "Scheduler started: first sync in %.0fs, then every %.0f min",
            self.settings.initial_delay_seconds,
            self.settings.interval_minutes,
        )
        return True

    def stop(self) -> bool:
        """Cancel future ticks; a cycle already in flight runs to completion."""
        with self._state_lock:
            if self._stop_event is None:
                return False
            self._stop_event.set()
            self._stop_event = None
            self._next_tick_at = None
        log.info("Scheduler stopped")
        return True

    def join(self, timeout: float | None = None) -> None:
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def _loop(self, stop: threading.Event) -> None:
        next_at = self._clock() + self.settings.initial_delay_seconds
        while not stop.wait(max(next_at - self._clock(), 0.0)):
            self._tick()
            next_at += self.interval_seconds
            now = self._clock()
            skipped = 0
            while next_at <= now:
                next_at += self.interval_seconds
                skipped += 1
            if skipped:
                log.warning("Sync cycle overran, skipped %d tick(s)", skipped)
            with self._state_lock:
                if self._stop_event is stop:
                    self._next_tick_at = next_at

    def _tick(self) -> None:
        try:
            if self._run_cycle() is None:
                log.info("Sync already in progress, skipping this tick")
        except Exception as exc:
            log.error("Scheduled sync failed: %s", exc)

    def _run_cycle(self) -> SyncSummary | None:
        if not self._cycle_lock.acquire(blocking=False):
            return None
        try:
            summary = self.coordinator.sync_all()
            self.last_result = summary
            if self._rng() < self.settings.cleanup_probability:
                self.last_cleanup_count = self.coordinator.cleanup_inactive(self.settings.cleanup_days)
            return summary
        finally:
            self._cycle_lock.release()

    def trigger_sync(self) -> SyncSummary:
        """Run one cycle now, outside the timer. SyncInProgressError if one is running."""
        summary = self._run_cycle()
        if summary is None:
            raise SyncInProgressError("a sync cycle is already running")
        return summary

    def get_status(self) -> SchedulerStatus:
        with self._state_lock:
            next_at = self._next_tick_at
            scheduled = self._stop_event is not None
        next_in = max(next_at - self._clock(), 0.0) if scheduled and next_at is not None else None
        return SchedulerStatus(
            is_running=self._cycle_lock.locked(),
            is_scheduled=scheduled,
            next_sync_in_seconds=next_in,
            last_result=self.last_result,
            last_cleanup_count=self.last_cleanup_count,
        )
