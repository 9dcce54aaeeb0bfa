from __future__ import annotations

import threading

import pytest

from jobfeed.config import SchedulerSettings
from jobfeed.errors import SyncInProgressError
from jobfeed.scheduler import SyncScheduler
from jobfeed.sync import SourceReport, SyncSummary

pytestmark = pytest.mark.integration

WAIT = 5.0


class FakeCoordinator:
    def __init__(self, block: bool = False, error: Exception | None = None) -> None:
        self.calls = 0
        self.cleanups: list[int] = []
        self.started = threading.Event()
        self.release = threading.Event()
        self.block = block
        self.error = error
        if not block:
            self.release.set()

    def sync_all(self) -> SyncSummary:
        self.calls += 1
        self.started.set()
        self.release.wait(WAIT)
        if self.error is not None:
            raise self.error
        return SyncSummary(success_count=1, reports=[SourceReport(name="alpha", ok=True)])

    def cleanup_inactive(self, days_old: int = 30) -> int:
        self.cleanups.append(days_old)
        return 7


def _scheduler(coordinator, rng=lambda: 0.99, **settings) -> SyncScheduler:
    return SyncScheduler(coordinator, SchedulerSettings(**settings), rng=rng)


def test_start_is_idempotent() -> None:
    scheduler = _scheduler(FakeCoordinator(), initial_delay_seconds=60)
    try:
        assert scheduler.start() is True
        first_thread = scheduler._thread
        assert scheduler.start() is False
        assert scheduler._thread is first_thread
        assert scheduler.get_status().is_scheduled
    finally:
        scheduler.stop()
    assert scheduler.stop() is False
    status = scheduler.get_status()
    assert not status.is_scheduled
    assert status.next_sync_in_seconds is None


def test_status_reports_time_until_next_tick() -> None:
    scheduler = SyncScheduler(
        FakeCoordinator(), SchedulerSettings(initial_delay_seconds=60), clock=lambda: 100.0
    )
    scheduler.start()
    try:
        status = scheduler.get_status()
        assert status.next_sync_in_seconds == pytest.approx(60.0)
        assert status.is_running is False
        assert status.last_result is None
    finally:
        scheduler.stop()


def test_first_tick_fires_after_initial_delay() -> None:
    coordinator = FakeCoordinator()
    scheduler = _scheduler(coordinator, initial_delay_seconds=0.01, interval_minutes=60)
    scheduler.start()
    try:
        assert coordinator.started.wait(WAIT)
    finally:
        scheduler.stop()
        scheduler.join(WAIT)
    assert coordinator.calls == 1
    assert scheduler.get_status().last_result.success_count == 1


def test_trigger_while_running_is_rejected() -> None:
    coordinator = FakeCoordinator(block=True)
    scheduler = _scheduler(coordinator)
    results: list[SyncSummary] = []
    worker = threading.Thread(target=lambda: results.append(scheduler.trigger_sync()))
    worker.start()
    try:
        assert coordinator.started.wait(WAIT)
        assert scheduler.get_status().is_running
        with pytest.raises(SyncInProgressError):
            scheduler.trigger_sync()
        # a timer tick arriving now is skipped, not queued
        scheduler._tick()
    finally:
        coordinator.release.set()
        worker.join(WAIT)

    assert coordinator.calls == 1
    assert len(results) == 1
    assert not scheduler.get_status().is_running


def test_cleanup_runs_when_rng_falls_under_probability() -> None:
    coordinator = FakeCoordinator()
    scheduler = _scheduler(coordinator, rng=lambda: 0.05, cleanup_probability=0.1, cleanup_days=30)
    scheduler.trigger_sync()
    assert coordinator.cleanups == [30]
    assert scheduler.get_status().last_cleanup_count == 7


def test_cleanup_skipped_otherwise() -> None:
    coordinator = FakeCoordinator()
    scheduler = _scheduler(coordinator, rng=lambda: 0.5, cleanup_probability=0.1)
    scheduler.trigger_sync()
    assert coordinator.cleanups == []
    assert scheduler.get_status().last_cleanup_count is None


def test_failed_cycle_clears_in_progress_flag() -> None:
    coordinator = FakeCoordinator(error=RuntimeError("store is down"))
    scheduler = _scheduler(coordinator)

    scheduler._tick()
    assert not scheduler.get_status().is_running
    with pytest.raises(RuntimeError):
        scheduler.trigger_sync()
    assert coordinator.calls == 2
    assert not scheduler.get_status().is_running
