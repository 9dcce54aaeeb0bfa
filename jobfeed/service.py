"""Caller-facing facade wiring the store, coordinator, scheduler and matcher together."""
from __future__ import annotations

from pathlib import Path
from typing import Any

from jobfeed.config import (
    PROFILES_DIR,
    PipelineConfig,
    SchedulerSettings,
    db_path,
    ensure_dirs,
    load_pipeline_config,
    load_scheduler_settings,
)
from jobfeed.log import get_logger
from jobfeed.matching import MatchingEngine
from jobfeed.models import JobPosting, MatchResult
from jobfeed.profiles import ProfileStore
from jobfeed.scheduler import SchedulerStatus, SyncScheduler
from jobfeed.sources import ListingSource
from jobfeed.store import JobStore
from jobfeed.sync import SyncCoordinator, SyncSummary

log = get_logger(__name__)


class JobFeedService:
    def __init__(
        self,
        store: JobStore,
        config: PipelineConfig,
        profiles: ProfileStore,
        settings: SchedulerSettings | None = None,
        sources: dict[str, ListingSource] | None = None,
    ) -> None:
        self.store = store
        self.config = config
        self.coordinator = SyncCoordinator(store, config, sources)
        self.scheduler = SyncScheduler(self.coordinator, settings)
        self.matcher = MatchingEngine(store, profiles)

    def sync_all(self) -> SyncSummary:
        return self.coordinator.sync_all()

    def sync_one(self, name: str) -> int:
        return self.coordinator.sync_one(name)

    def cleanup_inactive(self, days_old: int = 30) -> int:
        return self.coordinator.cleanup_inactive(days_old)

    def start(self) -> bool:
        return self.scheduler.start()

    def stop(self) -> bool:
        return self.scheduler.stop()

    def get_status(self) -> SchedulerStatus:
        return self.scheduler.get_status()

    def trigger_sync(self) -> SyncSummary:
        return self.scheduler.trigger_sync()

    def find_matches(self, user_id: str, limit: int = 20) -> list[MatchResult]:
        return self.matcher.find_matches(user_id, limit)

    def search_postings(self, **filters: Any) -> tuple[list[JobPosting], int]:
        return self.store.search_postings(**filters)

    def close(self, timeout: float | None = None) -> None:
        """Stop the timer and let an in-flight cycle finish before the store closes."""
        self.scheduler.stop()
        self.scheduler.join(timeout)
        if self.scheduler.get_status().is_running:
            log.warning("Closing the job store while a sync cycle is still running")
        self.store.close()


def build_service(
    sources_path: Path | None = None,
    database: Path | None = None,
    profiles_dir: Path = PROFILES_DIR,
) -> JobFeedService:
    ensure_dirs()
    config = load_pipeline_config(sources_path)
    store = JobStore(database or db_path())
    log.info("Job store: %s (%d sources configured)", store.path, len(config.sources))
    return JobFeedService(store, config, ProfileStore(profiles_dir), load_scheduler_settings())
