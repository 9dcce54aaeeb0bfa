"""Source sync coordinator: fetch every source concurrently, then normalize and upsert."""
from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from jobfeed.config import PipelineConfig
from jobfeed.dedup import CREATED, UNCHANGED, UPDATED, apply_posting
from jobfeed.log import get_logger
from jobfeed.models import JobSource
from jobfeed.normalize import normalize
from jobfeed.sources import DISPLAY_NAMES, ListingSource, display_name_for, get_sources
from jobfeed.store import JobStore, utc_now

log = get_logger(__name__)

MASKED_KEY = "***"


@dataclass
class SourceReport:
    name: str
    ok: bool = False
    fetched: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    rejected: int = 0
    error: str | None = None
    duration: float = 0.0


@dataclass
class SyncSummary:
    success_count: int = 0
    failure_count: int = 0
    reports: list[SourceReport] = field(default_factory=list)

    @property
    def created(self) -> int:
        return sum(r.created for r in self.reports)

    @property
    def updated(self) -> int:
        return sum(r.updated for r in self.reports)

    @property
    def all_failed(self) -> bool:
        return bool(self.reports) and self.success_count == 0


class SyncCoordinator:
    def __init__(
        self,
        store: JobStore,
        config: PipelineConfig,
        sources: dict[str, ListingSource] | None = None,
        *,
        max_workers: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.config = config
        self.sources = sources if sources is not None else get_sources(config)
        self.max_workers = max_workers
        self._clock = clock
        self._catalog_loaded = False

    def _ensure_catalog(self) -> None:
        if not self._catalog_loaded:
            added = self.store.ensure_skills(self.config.skill_catalog)
            if added:
                log.info("Added %d skill(s) to the catalog", added)
            self._catalog_loaded = True

    def _source_record(self, name: str, synced_at: datetime) -> JobSource:
        try:
            cfg = self.config.source(name)
        except KeyError:
            return JobSource(name=name, display_name=DISPLAY_NAMES.get(name, name), base_url="", last_sync=synced_at)
        return JobSource(
            name=name,
            display_name=display_name_for(cfg),
            base_url=cfg.base_url,
            api_key=MASKED_KEY if cfg.has_credentials else None,
            last_sync=synced_at,
        )

    def _ingest(self, source: ListingSource, report: SourceReport) -> None:
        """Fetch, then normalize and upsert each item in sequence. Raises on fetch/store failure."""
        items = source.fetch()
        report.fetched = len(items)
        now = self._clock()
        for raw in items:
            posting = normalize(
                raw,
                source.name,
                level_keywords=self.config.level_keywords,
                skill_catalog=self.config.skill_catalog,
                now=now,
            )
            if posting is None:
                report.rejected += 1
                continue
            outcome = apply_posting(self.store, posting)
            if outcome.action == CREATED:
                report.created += 1
            elif outcome.action == UPDATED:
                report.updated += 1
            elif outcome.action == UNCHANGED:
                report.unchanged += 1

        self.store.record_source_sync(self._source_record(source.name, now))
        report.ok = True
        log.info(
            "[%s] fetched=%d created=%d updated=%d unchanged=%d rejected=%d",
            source.name, report.fetched, report.created, report.updated,
            report.unchanged, report.rejected,
        )

    def _sync_source(self, source: ListingSource) -> SourceReport:
        report = SourceReport(name=source.name)
        started = time.monotonic()
        try:
            self._ingest(source, report)
        except Exception as exc:
            report.ok = False
            report.error = str(exc)
            log.error("[%s] FAILED: %s", source.name, exc)
        report.duration = time.monotonic() - started
        return report

    def sync_all(self) -> SyncSummary:
        """Sync every source concurrently; waits for all of them regardless of failures."""
        self._ensure_catalog()
        summary = SyncSummary()
        if not self.sources:
            return summary

        log.info("Syncing %d source(s) in parallel...", len(self.sources))
        reports: dict[str, SourceReport] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers or len(self.sources)) as pool:
            futures = {pool.submit(self._sync_source, src): name for name, src in self.sources.items()}
            for future in as_completed(futures):
                reports[futures[future]] = future.result()

        summary.reports = [reports[name] for name in self.sources]
        summary.success_count = sum(1 for r in summary.reports if r.ok)
        summary.failure_count = len(summary.reports) - summary.success_count
        log.info(
            "Sync complete: %d succeeded, %d failed, %d created, %d updated",
            summary.success_count, summary.failure_count, summary.created, summary.updated,
        )
        return summary

    def sync_one(self, name: str) -> int:
        """Sync a single source by name; returns the number of postings created.

        Raises KeyError for an unknown name and lets the source's failure propagate.
        """
        source = self.sources[name]
        self._ensure_catalog()
        report = SourceReport(name=name)
        try:
            self._ingest(source, report)
        except Exception as exc:
            log.error("[%s] FAILED: %s", name, exc)
            raise
        return report.created

    def cleanup_inactive(self, days_old: int = 30) -> int:
        """Retire active postings not seen by any sync for ``days_old`` days."""
        cutoff = self._clock() - timedelta(days=days_old)
        count = self.store.mark_inactive_before(cutoff)
        log.info("Marked %d posting(s) inactive (not synced since %s)", count, cutoff.isoformat())
        return count
