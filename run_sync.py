#!/usr/bin/env python3
"""Operator entry point: one-off syncs, the background scheduler, cleanup and matching."""
from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from jobfeed.log import get_logger
from jobfeed.report import build_match_report, format_sync_summary, write_match_report
from jobfeed.service import JobFeedService, build_service

log = get_logger(__name__)


def _cmd_sync(service: JobFeedService, args: argparse.Namespace) -> int:
    if args.source:
        try:
            created = service.sync_one(args.source)
        except KeyError:
            log.error("Unknown source %r (configured: %s)", args.source, ", ".join(service.coordinator.sources) or "none")
            return 2
        except Exception as exc:
            log.error("Sync of %s failed: %s", args.source, exc)
            return 1
        print(f"{args.source}: {created} new posting(s)")
    else:
        summary = service.sync_all()
        print(format_sync_summary(summary))
        if summary.all_failed:
            return 1
    print(f"Total postings in store: {service.store.count_postings()}")
    return 0


def _cmd_serve(service: JobFeedService, args: argparse.Namespace) -> int:
    service.start()
    try:
        while True:
            time.sleep(60)
            status = service.get_status()
            log.debug(
                "Scheduler status: running=%s next_in=%s",
                status.is_running,
                f"{status.next_sync_in_seconds:.0f}s" if status.next_sync_in_seconds is not None else "-",
            )
    except KeyboardInterrupt:
        log.info("Interrupted, stopping scheduler")
    finally:
        service.stop()
    return 0


def _cmd_cleanup(service: JobFeedService, args: argparse.Namespace) -> int:
    count = service.cleanup_inactive(args.days)
    print(f"Marked {count} posting(s) inactive")
    return 0


def _cmd_matches(service: JobFeedService, args: argparse.Namespace) -> int:
    matches = service.find_matches(args.user, args.limit)
    if not matches:
        print(f"No matches for {args.user}")
        return 0
    for i, m in enumerate(matches, 1):
        print(f"{i:>3}. {m.score:5.1f}  {m.job.title} @ {m.job.company}  [{'; '.join(m.match_reasons)}]")
    if args.write:
        path = write_match_report(args.user, build_match_report(args.user, matches))
        print(f"Report: {path}")
    return 0


def _cmd_stats(service: JobFeedService, args: argparse.Namespace) -> int:
    print(f"Postings: {service.store.count_postings()} total, {service.store.count_postings(active=True)} active")
    for src in service.store.list_sources():
        last = src.last_sync.isoformat() if src.last_sync else "never"
        print(f"  {src.display_name} ({src.name}): last sync {last}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("sync", help="Run one sync cycle now")
    p.add_argument("--source", help="Only sync this source")
    p.set_defaults(func=_cmd_sync)

    p = sub.add_parser("serve", help="Run the scheduler until interrupted")
    p.set_defaults(func=_cmd_serve)

    p = sub.add_parser("cleanup", help="Retire postings not seen recently")
    p.add_argument("--days", type=int, default=30)
    p.set_defaults(func=_cmd_cleanup)

    p = sub.add_parser("matches", help="Rank active postings for a candidate")
    p.add_argument("user")
    p.add_argument("--limit", type=int, default=20)
    p.add_argument("--write", action="store_true", help="Write a markdown report under reports/")
    p.set_defaults(func=_cmd_matches)

    p = sub.add_parser("stats", help="Show posting counts and last sync per source")
    p.set_defaults(func=_cmd_stats)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    service = build_service()
    try:
        return args.func(service, args)
    finally:
        service.close()


if __name__ == "__main__":
    sys.exit(main())
