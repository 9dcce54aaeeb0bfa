"""Markdown reports for match results and sync summaries."""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import urlparse

from jobfeed.config import REPORTS_DIR
from jobfeed.log import get_logger
from jobfeed.models import MatchResult
from jobfeed.sync import SyncSummary

log = get_logger(__name__)


def _short_url_label(url: str) -> str:
    host = (urlparse(url).hostname or "").replace("www.", "")
    parts = host.split(".")
    return parts[0].capitalize() if parts and parts[0] else "Link"


def _truncate(text: str, width: int) -> str:
    return text[:width] + ("…" if len(text) > width else "")


def build_match_report(user_id: str, matches: list[MatchResult], top: int = 15) -> str:
    date = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    lines: list[str] = [f"# Job Matches for {user_id} ({date})", ""]

    shown = matches[:top]
    lines.append(f"**{len(matches)}** postings matched")
    lines.append("")
    if not shown:
        lines.append("_No active postings matched this profile._")
        return "\n".join(lines)

    lines.append("## Top Matches")
    lines.append("")
    for m in shown:
        job = m.job
        url = job.application_url or job.source_url
        lines.append(f"### {job.title} @ {job.company}")
        lines.append(f"- **Score:** {m.score:.1f}/100")
        lines.append(f"- **Location:** {job.location or 'Unspecified'} ({job.location_type})")
        if m.match_reasons:
            lines.append(f"- **Why:** {'; '.join(m.match_reasons)}")
        if url:
            lines.append(f"- **Apply:** [{_short_url_label(url)}]({url})")
        lines.append("")

    lines.append("---")
    lines.append("")
    lines.append("## Quick Reference")
    lines.append("")
    lines.append("| # | Role | Company | Location | Score | Apply |")
    lines.append("|--:|------|---------|----------|------:|-------|")
    for i, m in enumerate(shown, 1):
        job = m.job
        url = job.application_url or job.source_url
        loc = (job.location or "—").split(",")[0][:18]
        link = f"[{_short_url_label(url)}]({url})" if url else "—"
        lines.append(
            f"| {i} | {_truncate(job.title, 40)} | {_truncate(job.company, 22)} | {loc} | {m.score:.0f} | {link} |"
        )
    lines.append("")

    log.info("Built match report for %s: %d matches", user_id, len(matches))
    return "\n".join(lines)


def write_match_report(user_id: str, content: str, directory: Path = REPORTS_DIR) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    date = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    safe_user = "".join(c if c.isalnum() or c in "-_" else "_" for c in user_id)
    path = directory / f"matches_{safe_user}_{date}.md"
    path.write_text(content, encoding="utf-8")
    log.info("Report written: %s", path)
    return path


def format_sync_summary(summary: SyncSummary) -> str:
    lines = [f"Sources: {summary.success_count} succeeded, {summary.failure_count} failed"]
    for r in summary.reports:
        if r.ok:
            lines.append(
                f"  {r.name}: fetched={r.fetched} created={r.created} updated={r.updated} "
                f"unchanged={r.unchanged} rejected={r.rejected} ({r.duration:.1f}s)"
            )
        else:
            lines.append(f"  {r.name}: FAILED ({r.error})")
    return "\n".join(lines)
