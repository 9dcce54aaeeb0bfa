from __future__ import annotations

from pathlib import Path

import pytest

from jobfeed.models import JobPosting, MatchResult
from jobfeed.report import build_match_report, format_sync_summary, write_match_report
from jobfeed.sync import SourceReport, SyncSummary

pytestmark = pytest.mark.unit


def _match(title: str, score: float, url: str | None) -> MatchResult:
    job = JobPosting(
        title=title,
        company="Acme",
        description="d",
        source="jsearch",
        source_id=title,
        location="Austin, TX",
        location_type="onsite",
        application_url=url,
    )
    return MatchResult(job=job, score=score, matched_skills=["Python"], match_reasons=["Skills: Python", "Level: mid"])


def test_match_report_lists_top_matches() -> None:
    content = build_match_report(
        "alice",
        [_match("Backend Engineer", 72.5, "https://www.linkedin.com/jobs/1"), _match("Analyst", 40.0, None)],
    )

    assert content.startswith("# Job Matches for alice")
    assert "**2** postings matched" in content
    assert "### Backend Engineer @ Acme" in content
    assert "- **Score:** 72.5/100" in content
    assert "- **Why:** Skills: Python; Level: mid" in content
    assert "[Linkedin](https://www.linkedin.com/jobs/1)" in content
    assert "| 2 | Analyst | Acme | Austin | 40 |" in content


def test_empty_report() -> None:
    assert "_No active postings matched this profile._" in build_match_report("bob", [])


def test_write_match_report(tmp_path: Path) -> None:
    path = write_match_report("a/b", "# hi", directory=tmp_path)
    assert path.parent == tmp_path
    assert path.name.startswith("matches_a_b_")
    assert path.read_text(encoding="utf-8") == "# hi"


def test_format_sync_summary() -> None:
    summary = SyncSummary(
        success_count=1,
        failure_count=1,
        reports=[
            SourceReport(name="jsearch", ok=True, fetched=5, created=5),
            SourceReport(name="adzuna", ok=False, error="[adzuna] HTTP 503"),
        ],
    )
    text = format_sync_summary(summary)
    assert text.splitlines()[0] == "Sources: 1 succeeded, 1 failed"
    assert "jsearch: fetched=5 created=5" in text
    assert "adzuna: FAILED ([adzuna] HTTP 503)" in text
