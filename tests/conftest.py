from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable

os.environ.setdefault("LOG_TO_FILE", "false")

import pytest

from jobfeed.config import PipelineConfig, SourceConfig
from jobfeed.store import JobStore

SKILLS = ("Python", "SQL", "Docker", "AWS", "Kubernetes", "React")


@pytest.fixture
def store(tmp_path: Path):
    db = JobStore(tmp_path / "jobs.sqlite3")
    yield db
    db.close()


@pytest.fixture
def make_raw() -> Callable[..., dict[str, Any]]:
    """JSearch-shaped listing item; keyword overrides replace or add fields."""

    def factory(job_id: str = "job-1", **overrides: Any) -> dict[str, Any]:
        raw: dict[str, Any] = {
            "job_id": job_id,
            "job_title": "Backend Engineer",
            "employer_name": "Acme Corp",
            "job_description": (
                "Build   data services.\n\nRequirements: Python and SQL experience. "
                "Responsibilities: ship features."
            ),
            "job_city": "Austin",
            "job_state": "TX",
            "job_country": "US",
            "job_employment_type": "FULLTIME",
            "job_apply_link": f"https://jobs.example.com/{job_id}",
            "job_posted_at_datetime_utc": "2026-10-01T12:00:00.000Z",
        }
        raw.update(overrides)
        return raw

    return factory


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    return PipelineConfig(
        sources=(
            SourceConfig(name="alpha", base_url="https://alpha.example.com", search_endpoint="/jobs"),
            SourceConfig(name="beta", base_url="https://beta.example.com", search_endpoint="/jobs"),
        ),
        skill_catalog=SKILLS,
    )
