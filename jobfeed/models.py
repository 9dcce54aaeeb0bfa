"""Data models for sources, canonical postings, candidates and matches."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

LOCATION_TYPES: tuple[str, ...] = ("remote", "hybrid", "onsite", "unknown")
EMPLOYMENT_TYPES: tuple[str, ...] = ("full-time", "part-time", "contract", "internship", "unknown")
EXPERIENCE_LEVELS: tuple[str, ...] = ("entry", "mid", "senior", "executive", "unknown")


@dataclass
class JobSource:
    name: str
    display_name: str
    base_url: str
    last_sync: datetime | None = None
    api_key: str | None = None
    active: bool = True
    sync_interval: int = 3600
    id: int | None = None


@dataclass
class JobSkill:
    name: str
    required: bool = False


@dataclass
class JobPosting:
    """Canonical posting; (source, source_id) is the dedup key."""

    title: str
    company: str
    description: str
    source: str
    source_id: str
    location: str = ""
    location_type: str = "unknown"
    employment_type: str = "unknown"
    experience_level: str = "unknown"
    requirements: str | None = None
    company_logo: str | None = None
    salary_min: float | None = None
    salary_max: float | None = None
    currency: str | None = None
    application_url: str | None = None
    source_url: str = ""
    posted_at: datetime | None = None
    last_synced: datetime | None = None
    active: bool = True
    skills: list[JobSkill] = field(default_factory=list)
    id: int | None = None

    @property
    def required_skills(self) -> list[str]:
        return [s.name for s in self.skills if s.required]

    @property
    def preferred_skills(self) -> list[str]:
        return [s.name for s in self.skills if not s.required]


@dataclass
class WorkHistoryEntry:
    title: str
    start: datetime
    end: datetime | None = None
    description: str = ""


@dataclass
class Education:
    degree: str
    major: str = ""


@dataclass
class CandidateProfile:
    user_id: str
    skills: list[str] = field(default_factory=list)
    work_history: list[WorkHistoryEntry] = field(default_factory=list)
    education: list[Education] = field(default_factory=list)
    remote_preferred: bool | None = None
    desired_location: str | None = None
    updated_at: datetime | None = None


@dataclass
class MatchResult:
    job: JobPosting
    score: float
    matched_skills: list[str]
    match_reasons: list[str]
    breakdown: dict[str, float] = field(default_factory=dict)
