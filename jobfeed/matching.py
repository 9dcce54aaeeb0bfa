"""Score active postings against a candidate profile."""
from __future__ import annotations

import re
from datetime import datetime, timezone

from jobfeed.errors import ProfileNotFoundError
from jobfeed.log import get_logger
from jobfeed.models import CandidateProfile, JobPosting, MatchResult
from jobfeed.profiles import ProfileStore
from jobfeed.store import JobStore

log = get_logger(__name__)

SKILL_REQUIRED_WEIGHT = 30.0
SKILL_PREFERRED_WEIGHT = 10.0
EXPERIENCE_WEIGHT = 25.0
LOCATION_WEIGHT = 15.0
KEYWORD_WEIGHT = 10.0
SALARY_WEIGHT = 10.0

NEUTRAL = 0.5
# No candidate location preference is modeled yet.
NON_REMOTE_LOCATION_SCORE = 0.7
MAX_SKILLS_IN_REASON = 3

STOP_WORDS: frozenset[str] = frozenset({
    "the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
    "an", "a", "is", "are", "was", "were", "be", "been", "being", "have", "has",
    "had", "do", "does", "did", "will", "would", "could", "should", "may", "might",
    "must", "can", "this", "that", "these", "those",
})

_PUNCT_RE = re.compile(r"[^\w\s]")


def tokenize(text: str) -> set[str]:
    words = _PUNCT_RE.sub(" ", (text or "").lower()).split()
    return {w for w in words if len(w) > 2 and w not in STOP_WORDS}


def years_of_experience(profile: CandidateProfile, now: datetime) -> float:
    total_days = 0.0
    for entry in profile.work_history:
        end = entry.end or now
        total_days += max((end - entry.start).total_seconds(), 0.0) / 86400.0
    return total_days / 365.25


def experience_fit(level: str, years: float) -> float:
    """Banded lookup: full credit inside the level's band, partial near it."""
    if level == "entry":
        return 1.0 if years <= 2 else 0.7 if years <= 5 else 0.3
    if level == "mid":
        if 2 <= years <= 7:
            return 1.0
        return 0.8 if 1 <= years <= 10 else 0.4
    if level == "senior":
        return 1.0 if years >= 5 else 0.8 if years >= 3 else 0.3
    if level == "executive":
        return 1.0 if years >= 8 else 0.7 if years >= 5 else 0.2
    return NEUTRAL


def location_fit(job: JobPosting) -> float:
    if not job.location or "remote" in job.location.lower() or job.location_type == "remote":
        return 1.0
    return NON_REMOTE_LOCATION_SCORE


def candidate_text(profile: CandidateProfile) -> str:
    parts: list[str] = []
    for entry in profile.work_history:
        parts.extend([entry.title, entry.description])
    parts.extend(profile.skills)
    for edu in profile.education:
        parts.extend([edu.degree, edu.major])
    return " ".join(p for p in parts if p)


def keyword_overlap(job: JobPosting, profile: CandidateProfile) -> float:
    job_words = tokenize(f"{job.title} {job.description}")
    if not job_words:
        return 0.0
    resume_words = tokenize(candidate_text(profile))
    hits = sum(1 for jw in job_words if any(jw in rw or rw in jw for rw in resume_words))
    return hits / len(job_words)


def _fraction(matched: int, total: int) -> float:
    return matched / total if total else 0.0


def score_posting(job: JobPosting, profile: CandidateProfile, now: datetime | None = None) -> MatchResult:
    now = now or datetime.now(timezone.utc)
    have = {s.lower() for s in profile.skills}

    required = job.required_skills
    preferred = job.preferred_skills
    req_hit = [s for s in required if s.lower() in have]
    pref_hit = [s for s in preferred if s.lower() in have]

    if profile.work_history and job.experience_level != "unknown":
        exp = experience_fit(job.experience_level, years_of_experience(profile, now))
    else:
        exp = NEUTRAL

    breakdown = {
        "required_skills": _fraction(len(req_hit), len(required)) * SKILL_REQUIRED_WEIGHT,
        "preferred_skills": _fraction(len(pref_hit), len(preferred)) * SKILL_PREFERRED_WEIGHT,
        "experience": exp * EXPERIENCE_WEIGHT,
        "location": location_fit(job) * LOCATION_WEIGHT,
        "keywords": keyword_overlap(job, profile) * KEYWORD_WEIGHT,
        "salary": NEUTRAL * SALARY_WEIGHT,
    }
    score = min(max(sum(breakdown.values()), 0.0), 100.0)

    matched = list(dict.fromkeys(req_hit + pref_hit))
    reasons: list[str] = []
    if matched:
        shown = ", ".join(matched[:MAX_SKILLS_IN_REASON])
        extra = len(matched) - MAX_SKILLS_IN_REASON
        reasons.append(f"Skills: {shown}" + (f" +{extra} more" if extra > 0 else ""))
    if job.experience_level and job.experience_level != "unknown":
        reasons.append(f"Level: {job.experience_level}")
    if job.location_type == "remote":
        reasons.append("Remote work")

    return MatchResult(job=job, score=score, matched_skills=matched, match_reasons=reasons, breakdown=breakdown)


class MatchingEngine:
    def __init__(self, store: JobStore, profiles: ProfileStore) -> None:
        self.store = store
        self.profiles = profiles

    def find_matches(self, user_id: str, limit: int = 20, now: datetime | None = None) -> list[MatchResult]:
        """Best-first matches over all active postings; empty when the user has no profile."""
        try:
            profile = self.profiles.require_profile(user_id)
        except ProfileNotFoundError:
            log.info("No profile for %s, returning no matches", user_id)
            return []
        if limit <= 0:
            return []

        jobs = self.store.list_active_postings()
        # sorted() is stable, so equal scores keep retrieval (id) order.
        ranked = sorted((score_posting(j, profile, now) for j in jobs), key=lambda m: -m.score)
        log.info("Scored %d postings for %s, returning top %d", len(jobs), user_id, min(limit, len(ranked)))
        return ranked[:limit]
