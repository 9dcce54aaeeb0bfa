"""Normalization of raw listing payloads into canonical postings.

Each listing API names the same things differently (JSearch ``job_title``,
Adzuna ``company.display_name``, Remotive ``candidate_required_location``).
Every canonical field is read from a list of alternate keys, cleaned, and
classified with deterministic keyword heuristics so the same payload always
yields the same record.
"""
from __future__ import annotations

import functools
import hashlib
import re
from datetime import datetime, timezone
from typing import Any, Iterable

from jobfeed.config import DEFAULT_LEVEL_KEYWORDS
from jobfeed.errors import MalformedPayloadError
from jobfeed.log import get_logger
from jobfeed.models import JobPosting, JobSkill

log = get_logger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")

_REQUIREMENTS_RE = re.compile(
    r"(?:requirements|qualifications|what you need|you have)(.*?)"
    r"(?:responsibilities|what you'll do|benefits|$)",
    re.IGNORECASE | re.DOTALL,
)

EMPLOYMENT_TYPE_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("full", "permanent"), "full-time"),
    (("part",), "part-time"),
    (("contract", "freelance", "temporary"), "contract"),
    (("intern",), "internship"),
)


def clean_text(text: Any) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    if text is None:
        return ""
    if not isinstance(text, str):
        text = str(text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def _first(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        val = raw.get(key)
        if val not in (None, "", [], {}):
            return val
    return None


def _display(val: Any) -> Any:
    # Adzuna nests names: {"display_name": "Acme"}
    if isinstance(val, dict):
        return val.get("display_name") or val.get("name")
    return val


def format_location(raw: dict[str, Any]) -> str:
    parts = [
        clean_text(_first(raw, "job_city", "city")),
        clean_text(_first(raw, "job_state", "state")),
        clean_text(_first(raw, "job_country", "country")),
    ]
    parts = [p for p in parts if p]
    if parts:
        return ", ".join(parts)
    return clean_text(_display(_first(raw, "location", "job_location", "candidate_required_location")))


def infer_location_type(description: str, location: str, remote_flag: bool = False) -> str:
    desc = description.lower()
    loc = location.lower()
    if remote_flag or "remote" in desc or "remote" in loc:
        return "remote"
    if "hybrid" in desc:
        return "hybrid"
    if loc:
        return "onsite"
    return "unknown"


def infer_employment_type(value: Any) -> str:
    text = clean_text(value).lower()
    if not text:
        return "unknown"
    for needles, label in EMPLOYMENT_TYPE_RULES:
        if any(n in text for n in needles):
            return label
    return "unknown"


@functools.lru_cache(maxsize=256)
def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    """Whole-word match; boundaries only where the keyword edge is a word char."""
    prefix = r"\b" if keyword[:1].isalnum() else ""
    suffix = r"\b" if keyword[-1:].isalnum() else ""
    return re.compile(prefix + re.escape(keyword) + suffix, re.IGNORECASE)


def contains_keyword(text: str, keyword: str) -> bool:
    keyword = keyword.strip()
    return bool(keyword) and _keyword_pattern(keyword).search(text) is not None


def infer_experience_level(
    title: str,
    description: str,
    level_keywords: Iterable[tuple[str, Iterable[str]]] = DEFAULT_LEVEL_KEYWORDS,
) -> str:
    """First keyword family with a hit wins: entry, mid, senior, executive."""
    text = f"{title}\n{description}"
    for level, keywords in level_keywords:
        if any(contains_keyword(text, kw) for kw in keywords):
            return level
    return "unknown"


def _as_text(val: Any) -> str:
    if isinstance(val, (list, tuple)):
        return "; ".join(clean_text(v) for v in val if clean_text(v))
    return clean_text(val)


def extract_requirements(raw: dict[str, Any], description: str) -> str | None:
    """Best-effort requirements text; ``None`` when nothing recognisable is found."""
    explicit = _as_text(_first(raw, "job_required_skills", "requirements", "qualifications"))
    if explicit:
        return explicit

    highlights = raw.get("job_highlights")
    if isinstance(highlights, dict):
        quals = _as_text(highlights.get("Qualifications"))
        if quals:
            return quals

    match = _REQUIREMENTS_RE.search(description or "")
    if match:
        text = clean_text(match.group(1)).lstrip(":-– ").strip()
        return text or None
    return None


def parse_salary(val: Any) -> float | None:
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        return float(val)
    m = _NUMBER_RE.search(str(val).replace(",", ""))
    return float(m.group(0)) if m else None


def parse_posted_at(val: Any) -> datetime | None:
    """ISO strings or epoch seconds/milliseconds, returned as aware UTC."""
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        ts = float(val)
        if ts > 1e12:
            ts /= 1000.0
        try:
            return datetime.fromtimestamp(ts, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(val).strip()
    if not text:
        return None
    if text.isdigit():
        return parse_posted_at(int(text))
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def fallback_source_id(title: str, company: str, location: str, url: str | None) -> str:
    key = "|".join(p.strip().lower() for p in (title, company, location, url or ""))
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]


def tag_skills(
    requirements: str | None,
    description: str,
    catalog: Iterable[str],
    explicit_required: Iterable[str] = (),
) -> list[JobSkill]:
    """Required when named in the requirements text, preferred when only in the description."""
    tagged: dict[str, JobSkill] = {}
    for name in explicit_required:
        name = clean_text(name)
        if name and name.lower() not in tagged:
            tagged[name.lower()] = JobSkill(name=name, required=True)

    for name in catalog:
        key = name.lower()
        if key in tagged:
            continue
        if requirements and contains_keyword(requirements, name):
            tagged[key] = JobSkill(name=name, required=True)
        elif contains_keyword(description, name):
            tagged[key] = JobSkill(name=name, required=False)
    return list(tagged.values())


def normalize_payload(
    raw: Any,
    source_name: str,
    *,
    level_keywords: Iterable[tuple[str, Iterable[str]]] = DEFAULT_LEVEL_KEYWORDS,
    skill_catalog: Iterable[str] = (),
    now: datetime | None = None,
) -> JobPosting:
    """Map one raw listing onto a JobPosting or raise MalformedPayloadError."""
    if not isinstance(raw, dict):
        raise MalformedPayloadError(f"listing item is {type(raw).__name__}, not an object")

    title = clean_text(_first(raw, "job_title", "title"))
    company = clean_text(_display(_first(raw, "employer_name", "company_name", "company")))
    raw_description = _first(raw, "job_description", "description") or ""
    description = clean_text(raw_description)

    missing = [n for n, v in (("title", title), ("company", company), ("description", description)) if not v]
    if missing:
        raise MalformedPayloadError(f"missing {', '.join(missing)}")

    now = now or datetime.now(timezone.utc)
    location = format_location(raw)
    remote_flag = _first(raw, "job_is_remote", "remote") is True
    application_url = clean_text(_first(raw, "job_apply_link", "apply_url", "redirect_url", "url")) or None

    salary_min = parse_salary(_first(raw, "job_min_salary", "salary_min", "min_salary"))
    salary_max = parse_salary(_first(raw, "job_max_salary", "salary_max", "max_salary"))
    currency = clean_text(_first(raw, "job_salary_currency", "salary_currency", "currency")) or None
    if currency is None and (salary_min is not None or salary_max is not None):
        currency = "USD"

    native_id = _first(raw, "job_id", "id")
    source_id = clean_text(native_id) if native_id is not None else ""
    if not source_id:
        source_id = fallback_source_id(title, company, location, application_url)

    requirements = extract_requirements(raw, str(raw_description))
    explicit_skills = raw.get("job_required_skills")
    skills = tag_skills(
        requirements,
        description,
        skill_catalog,
        explicit_skills if isinstance(explicit_skills, list) else (),
    )

    posted_at = parse_posted_at(
        _first(raw, "job_posted_at_datetime_utc", "posted_date", "publication_date", "created", "job_posted_at_timestamp")
    )

    return JobPosting(
        title=title,
        company=company,
        description=description,
        source=source_name,
        source_id=source_id,
        location=location,
        location_type=infer_location_type(description, location, remote_flag),
        employment_type=infer_employment_type(
            _first(raw, "job_employment_type", "employment_type", "contract_time", "contract_type", "job_type")
        ),
        experience_level=infer_experience_level(title, description, level_keywords),
        requirements=requirements,
        company_logo=clean_text(_first(raw, "employer_logo", "company_logo")) or None,
        salary_min=salary_min,
        salary_max=salary_max,
        currency=currency,
        application_url=application_url,
        source_url=clean_text(_first(raw, "job_apply_link", "url", "redirect_url")),
        posted_at=posted_at or now,
        last_synced=now,
        active=True,
        skills=skills,
    )


def normalize(raw: Any, source_name: str, **kwargs: Any) -> JobPosting | None:
    """Like normalize_payload, but unusable items are dropped (returns None)."""
    try:
        return normalize_payload(raw, source_name, **kwargs)
    except MalformedPayloadError as exc:
        log.debug("[%s] dropped listing: %s", source_name, exc.reason)
        return None
