"""Idempotent upsert of normalized postings keyed by (source, source_id)."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from jobfeed.errors import DuplicatePostingError, StoreError
from jobfeed.log import get_logger
from jobfeed.models import JobPosting
from jobfeed.store import JobStore

log = get_logger(__name__)

# A difference in any of these counts as a change worth writing.
SIGNIFICANT_FIELDS: tuple[str, ...] = (
    "title",
    "company",
    "description",
    "location",
    "salary_min",
    "salary_max",
    "application_url",
    "active",
)

# Written alongside a significant change; never compared on their own.
REFRESHED_FIELDS: tuple[str, ...] = (
    "company_logo",
    "requirements",
    "location_type",
    "currency",
    "employment_type",
    "experience_level",
    "source_url",
    "posted_at",
    "last_synced",
)

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"


@dataclass
class DedupOutcome:
    action: str
    posting_id: int


def changed_fields(existing: JobPosting, incoming: JobPosting) -> list[str]:
    return [f for f in SIGNIFICANT_FIELDS if getattr(existing, f) != getattr(incoming, f)]


def _skill_set(posting: JobPosting) -> set[tuple[str, bool]]:
    return {(s.name.lower(), s.required) for s in posting.skills}


def _update(store: JobStore, existing: JobPosting, incoming: JobPosting) -> DedupOutcome:
    if existing.id is None:
        raise StoreError(f"[{incoming.source}] stored posting {incoming.source_id} has no id")
    if not changed_fields(existing, incoming):
        return DedupOutcome(UNCHANGED, existing.id)

    changes: dict[str, Any] = {}
    for name in SIGNIFICANT_FIELDS + REFRESHED_FIELDS:
        value = getattr(incoming, name)
        if getattr(existing, name) != value:
            changes[name] = value
    skills = incoming.skills if _skill_set(existing) != _skill_set(incoming) else None
    store.update_posting(existing.id, changes, skills=skills)
    log.debug("[%s] updated %s (%s)", incoming.source, incoming.source_id, ", ".join(sorted(changes)))
    return DedupOutcome(UPDATED, existing.id)


def apply_posting(store: JobStore, posting: JobPosting) -> DedupOutcome:
    """Create, update or leave alone; the stored id never changes."""
    existing = store.find_posting(posting.source, posting.source_id)
    if existing is not None:
        return _update(store, existing, posting)

    try:
        posting_id = store.create_posting(posting)
    except DuplicatePostingError:
        # Another worker created it between our lookup and insert.
        existing = store.find_posting(posting.source, posting.source_id)
        if existing is None:
            raise
        return _update(store, existing, posting)
    return DedupOutcome(CREATED, posting_id)
