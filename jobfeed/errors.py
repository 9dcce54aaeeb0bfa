"""Exception types raised across the ingestion and matching pipeline."""
from __future__ import annotations


class JobFeedError(Exception):
    """Base class for every error raised by jobfeed."""


class ConfigError(JobFeedError):
    """Source descriptors or settings could not be loaded."""


class SourceFetchError(JobFeedError):
    """A listing source could not be fetched (network, timeout, non-2xx, bad body)."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"[{source}] {message}")
        self.source = source
        self.message = message


class MalformedPayloadError(JobFeedError):
    """A single listing item is unusable (missing title, company or description)."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class StoreError(JobFeedError):
    """A persistent-store operation failed."""


class DuplicatePostingError(StoreError):
    """The (source, source_id) dedup key already exists."""

    def __init__(self, source: str, source_id: str) -> None:
        super().__init__(f"posting {source}/{source_id} already exists")
        self.source = source
        self.source_id = source_id


class ProfileNotFoundError(JobFeedError):
    """No candidate profile exists for the user."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"no profile for user {user_id!r}")
        self.user_id = user_id


class SyncInProgressError(JobFeedError):
    """A sync cycle is already running; the request was rejected."""
