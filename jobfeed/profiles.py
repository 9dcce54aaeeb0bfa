"""Read-only candidate profile store backed by YAML files."""
from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from jobfeed.config import PROFILES_DIR
from jobfeed.errors import ConfigError, ProfileNotFoundError
from jobfeed.log import get_logger
from jobfeed.models import CandidateProfile, Education, WorkHistoryEntry

log = get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _as_datetime(val: Any) -> datetime | None:
    """YAML hands back date/datetime for unquoted values and str for quoted ones."""
    if val is None or val == "":
        return None
    if isinstance(val, datetime):
        dt = val
    elif isinstance(val, date):
        dt = datetime(val.year, val.month, val.day)
    else:
        text = str(val).strip()
        if text.lower() in ("present", "current", "now"):
            return None
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ConfigError(f"Invalid date {text!r} in profile") from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_profile(data: dict[str, Any]) -> CandidateProfile:
    user_id = str(data.get("user_id") or "").strip()
    if not user_id:
        raise ConfigError("Profile is missing 'user_id'")

    history: list[WorkHistoryEntry] = []
    for item in data.get("work_history") or []:
        start = _as_datetime(item.get("start"))
        if start is None:
            raise ConfigError(f"[{user_id}] work history entry without a start date: {item!r}")
        history.append(
            WorkHistoryEntry(
                title=str(item.get("title") or ""),
                start=start,
                end=_as_datetime(item.get("end")),
                description=str(item.get("description") or ""),
            )
        )

    education = [
        Education(degree=str(e.get("degree") or ""), major=str(e.get("major") or ""))
        for e in data.get("education") or []
    ]
    prefs = data.get("preferences") or {}

    return CandidateProfile(
        user_id=user_id,
        skills=[str(s).strip() for s in data.get("skills") or [] if str(s).strip()],
        work_history=history,
        education=education,
        remote_preferred=prefs.get("remote"),
        desired_location=prefs.get("location"),
        updated_at=_as_datetime(data.get("updated_at")),
    )


class ProfileStore:
    """Every ``*.yaml``/``*.yml`` file under the directory holds one profile or a list of them."""

    def __init__(self, directory: Path = PROFILES_DIR) -> None:
        self.directory = Path(directory)

    def _documents(self) -> list[dict[str, Any]]:
        if not self.directory.exists():
            return []
        docs: list[dict[str, Any]] = []
        for path in sorted(self.directory.iterdir()):
            if path.suffix.lower() not in (".yaml", ".yml") or not path.is_file():
                continue
            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ConfigError(f"Cannot parse profile file {path}: {exc}") from exc
            if isinstance(data, dict):
                docs.append(data)
            elif isinstance(data, list):
                docs.extend(d for d in data if isinstance(d, dict))
        return docs

    def profiles_for(self, user_id: str) -> list[CandidateProfile]:
        return [parse_profile(d) for d in self._documents() if str(d.get("user_id", "")).strip() == user_id]

    def latest_profile(self, user_id: str) -> CandidateProfile | None:
        """Most recently updated profile for the user, or None."""
        profiles = self.profiles_for(user_id)
        if not profiles:
            log.debug("No profile found for %s", user_id)
            return None
        return max(profiles, key=lambda p: p.updated_at or _EPOCH)

    def require_profile(self, user_id: str) -> CandidateProfile:
        profile = self.latest_profile(user_id)
        if profile is None:
            raise ProfileNotFoundError(user_id)
        return profile
