from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from jobfeed.errors import ConfigError, ProfileNotFoundError
from jobfeed.profiles import ProfileStore

pytestmark = pytest.mark.unit

PROFILE = """
user_id: alice
updated_at: 2026-05-01T10:00:00Z
skills: [Python, " SQL ", ""]
work_history:
  - title: Data Engineer
    start: 2021-02-01
    end: 2024-02-01
    description: Spark pipelines
  - title: Staff Engineer
    start: "2024-03-01"
    end: present
education:
  - degree: MSc
    major: Statistics
preferences:
  remote: true
  location: Lisbon
"""


def _store(tmp_path: Path, files: dict[str, str]) -> ProfileStore:
    for name, body in files.items():
        (tmp_path / name).write_text(body, encoding="utf-8")
    return ProfileStore(tmp_path)


def test_reads_profile_fields(tmp_path: Path) -> None:
    profile = _store(tmp_path, {"alice.yaml": PROFILE}).latest_profile("alice")

    assert profile is not None
    assert profile.skills == ["Python", "SQL"]
    assert [w.title for w in profile.work_history] == ["Data Engineer", "Staff Engineer"]
    assert profile.work_history[0].start == datetime(2021, 2, 1, tzinfo=timezone.utc)
    assert profile.work_history[1].end is None
    assert profile.education[0].major == "Statistics"
    assert profile.remote_preferred is True
    assert profile.desired_location == "Lisbon"
    assert profile.updated_at == datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)


def test_latest_profile_wins(tmp_path: Path) -> None:
    older = "user_id: bob\nupdated_at: 2025-01-01\nskills: [Java]\n"
    newer = "- user_id: bob\n  updated_at: 2026-01-01\n  skills: [Go]\n- user_id: carol\n  skills: [Rust]\n"
    store = _store(tmp_path, {"a.yaml": older, "b.yml": newer, "notes.txt": "user_id: bob"})

    assert store.latest_profile("bob").skills == ["Go"]
    assert store.latest_profile("carol").skills == ["Rust"]
    assert len(store.profiles_for("bob")) == 2


def test_missing_user_or_directory_is_none(tmp_path: Path) -> None:
    assert _store(tmp_path, {"alice.yaml": PROFILE}).latest_profile("nobody") is None
    assert ProfileStore(tmp_path / "missing").latest_profile("alice") is None


def test_invalid_documents_raise_config_error(tmp_path: Path) -> None:
    store = _store(tmp_path, {"bad.yaml": "user_id: dave\nwork_history:\n  - title: X\n"})
    with pytest.raises(ConfigError):
        store.latest_profile("dave")

    (tmp_path / "bad.yaml").write_text("user_id: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        store.latest_profile("dave")


def test_require_profile_raises_for_unknown_user(tmp_path: Path) -> None:
    store = _store(tmp_path, {"alice.yaml": PROFILE})
    assert store.require_profile("alice").user_id == "alice"
    with pytest.raises(ProfileNotFoundError):
        store.require_profile("nobody")
