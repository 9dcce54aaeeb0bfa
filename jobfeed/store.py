"""SQLite persistence for job sources, canonical postings and skills."""
from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator

from jobfeed.errors import DuplicatePostingError, StoreError
from jobfeed.log import get_logger
from jobfeed.models import EMPLOYMENT_TYPES, EXPERIENCE_LEVELS, LOCATION_TYPES, JobPosting, JobSkill, JobSource

log = get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS job_sources (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT NOT NULL,
  display_name TEXT NOT NULL,
  base_url TEXT,
  api_key TEXT,
  is_active INTEGER NOT NULL DEFAULT 1,
  last_sync TEXT,
  sync_interval INTEGER NOT NULL DEFAULT 3600,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS ux_job_sources_name ON job_sources(name);

CREATE TABLE IF NOT EXISTS job_postings (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  title TEXT NOT NULL,
  company TEXT NOT NULL,
  company_logo TEXT,
  description TEXT NOT NULL,
  requirements TEXT,
  location TEXT NOT NULL DEFAULT '',
  location_type TEXT NOT NULL DEFAULT 'unknown',
  salary_min REAL,
  salary_max REAL,
  currency TEXT,
  employment_type TEXT NOT NULL DEFAULT 'unknown',
  experience_level TEXT NOT NULL DEFAULT 'unknown',
  application_url TEXT,
  source TEXT NOT NULL,
  source_id TEXT NOT NULL,
  source_url TEXT NOT NULL DEFAULT '',
  posted_at TEXT,
  last_synced TEXT NOT NULL,
  is_active INTEGER NOT NULL DEFAULT 1,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS ux_job_postings_source_source_id
  ON job_postings(source, source_id);

CREATE INDEX IF NOT EXISTS ix_job_postings_active_last_synced
  ON job_postings(is_active, last_synced);

CREATE TABLE IF NOT EXISTS skills (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT NOT NULL COLLATE NOCASE
);

CREATE UNIQUE INDEX IF NOT EXISTS ux_skills_name ON skills(name);

CREATE TABLE IF NOT EXISTS job_posting_skills (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  posting_id INTEGER NOT NULL REFERENCES job_postings(id) ON DELETE CASCADE,
  skill_id INTEGER NOT NULL REFERENCES skills(id),
  is_required INTEGER NOT NULL DEFAULT 0
);

CREATE UNIQUE INDEX IF NOT EXISTS ux_job_posting_skills_pair
  ON job_posting_skills(posting_id, skill_id);
"""

# dataclass field -> column
_POSTING_COLUMNS: dict[str, str] = {
    "title": "title",
    "company": "company",
    "company_logo": "company_logo",
    "description": "description",
    "requirements": "requirements",
    "location": "location",
    "location_type": "location_type",
    "salary_min": "salary_min",
    "salary_max": "salary_max",
    "currency": "currency",
    "employment_type": "employment_type",
    "experience_level": "experience_level",
    "application_url": "application_url",
    "source": "source",
    "source_id": "source_id",
    "source_url": "source_url",
    "posted_at": "posted_at",
    "last_synced": "last_synced",
    "active": "is_active",
}
# The dedup key is immutable once written.
UPDATABLE_FIELDS: frozenset[str] = frozenset(_POSTING_COLUMNS) - {"source", "source_id"}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_db_time(value: datetime | None) -> str | None:
    """Fixed-width UTC ISO strings so SQL string comparison orders by time."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _db_value(field_name: str, value: Any) -> Any:
    if isinstance(value, datetime):
        return to_db_time(value)
    if field_name == "active":
        return 1 if value else 0
    return value


class JobStore:
    def __init__(self, path: str | Path = ":memory:") -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        try:
            self.conn = sqlite3.connect(self.path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA foreign_keys = ON")
            self.conn.executescript(SCHEMA)
            self.conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot open job store at {self.path}: {exc}") from exc

    # -- plumbing -----------------------------------------------------------

    @contextmanager
    def _transaction(self, conflict: StoreError | None = None) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            cur = self.conn.cursor()
            try:
                yield cur
                self.conn.commit()
            except sqlite3.IntegrityError as exc:
                self.conn.rollback()
                if conflict is not None:
                    raise conflict from exc
                raise StoreError(f"Constraint violated: {exc}") from exc
            except sqlite3.Error as exc:
                self.conn.rollback()
                raise StoreError(str(exc)) from exc
            except BaseException:
                self.conn.rollback()
                raise

    def _query(self, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self.conn.execute(sql, tuple(params)).fetchall()
            except sqlite3.Error as exc:
                raise StoreError(str(exc)) from exc

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    # -- sources ------------------------------------------------------------

    def record_source_sync(self, source: JobSource) -> None:
        """Upsert a JobSource by name, refreshing its last-sync timestamp."""
        now = to_db_time(utc_now())
        with self._transaction() as cur:
            cur.execute(
                """
                INSERT INTO job_sources (
                  name, display_name, base_url, api_key, is_active, last_sync,
                  sync_interval, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                  last_sync = excluded.last_sync,
                  updated_at = excluded.updated_at
                """,
                (
                    source.name,
                    source.display_name,
                    source.base_url,
                    source.api_key,
                    1 if source.active else 0,
                    to_db_time(source.last_sync),
                    source.sync_interval,
                    now,
                    now,
                ),
            )

    def get_source(self, name: str) -> JobSource | None:
        rows = self._query("SELECT * FROM job_sources WHERE name = ?", (name,))
        return self._to_source(rows[0]) if rows else None

    def list_sources(self) -> list[JobSource]:
        return [self._to_source(r) for r in self._query("SELECT * FROM job_sources ORDER BY name")]

    # -- skills -------------------------------------------------------------

    def ensure_skills(self, names: Iterable[str]) -> int:
        """Insert any missing skill names; returns how many were new."""
        added = 0
        with self._transaction() as cur:
            for name in names:
                name = name.strip()
                if not name:
                    continue
                cur.execute("INSERT OR IGNORE INTO skills (name) VALUES (?)", (name,))
                added += cur.rowcount
        return added

    def list_skills(self) -> list[str]:
        return [r["name"] for r in self._query("SELECT name FROM skills ORDER BY name")]

    def _set_skills(self, cur: sqlite3.Cursor, posting_id: int, skills: Iterable[JobSkill]) -> None:
        cur.execute("DELETE FROM job_posting_skills WHERE posting_id = ?", (posting_id,))
        for skill in skills:
            cur.execute("INSERT OR IGNORE INTO skills (name) VALUES (?)", (skill.name,))
            skill_id = cur.execute("SELECT id FROM skills WHERE name = ?", (skill.name,)).fetchone()["id"]
            cur.execute(
                """
                INSERT INTO job_posting_skills (posting_id, skill_id, is_required) VALUES (?, ?, ?)
                ON CONFLICT(posting_id, skill_id) DO UPDATE SET
                  is_required = MAX(is_required, excluded.is_required)
                """,
                (posting_id, skill_id, 1 if skill.required else 0),
            )

    def _load_skills(self, posting_ids: list[int]) -> dict[int, list[JobSkill]]:
        out: dict[int, list[JobSkill]] = {pid: [] for pid in posting_ids}
        if not posting_ids:
            return out
        # SQLite caps bound parameters; chunk large active sets.
        for i in range(0, len(posting_ids), 500):
            chunk = posting_ids[i : i + 500]
            marks = ",".join("?" for _ in chunk)
            rows = self._query(
                f"""
                SELECT ps.posting_id, s.name, ps.is_required
                FROM job_posting_skills ps JOIN skills s ON s.id = ps.skill_id
                WHERE ps.posting_id IN ({marks})
                ORDER BY ps.id
                """,
                chunk,
            )
            for r in rows:
                out[r["posting_id"]].append(JobSkill(name=r["name"], required=bool(r["is_required"])))
        return out

    # -- postings -----------------------------------------------------------

    def create_posting(self, posting: JobPosting) -> int:
        """Insert a new posting; DuplicatePostingError if the dedup key exists."""
        now = to_db_time(utc_now())
        fields = list(_POSTING_COLUMNS)
        columns = [_POSTING_COLUMNS[f] for f in fields] + ["created_at", "updated_at"]
        values = [_db_value(f, getattr(posting, f)) for f in fields] + [now, now]
        if values[fields.index("last_synced")] is None:
            values[fields.index("last_synced")] = now

        conflict = DuplicatePostingError(posting.source, posting.source_id)
        with self._transaction(conflict=conflict) as cur:
            cur.execute(
                f"INSERT INTO job_postings ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
                values,
            )
            posting_id = int(cur.lastrowid)
            self._set_skills(cur, posting_id, posting.skills)
        return posting_id

    def update_posting(
        self,
        posting_id: int,
        changes: dict[str, Any],
        skills: Iterable[JobSkill] | None = None,
    ) -> None:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise StoreError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        assignments = [f"{_POSTING_COLUMNS[f]} = ?" for f in changes] + ["updated_at = ?"]
        params = [_db_value(f, v) for f, v in changes.items()] + [to_db_time(utc_now()), posting_id]
        with self._transaction() as cur:
            cur.execute(f"UPDATE job_postings SET {', '.join(assignments)} WHERE id = ?", params)
            if cur.rowcount == 0:
                raise StoreError(f"No posting with id {posting_id}")
            if skills is not None:
                self._set_skills(cur, posting_id, skills)

    def find_posting(self, source: str, source_id: str) -> JobPosting | None:
        rows = self._query(
            "SELECT * FROM job_postings WHERE source = ? AND source_id = ?",
            (source, source_id),
        )
        return self._hydrate(rows)[0] if rows else None

    def get_posting(self, posting_id: int) -> JobPosting | None:
        rows = self._query("SELECT * FROM job_postings WHERE id = ?", (posting_id,))
        return self._hydrate(rows)[0] if rows else None

    def list_active_postings(self) -> list[JobPosting]:
        return self._hydrate(self._query("SELECT * FROM job_postings WHERE is_active = 1 ORDER BY id"))

    def count_postings(self, active: bool | None = None) -> int:
        if active is None:
            rows = self._query("SELECT COUNT(*) AS n FROM job_postings")
        else:
            rows = self._query("SELECT COUNT(*) AS n FROM job_postings WHERE is_active = ?", (1 if active else 0,))
        return int(rows[0]["n"])

    def mark_inactive_before(self, cutoff: datetime) -> int:
        """Bulk-retire active postings whose last sync is older than ``cutoff``."""
        with self._transaction() as cur:
            cur.execute(
                "UPDATE job_postings SET is_active = 0, updated_at = ? WHERE is_active = 1 AND last_synced < ?",
                (to_db_time(utc_now()), to_db_time(cutoff)),
            )
            return cur.rowcount

    def search_postings(
        self,
        *,
        search: str | None = None,
        location: str | None = None,
        employment_type: str | None = None,
        experience_level: str | None = None,
        location_type: str | None = None,
        salary_min: float | None = None,
        salary_max: float | None = None,
        skills: Iterable[str] | None = None,
        include_inactive: bool = False,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[JobPosting], int]:
        """Filtered, paginated listing of postings, newest first. Returns (page, total)."""
        where: list[str] = []
        params: list[Any] = []
        if not include_inactive:
            where.append("is_active = 1")
        if search:
            where.append("(title LIKE ? OR company LIKE ? OR description LIKE ?)")
            params.extend([f"%{search}%"] * 3)
        if location:
            where.append("location LIKE ?")
            params.append(f"%{location}%")
        for column, value, allowed in (
            ("employment_type", employment_type, EMPLOYMENT_TYPES),
            ("experience_level", experience_level, EXPERIENCE_LEVELS),
            ("location_type", location_type, LOCATION_TYPES),
        ):
            if value:
                if value not in allowed:
                    raise ValueError(f"{column} must be one of {', '.join(allowed)}, got {value!r}")
                where.append(f"{column} = ?")
                params.append(value)
        if salary_min is not None:
            where.append("salary_min >= ?")
            params.append(salary_min)
        if salary_max is not None:
            where.append("salary_max <= ?")
            params.append(salary_max)
        skill_names = [s.strip() for s in skills or () if s.strip()]
        if skill_names:
            marks = ",".join("?" for _ in skill_names)
            where.append(
                "id IN (SELECT ps.posting_id FROM job_posting_skills ps "
                f"JOIN skills s ON s.id = ps.skill_id WHERE s.name IN ({marks}))"
            )
            params.extend(skill_names)

        clause = f"WHERE {' AND '.join(where)}" if where else ""
        page = max(page, 1)
        limit = max(limit, 1)
        total = int(self._query(f"SELECT COUNT(*) AS n FROM job_postings {clause}", params)[0]["n"])
        rows = self._query(
            f"SELECT * FROM job_postings {clause} ORDER BY posted_at DESC, id DESC LIMIT ? OFFSET ?",
            params + [limit, (page - 1) * limit],
        )
        return self._hydrate(rows), total

    def find_postings_by_skills(self, skill_names: Iterable[str], limit: int = 20) -> list[JobPosting]:
        postings, _ = self.search_postings(skills=skill_names, limit=limit)
        return postings

    # -- row mapping --------------------------------------------------------

    def _hydrate(self, rows: list[sqlite3.Row]) -> list[JobPosting]:
        skills = self._load_skills([r["id"] for r in rows])
        return [self._to_posting(r, skills.get(r["id"], [])) for r in rows]

    @staticmethod
    def _to_posting(row: sqlite3.Row, skills: list[JobSkill]) -> JobPosting:
        return JobPosting(
            id=row["id"],
            title=row["title"],
            company=row["company"],
            company_logo=row["company_logo"],
            description=row["description"],
            requirements=row["requirements"],
            location=row["location"],
            location_type=row["location_type"],
            salary_min=row["salary_min"],
            salary_max=row["salary_max"],
            currency=row["currency"],
            employment_type=row["employment_type"],
            experience_level=row["experience_level"],
            application_url=row["application_url"],
            source=row["source"],
            source_id=row["source_id"],
            source_url=row["source_url"],
            posted_at=from_db_time(row["posted_at"]),
            last_synced=from_db_time(row["last_synced"]),
            active=bool(row["is_active"]),
            skills=skills,
        )

    @staticmethod
    def _to_source(row: sqlite3.Row) -> JobSource:
        return JobSource(
            id=row["id"],
            name=row["name"],
            display_name=row["display_name"],
            base_url=row["base_url"] or "",
            api_key=row["api_key"],
            active=bool(row["is_active"]),
            last_sync=from_db_time(row["last_sync"]),
            sync_interval=row["sync_interval"],
        )
