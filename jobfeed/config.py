"""Load environment, source descriptors and scheduler settings."""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Mapping

import yaml
from dotenv import load_dotenv

from jobfeed.errors import ConfigError
from jobfeed.models import EXPERIENCE_LEVELS
from jobfeed.log import get_logger

log = get_logger(__name__)

load_dotenv()

ROOT_DIR: Path = Path(__file__).resolve().parent.parent
CONFIG_DIR: Path = ROOT_DIR / "config"
SOURCES_PATH: Path = CONFIG_DIR / "sources.yaml"
PROFILES_DIR: Path = CONFIG_DIR / "profiles"
DATA_DIR: Path = ROOT_DIR / "data"
REPORTS_DIR: Path = ROOT_DIR / "reports"

# Level keyword families, checked in this order; the first family with a hit wins.
DEFAULT_LEVEL_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("entry", ("entry", "junior", "graduate", "0-2", "0-3", "fresh", "new grad")),
    ("mid", ("mid", "intermediate", "3-5", "2-5", "3+", "2+")),
    ("senior", ("senior", "lead", "principal", "5+", "7+", "sr", "sr.")),
    ("executive", ("director", "vp", "head", "chief", "executive", "manager")),
)

_ENV_REF = re.compile(r"\$\{([A-Z0-9_]+)\}")


def get_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def db_path() -> Path:
    override = get_env("JOBFEED_DB_PATH")
    return Path(override) if override else DATA_DIR / "jobfeed.sqlite3"


def ensure_dirs() -> None:
    for d in (DATA_DIR, REPORTS_DIR):
        d.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class SourceConfig:
    """One listing provider; every source is fetched by the same code path."""

    name: str
    base_url: str
    search_endpoint: str = ""
    display_name: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    params: Mapping[str, Any] = field(default_factory=dict)
    page_param: str | None = "page"
    start_page: int = 1
    pages: int = 1
    results_keys: tuple[str, ...] = ("data", "jobs", "results")
    timeout_seconds: float = 30.0
    requires: tuple[str, ...] = ()
    secret_keys: tuple[str, ...] = ()

    @property
    def url_template(self) -> str:
        return self.base_url.rstrip("/") + self.search_endpoint

    @property
    def has_credentials(self) -> bool:
        return bool(self.secret_keys)


@dataclass(frozen=True)
class PipelineConfig:
    sources: tuple[SourceConfig, ...] = ()
    level_keywords: tuple[tuple[str, tuple[str, ...]], ...] = DEFAULT_LEVEL_KEYWORDS
    skill_catalog: tuple[str, ...] = ()

    def source(self, name: str) -> SourceConfig:
        for src in self.sources:
            if src.name == name:
                return src
        raise KeyError(name)


@dataclass(frozen=True)
class SchedulerSettings:
    interval_minutes: float = 60.0
    initial_delay_seconds: float = 60.0
    cleanup_probability: float = 0.1
    cleanup_days: int = 30


def _expand(value: Any, env_getter: Callable[[str], str]) -> Any:
    if isinstance(value, str):
        return _ENV_REF.sub(lambda m: env_getter(m.group(1)), value)
    if isinstance(value, dict):
        return {k: _expand(v, env_getter) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand(v, env_getter) for v in value]
    return value


def _referenced_env(value: Any) -> set[str]:
    if isinstance(value, str):
        return set(_ENV_REF.findall(value))
    if isinstance(value, dict):
        return set().union(*(_referenced_env(v) for v in value.values())) if value else set()
    if isinstance(value, list):
        return set().union(*(_referenced_env(v) for v in value)) if value else set()
    return set()


def _as_list(value: Any) -> list[Any]:
    """A lone YAML scalar stands for a one-item list."""
    if isinstance(value, (str, int, float)):
        return [value]
    if not isinstance(value, (list, tuple)):
        raise ConfigError(f"Expected a list, got {value!r}")
    return list(value)


def _build_source(entry: dict[str, Any], env_getter: Callable[[str], str]) -> SourceConfig:
    name = str(entry.get("name") or "").strip()
    base_url = str(entry.get("base_url") or "").strip()
    if not name or not base_url:
        raise ConfigError(f"Source entry needs 'name' and 'base_url': {entry!r}")

    headers_raw = entry.get("headers") or {}
    params_raw = entry.get("params") or {}
    if not isinstance(headers_raw, dict) or not isinstance(params_raw, dict):
        raise ConfigError(f"[{name}] 'headers' and 'params' must be mappings")

    secret_keys = tuple(sorted(_referenced_env(headers_raw) | _referenced_env(params_raw)))
    results_keys = _as_list(entry.get("results_keys") or SourceConfig.results_keys)
    requires = _as_list(entry.get("requires") or secret_keys)
    page_param = entry.get("page_param", "page")

    try:
        return SourceConfig(
            name=name,
            base_url=base_url,
            search_endpoint=str(entry.get("search_endpoint") or ""),
            display_name=str(entry.get("display_name") or ""),
            headers=MappingProxyType({str(k): str(v) for k, v in _expand(headers_raw, env_getter).items()}),
            params=MappingProxyType(dict(_expand(params_raw, env_getter))),
            page_param=str(page_param) if page_param else None,
            start_page=int(entry.get("start_page", 1)),
            pages=max(int(entry.get("pages", 1)), 1),
            results_keys=tuple(str(k) for k in results_keys),
            timeout_seconds=float(entry.get("timeout_seconds", 30.0)),
            requires=tuple(str(k) for k in requires),
            secret_keys=secret_keys,
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"[{name}] invalid source setting: {exc}") from exc


def _level_keywords(raw: Any) -> tuple[tuple[str, tuple[str, ...]], ...]:
    if not raw:
        return DEFAULT_LEVEL_KEYWORDS
    if not isinstance(raw, list):
        raise ConfigError("'experience_levels' must be a list of {level, keywords}")
    table: list[tuple[str, tuple[str, ...]]] = []
    for item in raw:
        if not isinstance(item, dict):
            raise ConfigError(f"Experience level entries must be mappings, got {item!r}")
        level = str(item.get("level", "")).strip().lower()
        if level not in EXPERIENCE_LEVELS or level == "unknown":
            raise ConfigError(f"Unknown experience level {level!r}")
        table.append((level, tuple(str(k).lower() for k in item.get("keywords") or [])))
    return tuple(table)


def load_pipeline_config(
    path: Path | None = None,
    env_getter: Callable[[str], str] = get_env,
) -> PipelineConfig:
    """Read the YAML source list and build an immutable PipelineConfig.

    Sources that are disabled, or whose required env vars are unset, are
    skipped so a fresh checkout without API keys still loads.
    """
    path = path or SOURCES_PATH
    if not path.exists():
        log.warning("No source config at %s, running with no sources", path)
        return PipelineConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Cannot parse {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")

    sources: list[SourceConfig] = []
    seen: set[str] = set()
    for entry in data.get("sources") or []:
        if not isinstance(entry, dict):
            raise ConfigError(f"Source entries must be mappings, got {entry!r}")
        if entry.get("enabled", True) is False:
            log.debug("Source %s disabled in config", entry.get("name"))
            continue
        src = _build_source(entry, env_getter)
        if src.name in seen:
            raise ConfigError(f"Duplicate source name {src.name!r}")
        missing = [key for key in src.requires if not env_getter(key)]
        if missing:
            log.info("Skipping source %s (missing %s)", src.name, ", ".join(missing))
            continue
        seen.add(src.name)
        sources.append(src)
        log.info("Registered source: %s", src.display_name or src.name)

    catalog = tuple(dict.fromkeys(str(s).strip() for s in data.get("skills") or [] if str(s).strip()))
    return PipelineConfig(
        sources=tuple(sources),
        level_keywords=_level_keywords(data.get("experience_levels")),
        skill_catalog=catalog,
    )


def _env_number(key: str, default: float) -> float:
    raw = get_env(key)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        log.warning("Ignoring %s=%r (not a number), using %s", key, raw, default)
        return default


def load_scheduler_settings() -> SchedulerSettings:
    probability = _env_number("JOB_CLEANUP_PROBABILITY", SchedulerSettings.cleanup_probability)
    return SchedulerSettings(
        interval_minutes=_env_number("JOB_SYNC_INTERVAL_MINUTES", SchedulerSettings.interval_minutes) or 60.0,
        initial_delay_seconds=_env_number("JOB_SYNC_INITIAL_DELAY_SECONDS", SchedulerSettings.initial_delay_seconds),
        cleanup_probability=min(max(probability, 0.0), 1.0),
        cleanup_days=int(_env_number("JOB_CLEANUP_DAYS", SchedulerSettings.cleanup_days)),
    )
