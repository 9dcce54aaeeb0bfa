from __future__ import annotations

from pathlib import Path

import pytest

from jobfeed.config import (
    DEFAULT_LEVEL_KEYWORDS,
    SchedulerSettings,
    load_pipeline_config,
    load_scheduler_settings,
)
from jobfeed.errors import ConfigError

pytestmark = pytest.mark.unit

SOURCES = """
sources:
  - name: jsearch
    base_url: https://jsearch.p.rapidapi.com
    search_endpoint: /search
    headers:
      X-RapidAPI-Key: ${JSEARCH_API_KEY}
    params:
      query: python developer
      num_pages: 10
  - name: adzuna
    base_url: https://api.adzuna.com/v1/api/jobs/us
    search_endpoint: /search/{page}
    params:
      app_id: ${ADZUNA_APP_ID}
      app_key: ${ADZUNA_APP_KEY}
    pages: 2
  - name: remotive
    base_url: https://remotive.com/api
    page_param: null
  - name: retired
    base_url: https://old.example.com
    enabled: false
skills: [Python, SQL, Python]
"""


def _write(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "sources.yaml"
    path.write_text(body, encoding="utf-8")
    return path


def test_loads_sources_and_expands_env(tmp_path: Path) -> None:
    env = {"JSEARCH_API_KEY": "secret-key"}
    config = load_pipeline_config(_write(tmp_path, SOURCES), env_getter=lambda k: env.get(k, ""))

    # adzuna is skipped because its credentials are unset; retired is disabled
    assert [s.name for s in config.sources] == ["jsearch", "remotive"]
    jsearch = config.source("jsearch")
    assert jsearch.headers["X-RapidAPI-Key"] == "secret-key"
    assert jsearch.url_template == "https://jsearch.p.rapidapi.com/search"
    assert jsearch.params["num_pages"] == 10
    assert jsearch.has_credentials
    remotive = config.source("remotive")
    assert remotive.page_param is None
    assert not remotive.has_credentials
    assert config.skill_catalog == ("Python", "SQL")
    assert config.level_keywords == DEFAULT_LEVEL_KEYWORDS
    with pytest.raises(KeyError):
        config.source("adzuna")


def test_page_in_path_template(tmp_path: Path) -> None:
    env = {"ADZUNA_APP_ID": "id", "ADZUNA_APP_KEY": "key", "JSEARCH_API_KEY": "k"}
    config = load_pipeline_config(_write(tmp_path, SOURCES), env_getter=lambda k: env.get(k, ""))
    adzuna = config.source("adzuna")
    assert adzuna.url_template.endswith("/search/{page}")
    assert adzuna.pages == 2
    assert adzuna.requires == ("ADZUNA_APP_ID", "ADZUNA_APP_KEY")


def test_single_required_key_and_results_key_may_be_scalars(tmp_path: Path) -> None:
    body = (
        "sources:\n"
        "  - name: jsearch\n"
        "    base_url: https://jsearch.p.rapidapi.com\n"
        "    requires: JSEARCH_API_KEY\n"
        "    results_keys: data\n"
    )
    env = {"JSEARCH_API_KEY": "k"}
    config = load_pipeline_config(_write(tmp_path, body), env_getter=lambda k: env.get(k, ""))

    jsearch = config.source("jsearch")
    assert jsearch.requires == ("JSEARCH_API_KEY",)
    assert jsearch.results_keys == ("data",)

    skipped = load_pipeline_config(_write(tmp_path, body), env_getter=lambda k: "")
    assert skipped.sources == ()


def test_custom_level_keywords(tmp_path: Path) -> None:
    body = "experience_levels:\n  - level: senior\n    keywords: [Staff, Senior]\n  - level: entry\n    keywords: [intern]\n"
    config = load_pipeline_config(_write(tmp_path, body), env_getter=lambda k: "")
    assert config.level_keywords == (("senior", ("staff", "senior")), ("entry", ("intern",)))


@pytest.mark.parametrize(
    "body",
    [
        "sources:\n  - name: nobase\n",
        "sources:\n  - {name: a, base_url: 'https://a'}\n  - {name: a, base_url: 'https://b'}\n",
        "sources:\n  - {name: a, base_url: 'https://a', headers: [x]}\n",
        "experience_levels:\n  - level: wizard\n    keywords: [magic]\n",
        "- just\n- a list\n",
        "sources: [unclosed\n",
    ],
)
def test_invalid_config_raises(tmp_path: Path, body: str) -> None:
    with pytest.raises(ConfigError):
        load_pipeline_config(_write(tmp_path, body), env_getter=lambda k: "")


def test_missing_file_gives_empty_config(tmp_path: Path) -> None:
    config = load_pipeline_config(tmp_path / "absent.yaml")
    assert config.sources == ()


def test_scheduler_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("JOB_SYNC_INTERVAL_MINUTES", "15")
    monkeypatch.setenv("JOB_CLEANUP_PROBABILITY", "3")
    monkeypatch.setenv("JOB_CLEANUP_DAYS", "not-a-number")
    monkeypatch.delenv("JOB_SYNC_INITIAL_DELAY_SECONDS", raising=False)

    settings = load_scheduler_settings()
    assert settings.interval_minutes == 15.0
    assert settings.cleanup_probability == 1.0
    assert settings.cleanup_days == 30
    assert settings.initial_delay_seconds == SchedulerSettings.initial_delay_seconds
