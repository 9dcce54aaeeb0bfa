"""Generic JSON listing API client driven by a SourceConfig.

JSearch, Adzuna and Remotive differ only in URL, auth headers/params and the
key that holds the result array, so one client covers all of them.
"""
from __future__ import annotations

import queue
import threading
import time
from typing import Any, Callable

import requests

from jobfeed.config import SourceConfig
from jobfeed.errors import SourceFetchError
from jobfeed.log import get_logger
from jobfeed.retry import is_transient, retry
from jobfeed.sources.base import ListingSource

log = get_logger(__name__)

DISPLAY_NAMES: dict[str, str] = {
    "jsearch": "JSearch API",
    "indeed": "Indeed",
    "linkedin": "LinkedIn",
    "glassdoor": "Glassdoor",
    "adzuna": "Adzuna",
    "remotive": "Remotive",
}


def display_name_for(source: SourceConfig) -> str:
    return source.display_name or DISPLAY_NAMES.get(source.name, source.name)


def extract_items(body: Any, results_keys: tuple[str, ...]) -> list[Any] | None:
    """The listing array: the body itself, or the first list under a known key."""
    if isinstance(body, list):
        return body
    if isinstance(body, dict):
        for key in results_keys:
            items = body.get(key)
            if isinstance(items, list):
                return items
    return None


class ApiListingSource(ListingSource):
    def __init__(self, config: SourceConfig, clock: Callable[[], float] = time.monotonic) -> None:
        self.config = config
        self.name = config.name
        self.display_name = display_name_for(config)
        self._clock = clock

    @retry(
        max_attempts=2,
        base_delay=1.0,
        retryable=(requests.RequestException,),
        should_retry=is_transient,
    )
    def _get(self, url: str, params: dict[str, Any], deadline: float) -> requests.Response:
        remaining = deadline - self._clock()
        if remaining <= 0:
            raise requests.Timeout("source deadline exceeded")
        r = requests.get(url, params=params, headers=dict(self.config.headers), timeout=remaining)
        r.raise_for_status()
        return r

    def _request_page(self, page: int, deadline: float) -> list[Any]:
        cfg = self.config
        url = cfg.url_template
        params = dict(cfg.params)
        if "{page}" in url:
            url = url.replace("{page}", str(page))
        elif cfg.page_param:
            params[cfg.page_param] = page

        try:
            r = self._get(url, params, deadline)
        except requests.Timeout as exc:
            raise SourceFetchError(self.name, f"timed out after {cfg.timeout_seconds:g}s") from exc
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else "?"
            if status in (401, 403):
                raise SourceFetchError(self.name, f"authentication rejected (HTTP {status})") from exc
            raise SourceFetchError(self.name, f"HTTP {status}") from exc
        except requests.RequestException as exc:
            raise SourceFetchError(self.name, f"request failed: {exc}") from exc

        try:
            body = r.json()
        except ValueError as exc:
            raise SourceFetchError(self.name, "response is not JSON") from exc

        items = extract_items(body, cfg.results_keys)
        if items is None:
            raise SourceFetchError(self.name, "response has no listing array")
        return items

    def _fetch_pages(self, deadline: float) -> list[Any]:
        cfg = self.config
        paged = cfg.page_param is not None or "{page}" in cfg.url_template
        last_page = cfg.start_page + (cfg.pages if paged else 1)

        items: list[Any] = []
        for page in range(cfg.start_page, last_page):
            batch = self._request_page(page, deadline)
            log.debug("[%s] page %d returned %d items", self.name, page, len(batch))
            if not batch:
                break
            items.extend(batch)
        return items

    def _fetch_into(self, deadline: float, outcome: queue.Queue) -> None:
        try:
            outcome.put((True, self._fetch_pages(deadline)))
        except Exception as exc:
            outcome.put((False, exc))

    def fetch(self) -> list[Any]:
        """All configured pages; stops early on an empty page.

        ``timeout_seconds`` is a wall-clock bound on the whole fetch. Pages are
        read on a worker thread that is abandoned once the bound passes.
        """
        cfg = self.config
        deadline = self._clock() + cfg.timeout_seconds
        outcome: queue.Queue = queue.Queue(maxsize=1)
        worker = threading.Thread(
            target=self._fetch_into, args=(deadline, outcome), name=f"fetch-{self.name}", daemon=True
        )
        worker.start()
        try:
            ok, value = outcome.get(timeout=cfg.timeout_seconds)
        except queue.Empty:
            log.warning("[%s] fetch still running after %gs, abandoning it", self.name, cfg.timeout_seconds)
            raise SourceFetchError(self.name, f"timed out after {cfg.timeout_seconds:g}s") from None
        if not ok:
            raise value
        return value
