from __future__ import annotations

import pytest
import requests

from jobfeed.retry import is_transient, retry

pytestmark = pytest.mark.unit


def _http_error(status: int) -> requests.HTTPError:
    response = requests.Response()
    response.status_code = status
    return requests.HTTPError(f"HTTP {status}", response=response)


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (requests.ConnectionError("reset"), True),
        (requests.ConnectTimeout("connect"), True),
        (requests.ReadTimeout("read"), False),
        (_http_error(429), True),
        (_http_error(503), True),
        (_http_error(404), False),
        (ValueError("bad json"), False),
    ],
)
def test_is_transient(exc: BaseException, expected: bool) -> None:
    assert is_transient(exc) is expected


def test_retries_until_success() -> None:
    delays: list[float] = []
    attempts = {"n": 0}

    @retry(max_attempts=3, base_delay=1.0, jitter=False, sleep=delays.append)
    def flaky() -> str:
        attempts["n"] += 1
        if attempts["n"] < 3:
            raise OSError("boom")
        return "ok"

    assert flaky() == "ok"
    assert delays == [1.0, 2.0]


def test_gives_up_after_max_attempts() -> None:
    @retry(max_attempts=2, base_delay=0.5, jitter=False, sleep=lambda _d: None)
    def always_fails() -> None:
        raise OSError("down")

    with pytest.raises(OSError, match="down"):
        always_fails()


def test_should_retry_short_circuits() -> None:
    calls = {"n": 0}

    @retry(max_attempts=5, should_retry=lambda exc: False, sleep=lambda _d: None)
    def rejected() -> None:
        calls["n"] += 1
        raise RuntimeError("permanent")

    with pytest.raises(RuntimeError):
        rejected()
    assert calls["n"] == 1


def test_non_retryable_type_propagates_immediately() -> None:
    calls = {"n": 0}

    @retry(max_attempts=3, retryable=(OSError,), sleep=lambda _d: None)
    def wrong_type() -> None:
        calls["n"] += 1
        raise KeyError("x")

    with pytest.raises(KeyError):
        wrong_type()
    assert calls["n"] == 1
