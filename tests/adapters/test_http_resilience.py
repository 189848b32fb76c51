from __future__ import annotations

from datetime import UTC, datetime
from email.utils import format_datetime

import httpx
import pytest

from featctl.adapters.http_resilience import (
    ResilientClient,
    RetryExecutor,
    compute_backoff,
    parse_retry_after,
)
from featctl.common import CancelToken, OperationCancelledError
from featctl.config import ResilienceConfig, RetryPolicy
from tests.support.gitlab import make_client_factory

POLICY = RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=30.0)


def _status_error(status: int, headers: dict[str, str] | None = None) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://gitlab.example.com/api/v4/user")
    response = httpx.Response(status, request=request, headers=headers)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class _Flaky:
    def __init__(self, *statuses: int) -> None:
        self.statuses = list(statuses)
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.statuses:
            raise _status_error(self.statuses.pop(0))
        return "ok"


def _executor(sleeps: list[float] | None = None) -> RetryExecutor:
    recorded = sleeps if sleeps is not None else []

    def sleep(seconds: float, _cancel: CancelToken | None) -> bool:
        recorded.append(seconds)
        return False

    return RetryExecutor(POLICY, sleep=sleep, rand=lambda: 0.5)


def test_retries_until_success() -> None:
    func = _Flaky(503, 503)

    assert _executor().call(func) == "ok"
    assert func.calls == 3


def test_exhausted_retries_raise_last_error() -> None:
    func = _Flaky(503, 502, 504, 503)

    with pytest.raises(httpx.HTTPStatusError) as exc:
        _executor().call(func)

    assert func.calls == 3
    assert exc.value.response.status_code == 504


def test_non_retryable_status_fails_immediately() -> None:
    func = _Flaky(404)

    with pytest.raises(httpx.HTTPStatusError):
        _executor().call(func)

    assert func.calls == 1


def test_other_exceptions_are_not_retried() -> None:
    calls = 0

    def boom() -> None:
        nonlocal calls
        calls += 1
        raise ValueError("nope")

    with pytest.raises(ValueError, match="nope"):
        _executor().call(boom)

    assert calls == 1


def test_backoff_doubles_between_attempts() -> None:
    sleeps: list[float] = []

    _executor(sleeps).call(_Flaky(500, 500))

    # rand() == 0.5 cancels the jitter out exactly.
    assert sleeps == [1.0, 2.0]


@pytest.mark.parametrize("rand", [0.0, 0.25, 0.5, 0.75, 0.999])
def test_first_backoff_stays_within_jitter_bounds(rand: float) -> None:
    delay = compute_backoff(0, POLICY, rand=lambda: rand)

    assert 0.75 <= delay <= 1.25


def test_backoff_is_capped() -> None:
    assert compute_backoff(10, POLICY, rand=lambda: 1.0) == 30.0


def test_retry_after_is_used_exactly() -> None:
    assert compute_backoff(0, POLICY, retry_after=10, rand=lambda: 0.0) == 10.0


def test_retry_after_is_clamped_to_max_delay() -> None:
    assert compute_backoff(0, POLICY, retry_after=60) == 30.0


def test_retry_after_header_drives_the_sleep() -> None:
    sleeps: list[float] = []
    attempts = iter([_status_error(429, {"Retry-After": "7"})])

    def func() -> str:
        error = next(attempts, None)
        if error is not None:
            raise error
        return "ok"

    assert _executor(sleeps).call(func) == "ok"
    assert sleeps == [7.0]


def test_parse_retry_after_forms() -> None:
    now = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)
    request = httpx.Request("GET", "https://example.com")
    later = format_datetime(datetime(2025, 1, 1, 12, 0, 15, tzinfo=UTC), usegmt=True)

    seconds = httpx.Response(429, headers={"Retry-After": "12"}, request=request)
    dated = httpx.Response(429, headers={"Retry-After": later}, request=request)
    junk = httpx.Response(429, headers={"Retry-After": "soon"}, request=request)

    assert parse_retry_after(seconds) == 12.0
    assert parse_retry_after(dated, now=now) == 15.0
    assert parse_retry_after(junk) is None
    assert parse_retry_after(None) is None


def test_cancelled_before_backoff_stops_retrying() -> None:
    token = CancelToken()
    token.cancel()
    func = _Flaky(503, 503)

    with pytest.raises(OperationCancelledError):
        _executor().call(func, cancel=token)

    assert func.calls == 1


def test_cancellation_during_sleep_aborts() -> None:
    def cancelled_sleep(_seconds: float, _cancel: CancelToken | None) -> bool:
        return True

    executor = RetryExecutor(POLICY, sleep=cancelled_sleep)
    func = _Flaky(503, 503)

    with pytest.raises(OperationCancelledError):
        executor.call(func, cancel=CancelToken())

    assert func.calls == 1


def test_resilient_client_retries_http_responses() -> None:
    statuses = [503, 200]
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(statuses.pop(0), json={"ok": True})

    config = ResilienceConfig(
        name="test",
        base_url="https://api.example.com/v1/",
        retry=RetryPolicy(base_delay=0.01),
        default_headers={"PRIVATE-TOKEN": "t"},
    )
    with make_client_factory(handler)(config) as client:
        response = client.get("things")

    assert response.json() == {"ok": True}
    assert len(seen) == 2
    assert str(seen[0].url) == "https://api.example.com/v1/things"
    assert seen[0].headers["PRIVATE-TOKEN"] == "t"


def test_resilient_client_refuses_work_once_cancelled() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    token = CancelToken()
    token.cancel()
    client: ResilientClient = make_client_factory(handler)(ResilienceConfig(name="test"))

    with pytest.raises(OperationCancelledError):
        client.get("https://api.example.com/", cancel=token)
    client.close()
