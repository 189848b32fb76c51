"""Resilient HTTP access: status-aware retries with backoff and cancellation."""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from logging import getLogger
from typing import TYPE_CHECKING, Any

import httpx

from featctl.common.cancellation import OperationCancelledError, raise_if_cancelled
from featctl.config.http_resilience import ResilienceConfig, RetryPolicy

if TYPE_CHECKING:
    from types import TracebackType

    from featctl.common.cancellation import CancelToken

log = getLogger(__name__)

type Sleeper = Callable[[float, CancelToken | None], bool]


def compute_backoff(
    attempt: int,
    policy: RetryPolicy,
    retry_after: float | None = None,
    *,
    rand: Callable[[], float] = random.random,
) -> float:
    """Delay before the retry following ``attempt`` (0-indexed), in seconds.

    A positive ``retry_after`` is used exactly, clamped to ``policy.max_delay``.
    Otherwise ``base_delay * 2**attempt`` is capped and then jittered by
    ``±policy.jitter``.
    """

    if retry_after is not None and retry_after > 0:
        return min(retry_after, policy.max_delay)

    backoff = min(policy.base_delay * (2**attempt), policy.max_delay)
    spread = backoff * policy.jitter
    backoff += rand() * 2 * spread - spread
    return min(max(backoff, 0.001), policy.max_delay)


def parse_retry_after(
    response: httpx.Response | None, *, now: datetime | None = None
) -> float | None:
    """Read ``Retry-After`` as delta-seconds or an HTTP-date; ``None`` when absent or invalid."""

    if response is None:
        return None
    header = response.headers.get("Retry-After")
    if not header:
        return None
    header = header.strip()
    if header.isdigit():
        return float(header)
    try:
        when = parsedate_to_datetime(header)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    delay = (when - (now or datetime.now(UTC))).total_seconds()
    return delay if delay > 0 else None


def _sleep(seconds: float, cancel: CancelToken | None) -> bool:
    if cancel is None:
        time.sleep(seconds)
        return False
    return cancel.wait(seconds)


class RetryExecutor:
    """Invoke a callable, retrying on retryable HTTP statuses.

    Only ``httpx.HTTPStatusError`` with a status in ``policy.retry_statuses`` is
    retried; every other failure propagates on the first attempt. When attempts run
    out the last observed error is raised as-is.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        sleep: Sleeper = _sleep,
        rand: Callable[[], float] = random.random,
    ) -> None:
        self.policy = policy
        self._sleep = sleep
        self._rand = rand

    def call[T](self, func: Callable[[], T], *, cancel: CancelToken | None = None) -> T:
        attempts = self.policy.max_attempts
        for attempt in range(attempts):
            try:
                return func()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status not in self.policy.retry_statuses or attempt + 1 >= attempts:
                    raise
                raise_if_cancelled(cancel)
                retry_after = (
                    parse_retry_after(exc.response)
                    if self.policy.respect_retry_after_header
                    else None
                )
                delay = compute_backoff(attempt, self.policy, retry_after, rand=self._rand)
                log.warning(
                    "HTTP %s from %s, retrying in %.2fs (attempt %s/%s)",
                    status,
                    exc.request.url,
                    delay,
                    attempt + 1,
                    attempts,
                )
                if self._sleep(delay, cancel):
                    msg = "Operation cancelled during retry backoff"
                    raise OperationCancelledError(msg) from exc
        raise AssertionError("unreachable: retry loop exited without returning")


class ResilientClient:
    """Synchronous httpx client whose requests go through a ``RetryExecutor``.

    Non-2xx responses raise ``httpx.HTTPStatusError`` after retries are exhausted.
    """

    def __init__(self, config: ResilienceConfig, *, executor: RetryExecutor | None = None) -> None:
        self.config = config
        self.retry = executor or RetryExecutor(config.retry)

        client_kwargs: dict[str, Any] = {"timeout": config.timeout_seconds}
        if config.base_url is not None:
            client_kwargs["base_url"] = config.base_url
        if config.default_headers:
            client_kwargs["headers"] = dict(config.default_headers)
        self._client = httpx.Client(**client_kwargs)

    def __enter__(self) -> ResilientClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def request(
        self,
        method: str,
        url: str,
        *,
        cancel: CancelToken | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        def send() -> httpx.Response:
            raise_if_cancelled(cancel)
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
            return response

        return self.retry.call(send, cancel=cancel)

    def get(self, url: str, *, cancel: CancelToken | None = None, **kwargs: Any) -> httpx.Response:
        return self.request("GET", url, cancel=cancel, **kwargs)

    def post(self, url: str, *, cancel: CancelToken | None = None, **kwargs: Any) -> httpx.Response:
        return self.request("POST", url, cancel=cancel, **kwargs)

    def put(self, url: str, *, cancel: CancelToken | None = None, **kwargs: Any) -> httpx.Response:
        return self.request("PUT", url, cancel=cancel, **kwargs)

    def delete(
        self, url: str, *, cancel: CancelToken | None = None, **kwargs: Any
    ) -> httpx.Response:
        return self.request("DELETE", url, cancel=cancel, **kwargs)
