"""Cancellation signal threaded through every remote call."""

from __future__ import annotations

import threading
import time


class OperationCancelledError(RuntimeError):
    """Raised when a caller's cancellation signal fires or its deadline passes."""


class CancelToken:
    """Thread-safe cancellation signal with an optional monotonic deadline.

    A token can be cancelled explicitly from any thread (for example a SIGINT
    handler) and expires on its own once ``timeout`` seconds have elapsed.
    """

    def __init__(self, *, timeout: float | None = None) -> None:
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelledError("Operation cancelled")

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return ``True`` if cancelled before or during the wait."""

        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self._event.wait(max(0.0, seconds))
        return self.cancelled


def raise_if_cancelled(cancel: CancelToken | None) -> None:
    if cancel is not None:
        cancel.raise_if_cancelled()
