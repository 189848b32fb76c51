from __future__ import annotations

from .cancellation import CancelToken, OperationCancelledError, raise_if_cancelled
from .locks import ReadWriteLock

__all__ = [
    "CancelToken",
    "OperationCancelledError",
    "ReadWriteLock",
    "raise_if_cancelled",
]
