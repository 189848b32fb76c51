"""Backend-agnostic error kinds.

Remote transport and status failures are mapped into these at the adapter
boundary so callers never branch on HTTP details.
"""

from __future__ import annotations


class FeatureBackendError(RuntimeError):
    """Base class for catalog backend failures."""

    retryable: bool = False


class NotFoundError(FeatureBackendError):
    """Raised when a feature (or remote resource) doesn't exist."""


class AlreadyExistsError(FeatureBackendError):
    """Raised when creating a feature whose catalog file already exists."""


class InvalidIDError(FeatureBackendError):
    """Raised when a feature id has an invalid format."""


class InvalidRequestError(FeatureBackendError):
    """Raised when a request is malformed."""


class PermissionDeniedError(FeatureBackendError):
    """Raised when the user lacks permission for an operation."""


class ConflictError(FeatureBackendError):
    """Raised on concurrent update conflicts."""

    retryable = True


class RateLimitedError(FeatureBackendError):
    """Raised when the backend rate limits the request."""

    retryable = True


class BackendUnreachableError(FeatureBackendError):
    """Raised when the backend cannot be reached or is temporarily unavailable."""

    retryable = True


class NotSupportedError(FeatureBackendError):
    """Raised when an operation is not supported by the active backend."""


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, FeatureBackendError) and exc.retryable
