"""Domain types for the feature catalog."""

from __future__ import annotations

from .errors import (
    AlreadyExistsError,
    BackendUnreachableError,
    ConflictError,
    FeatureBackendError,
    InvalidIDError,
    InvalidRequestError,
    NotFoundError,
    NotSupportedError,
    PermissionDeniedError,
    RateLimitedError,
    is_retryable,
)
from .identifiers import is_local_id, is_synced_id, is_valid_id, next_id
from .model import AuthInfo, BackendMode, Feature, LocalFeature, SuggestItem
from .proposals import Proposal, ProposalOperation, Proposals

__all__ = [
    "AlreadyExistsError",
    "AuthInfo",
    "BackendMode",
    "BackendUnreachableError",
    "ConflictError",
    "Feature",
    "FeatureBackendError",
    "InvalidIDError",
    "InvalidRequestError",
    "LocalFeature",
    "NotFoundError",
    "NotSupportedError",
    "PermissionDeniedError",
    "Proposal",
    "ProposalOperation",
    "Proposals",
    "RateLimitedError",
    "SuggestItem",
    "is_local_id",
    "is_retryable",
    "is_synced_id",
    "is_valid_id",
    "next_id",
]
