"""GitLab repository catalog backend."""

from __future__ import annotations

from .backend import GitLabBackend
from .cache import FeatureCache
from .catalog import (
    FEATURES_DIR,
    CatalogDecodeError,
    feature_file_path,
    feature_id_from_path,
    format_feature_file,
    parse_feature_file,
)
from .client import GitLabClient, map_http_error
from .pipeline import ProposalOutcome, WritePipeline

__all__ = [
    "FEATURES_DIR",
    "CatalogDecodeError",
    "FeatureCache",
    "GitLabBackend",
    "GitLabClient",
    "ProposalOutcome",
    "WritePipeline",
    "feature_file_path",
    "feature_id_from_path",
    "format_feature_file",
    "map_http_error",
    "parse_feature_file",
]
