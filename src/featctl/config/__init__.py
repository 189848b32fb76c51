"""Application configuration helpers."""

from __future__ import annotations

from .env import env_flag, env_list, optional_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .gitlab import GitLabConfig, MergeRequestSettings, get_gitlab_config
from .http_resilience import ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .storage import (
    PENDING_PROPOSALS_FILENAME,
    PENDING_PROPOSALS_VERSION,
    STATE_DIR_NAME,
    find_repository_root,
    pending_proposals_path,
)

__all__ = [
    "PENDING_PROPOSALS_FILENAME",
    "PENDING_PROPOSALS_VERSION",
    "STATE_DIR_NAME",
    "ConfigurationError",
    "GitLabConfig",
    "MergeRequestSettings",
    "MissingConfigurationError",
    "ResilienceConfig",
    "RetryPolicy",
    "configure_logging",
    "env_flag",
    "env_list",
    "find_repository_root",
    "get_gitlab_config",
    "optional_env_var",
    "pending_proposals_path",
    "require_env_vars",
]
