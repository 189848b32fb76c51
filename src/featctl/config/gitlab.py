"""GitLab catalog configuration values."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from .env import env_flag, env_list, optional_env_var, require_env_vars
from .errors import ConfigurationError
from .http_resilience import ResilienceConfig, RetryPolicy

DEFAULT_GITLAB_INSTANCE = "https://gitlab.com"
DEFAULT_MAIN_BRANCH = "main"
DEFAULT_MR_LABELS = ("feature",)
GITLAB_TIMEOUT_SECONDS = 30.0

type TokenKind = Literal["private", "oauth"]


@dataclass(frozen=True, slots=True)
class MergeRequestSettings:
    labels: tuple[str, ...] = DEFAULT_MR_LABELS
    remove_source_branch: bool = True
    default_assignee: str | None = None


@dataclass(frozen=True, slots=True)
class GitLabConfig:
    """Holds GitLab catalog configuration values."""

    project: str
    instance: str = DEFAULT_GITLAB_INSTANCE
    main_branch: str = DEFAULT_MAIN_BRANCH
    token: str | None = field(default=None, repr=False)
    token_kind: TokenKind = "private"
    merge_requests: MergeRequestSettings = field(default_factory=MergeRequestSettings)
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    @property
    def api_url(self) -> str:
        return f"{self.instance.rstrip('/')}/api/v4/"

    def auth_headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        if self.token_kind == "oauth":
            return {"Authorization": f"Bearer {self.token}"}
        return {"PRIVATE-TOKEN": self.token}

    def resilience(self) -> ResilienceConfig:
        return ResilienceConfig(
            name="gitlab",
            base_url=self.api_url,
            timeout_seconds=GITLAB_TIMEOUT_SECONDS,
            retry=self.retry,
            default_headers=self.auth_headers(),
        )


def get_gitlab_config() -> GitLabConfig:
    values = require_env_vars(("FEATCTL_GITLAB_PROJECT",))
    token = optional_env_var("FEATCTL_GITLAB_TOKEN") or optional_env_var("CI_JOB_TOKEN")

    token_kind = optional_env_var("FEATCTL_GITLAB_TOKEN_KIND", "private")
    if token_kind not in {"private", "oauth"}:
        raise ConfigurationError(f"Unsupported token kind: {token_kind}")

    return GitLabConfig(
        project=values["FEATCTL_GITLAB_PROJECT"].strip(),
        instance=optional_env_var("FEATCTL_GITLAB_INSTANCE", DEFAULT_GITLAB_INSTANCE)
        or DEFAULT_GITLAB_INSTANCE,
        main_branch=optional_env_var("FEATCTL_GITLAB_MAIN_BRANCH", DEFAULT_MAIN_BRANCH)
        or DEFAULT_MAIN_BRANCH,
        token=token,
        token_kind="oauth" if token_kind == "oauth" else "private",
        merge_requests=MergeRequestSettings(
            labels=env_list("FEATCTL_MR_LABELS", default=DEFAULT_MR_LABELS),
            remove_source_branch=env_flag("FEATCTL_MR_REMOVE_SOURCE_BRANCH", default=True),
            default_assignee=optional_env_var("FEATCTL_DEFAULT_ASSIGNEE"),
        ),
    )
