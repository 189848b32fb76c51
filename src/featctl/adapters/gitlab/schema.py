"""Pydantic models describing the GitLab REST payloads we consume."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict

class GitLabBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TreeNode(GitLabBaseModel):
    id: str
    name: str
    type: Literal["blob", "tree", "commit"]
    path: str
    mode: str | None = None


class RepositoryFile(GitLabBaseModel):
    file_name: str
    file_path: str
    encoding: str = "base64"
    content: str
    ref: str | None = None


class BranchPayload(GitLabBaseModel):
    name: str


class MergeRequestPayload(GitLabBaseModel):
    id: int
    iid: int
    state: str
    title: str = ""
    web_url: str
    source_branch: str
    target_branch: str


class MergeRequestDiff(GitLabBaseModel):
    old_path: str
    new_path: str
    new_file: bool = False
    renamed_file: bool = False
    deleted_file: bool = False


class UserPayload(GitLabBaseModel):
    id: int
    username: str
    name: str = ""


class ProjectMemberPayload(GitLabBaseModel):
    id: int
    username: str
    access_level: int


class ErrorPayload(GitLabBaseModel):
    message: object | None = None
    error: str | None = None
    error_description: str | None = None

    def describe(self) -> str:
        if self.message is not None:
            return str(self.message)
        return self.error_description or self.error or ""


ACCESS_LEVEL_ROLES: dict[int, str] = {
    0: "none",
    5: "none",  # minimal access
    10: "guest",
    15: "planner",
    20: "reporter",
    30: "developer",
    40: "maintainer",
    50: "owner",
    60: "admin",
}


def access_level_to_role(level: int) -> str:
    return ACCESS_LEVEL_ROLES.get(level, "unknown")
