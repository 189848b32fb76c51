"""HTTP client for the GitLab REST API (v4).

Every call goes through ``ResilientClient`` (status-aware retries) and maps
transport and status failures into ``featctl.domain.errors`` kinds on the way out.
Unmapped failures propagate unchanged.
"""

from __future__ import annotations

import base64
import binascii
from logging import getLogger
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx
from pydantic import TypeAdapter, ValidationError

from featctl.adapters.http_resilience import ResilientClient
from featctl.domain.errors import (
    AlreadyExistsError,
    BackendUnreachableError,
    ConflictError,
    FeatureBackendError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitedError,
)

from .schema import (
    BranchPayload,
    ErrorPayload,
    MergeRequestDiff,
    MergeRequestPayload,
    ProjectMemberPayload,
    RepositoryFile,
    TreeNode,
    UserPayload,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from types import TracebackType

    from featctl.common.cancellation import CancelToken
    from featctl.config.gitlab import GitLabConfig
    from featctl.config.http_resilience import ResilienceConfig

log = getLogger(__name__)

PER_PAGE = 100

_TREE_NODES = TypeAdapter(list[TreeNode])
_DIFFS = TypeAdapter(list[MergeRequestDiff])
_USERS = TypeAdapter(list[UserPayload])


class GitLabAPIError(FeatureBackendError):
    """Raised when GitLab answers with a payload we cannot interpret."""


def map_http_error(exc: httpx.HTTPError) -> Exception:
    """Translate an httpx failure into a backend error kind, or return it unchanged."""

    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        message = f"{exc.request.method} {exc.request.url.path}: HTTP {response.status_code}"
        detail = error_detail(response)
        if detail:
            message = f"{message} ({detail})"
        match response.status_code:
            case 404:
                return NotFoundError(message)
            case 401 | 403:
                return PermissionDeniedError(message)
            case 409:
                return ConflictError(message)
            case 429:
                return RateLimitedError(message)
            case 500 | 502 | 503 | 504:
                return BackendUnreachableError(message)
            case _:
                return exc
    if isinstance(exc, httpx.TimeoutException | httpx.NetworkError | httpx.RemoteProtocolError):
        return BackendUnreachableError(f"GitLab not reachable: {exc}")
    return exc


def error_detail(response: httpx.Response) -> str:
    try:
        return ErrorPayload.model_validate(response.json()).describe()
    except (ValueError, ValidationError):
        return ""


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


class GitLabClient:
    """Low-level access to one GitLab project."""

    def __init__(
        self,
        *,
        config: GitLabConfig,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
    ) -> None:
        self._config = config
        self._project = quote(config.project, safe="")
        self._http = (client_factory or _default_client_factory)(config.resilience())

    def __enter__(self) -> GitLabClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    # Repository tree and files

    def list_tree(
        self, path: str, *, ref: str, cancel: CancelToken | None = None
    ) -> list[TreeNode]:
        nodes: list[TreeNode] = []
        page = 1
        while True:
            response = self._request(
                "GET",
                f"projects/{self._project}/repository/tree",
                cancel=cancel,
                params={"path": path, "ref": ref, "per_page": PER_PAGE, "page": page},
            )
            nodes.extend(_TREE_NODES.validate_python(response.json()))
            next_page = response.headers.get("X-Next-Page", "").strip()
            if not next_page:
                return nodes
            page = int(next_page)

    def get_file(self, file_path: str, *, ref: str, cancel: CancelToken | None = None) -> bytes:
        response = self._request(
            "GET", self._file_url(file_path), cancel=cancel, params={"ref": ref}
        )
        payload = RepositoryFile.model_validate(response.json())
        if payload.encoding != "base64":
            return payload.content.encode("utf-8")
        try:
            return base64.b64decode(payload.content, validate=True)
        except binascii.Error as exc:
            raise GitLabAPIError(f"Could not decode {file_path}: {exc}") from exc

    def create_file(
        self,
        file_path: str,
        *,
        branch: str,
        content: str,
        commit_message: str,
        cancel: CancelToken | None = None,
    ) -> None:
        body = {"branch": branch, "content": content, "commit_message": commit_message}
        try:
            self._request("POST", self._file_url(file_path), cancel=cancel, json=body)
        except httpx.HTTPStatusError as exc:
            # GitLab reports an existing path as a 400 rather than a 409.
            if exc.response.status_code == 400 and "already exists" in error_detail(
                exc.response
            ).lower():
                raise AlreadyExistsError(f"{file_path} already exists on {branch}") from exc
            raise

    def update_file(
        self,
        file_path: str,
        *,
        branch: str,
        content: str,
        commit_message: str,
        cancel: CancelToken | None = None,
    ) -> None:
        body = {"branch": branch, "content": content, "commit_message": commit_message}
        self._request("PUT", self._file_url(file_path), cancel=cancel, json=body)

    def delete_file(
        self,
        file_path: str,
        *,
        branch: str,
        commit_message: str,
        cancel: CancelToken | None = None,
    ) -> None:
        body = {"branch": branch, "commit_message": commit_message}
        self._request("DELETE", self._file_url(file_path), cancel=cancel, json=body)

    # Branches

    def create_branch(
        self, branch: str, *, ref: str, cancel: CancelToken | None = None
    ) -> BranchPayload:
        response = self._request(
            "POST",
            f"projects/{self._project}/repository/branches",
            cancel=cancel,
            params={"branch": branch, "ref": ref},
        )
        return BranchPayload.model_validate(response.json())

    def delete_branch(self, branch: str, *, cancel: CancelToken | None = None) -> None:
        self._request(
            "DELETE",
            f"projects/{self._project}/repository/branches/{quote(branch, safe='')}",
            cancel=cancel,
        )

    # Merge requests

    def create_merge_request(
        self,
        *,
        source_branch: str,
        target_branch: str,
        title: str,
        description: str,
        labels: Sequence[str] = (),
        remove_source_branch: bool = False,
        assignee_id: int | None = None,
        cancel: CancelToken | None = None,
    ) -> MergeRequestPayload:
        body: dict[str, Any] = {
            "source_branch": source_branch,
            "target_branch": target_branch,
            "title": title,
            "description": description,
            "remove_source_branch": remove_source_branch,
        }
        if labels:
            body["labels"] = ",".join(labels)
        if assignee_id is not None:
            body["assignee_id"] = assignee_id
        response = self._request(
            "POST", f"projects/{self._project}/merge_requests", cancel=cancel, json=body
        )
        return MergeRequestPayload.model_validate(response.json())

    def get_merge_request(
        self, iid: int, *, cancel: CancelToken | None = None
    ) -> MergeRequestPayload:
        response = self._request(
            "GET", f"projects/{self._project}/merge_requests/{iid}", cancel=cancel
        )
        return MergeRequestPayload.model_validate(response.json())

    def list_merge_request_diffs(
        self, iid: int, *, cancel: CancelToken | None = None
    ) -> list[MergeRequestDiff]:
        diffs: list[MergeRequestDiff] = []
        page = 1
        while True:
            response = self._request(
                "GET",
                f"projects/{self._project}/merge_requests/{iid}/diffs",
                cancel=cancel,
                params={"per_page": PER_PAGE, "page": page},
            )
            diffs.extend(_DIFFS.validate_python(response.json()))
            next_page = response.headers.get("X-Next-Page", "").strip()
            if not next_page:
                return diffs
            page = int(next_page)

    # Users

    def find_user(self, username: str, *, cancel: CancelToken | None = None) -> UserPayload | None:
        response = self._request("GET", "users", cancel=cancel, params={"username": username})
        users = _USERS.validate_python(response.json())
        return users[0] if users else None

    def current_user(self, *, cancel: CancelToken | None = None) -> UserPayload:
        response = self._request("GET", "user", cancel=cancel)
        return UserPayload.model_validate(response.json())

    def project_member(
        self, user_id: int, *, cancel: CancelToken | None = None
    ) -> ProjectMemberPayload:
        # ``members/all`` includes access inherited through groups.
        response = self._request(
            "GET", f"projects/{self._project}/members/all/{user_id}", cancel=cancel
        )
        return ProjectMemberPayload.model_validate(response.json())

    def _file_url(self, file_path: str) -> str:
        return f"projects/{self._project}/repository/files/{quote(file_path, safe='')}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        cancel: CancelToken | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            return self._http.request(method, path, cancel=cancel, **kwargs)
        except httpx.HTTPError as exc:
            mapped = map_http_error(exc)
            if mapped is exc:
                raise
            raise mapped from exc
