"""In-memory stand-in for the GitLab REST endpoints the adapters use."""

from __future__ import annotations

import base64
import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import unquote

import httpx

from featctl.adapters.http_resilience import ResilientClient, RetryExecutor
from featctl.config import GitLabConfig, MergeRequestSettings, ResilienceConfig, RetryPolicy

PROJECT = "group/catalog"
INSTANCE = "https://gitlab.example.com"

type Handler = Callable[[httpx.Request], httpx.Response]


def gitlab_config(**overrides: Any) -> GitLabConfig:
    values: dict[str, Any] = {
        "project": PROJECT,
        "instance": INSTANCE,
        "main_branch": "main",
        "token": "secret-token",
        "merge_requests": MergeRequestSettings(labels=("feature",), remove_source_branch=True),
        "retry": RetryPolicy(max_attempts=3, base_delay=0.01, max_delay=0.05),
    }
    values.update(overrides)
    return GitLabConfig(**values)


def make_client_factory(
    handler: Handler,
    *,
    sleeps: list[float] | None = None,
) -> Callable[[ResilienceConfig], ResilientClient]:
    """Build ``ResilientClient`` instances whose transport is ``handler``.

    Retry backoff never sleeps; requested delays are appended to ``sleeps``.
    """

    def no_sleep(seconds: float, _cancel: object) -> bool:
        if sleeps is not None:
            sleeps.append(seconds)
        return False

    def factory(resilience: ResilienceConfig) -> ResilientClient:
        executor = RetryExecutor(resilience.retry, sleep=no_sleep)
        client = ResilientClient(resilience, executor=executor)
        client._client = httpx.Client(  # noqa: SLF001  # type: ignore[reportPrivateUsage]
            base_url=resilience.base_url or "",
            headers=dict(resilience.default_headers or {}),
            transport=httpx.MockTransport(handler),
        )
        return client

    return factory


@dataclass
class _Failure:
    method: str
    fragment: str
    status: int
    remaining: int
    headers: dict[str, str]


@dataclass
class FakeGitLab:
    """A single project with branches, files, merge requests and users."""

    project: str = PROJECT
    main_branch: str = "main"
    page_size: int | None = None
    branches: dict[str, dict[str, str]] = field(default_factory=dict[str, dict[str, str]])
    merge_requests: dict[int, dict[str, Any]] = field(default_factory=dict[int, dict[str, Any]])
    diffs: dict[int, list[dict[str, Any]]] = field(default_factory=dict[int, list[dict[str, Any]]])
    users: dict[str, dict[str, Any]] = field(default_factory=dict[str, dict[str, Any]])
    current_user: dict[str, Any] = field(
        default_factory=lambda: {"id": 7, "username": "dev", "name": "Dev Eloper"}
    )
    members: dict[int, int] = field(default_factory=dict[int, int])
    requests: list[httpx.Request] = field(default_factory=list[httpx.Request])
    _failures: list[_Failure] = field(default_factory=list[_Failure])

    def __post_init__(self) -> None:
        self.branches.setdefault(self.main_branch, {})

    # Fixture helpers

    def put_file(self, path: str, content: str, *, branch: str | None = None) -> None:
        self.branches.setdefault(branch or self.main_branch, {})[path] = content

    def fail(
        self,
        method: str,
        fragment: str,
        status: int,
        *,
        times: int = 1,
        headers: dict[str, str] | None = None,
    ) -> None:
        """Answer the next ``times`` matching requests with ``status``."""

        self._failures.append(_Failure(method, fragment, status, times, headers or {}))

    def calls(self, method: str, fragment: str = "") -> list[httpx.Request]:
        return [
            request
            for request in self.requests
            if request.method == method and fragment in unquote(request.url.raw_path.decode())
        ]

    def client_factory(
        self, *, sleeps: list[float] | None = None
    ) -> Callable[[ResilienceConfig], ResilientClient]:
        return make_client_factory(self.handler, sleeps=sleeps)

    # Transport

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = unquote(request.url.raw_path.decode().split("?", 1)[0])

        for failure in self._failures:
            if failure.remaining and request.method == failure.method and failure.fragment in path:
                failure.remaining -= 1
                return httpx.Response(
                    failure.status, json={"message": "injected failure"}, headers=failure.headers
                )

        if path == "/api/v4/user":
            return httpx.Response(200, json=self.current_user)
        if path == "/api/v4/users":
            username = request.url.params.get("username", "")
            user = self.users.get(username)
            return httpx.Response(200, json=[user] if user else [])

        prefix = f"/api/v4/projects/{self.project}/"
        if not path.startswith(prefix):
            return _error(404, "404 Project Not Found")
        rest = path.removeprefix(prefix)

        if rest == "repository/tree":
            return self._tree(request)
        if rest.startswith("repository/files/"):
            return self._files(request, rest.removeprefix("repository/files/"))
        if rest == "repository/branches" and request.method == "POST":
            return self._create_branch(request)
        if rest.startswith("repository/branches/") and request.method == "DELETE":
            branch = rest.removeprefix("repository/branches/")
            if self.branches.pop(branch, None) is None:
                return _error(404, "404 Branch Not Found")
            return httpx.Response(204)
        if rest == "merge_requests" and request.method == "POST":
            return self._create_merge_request(request)
        if rest.startswith("merge_requests/"):
            return self._merge_request(rest.removeprefix("merge_requests/"))
        if rest.startswith("members/all/"):
            user_id = int(rest.removeprefix("members/all/"))
            if user_id not in self.members:
                return _error(404, "404 Not found")
            return httpx.Response(
                200,
                json={"id": user_id, "username": "dev", "access_level": self.members[user_id]},
            )
        return _error(404, f"404 {rest} Not Found")

    def _tree(self, request: httpx.Request) -> httpx.Response:
        ref = request.url.params.get("ref", self.main_branch)
        directory = request.url.params.get("path", "").rstrip("/")
        files = self.branches.get(ref)
        if files is None:
            return _error(404, "404 Tree Not Found")
        entries = sorted(p for p in files if p.rsplit("/", 1)[0] == directory)
        if not entries:
            return _error(404, "404 Tree Not Found")

        nodes = [
            {"id": f"sha-{p}", "name": p.rsplit("/", 1)[-1], "type": "blob", "path": p}
            for p in entries
        ]
        per_page = self.page_size or int(request.url.params.get("per_page", "20"))
        page = int(request.url.params.get("page", "1"))
        chunk = nodes[(page - 1) * per_page : page * per_page]
        next_page = str(page + 1) if page * per_page < len(nodes) else ""
        return httpx.Response(200, json=chunk, headers={"X-Next-Page": next_page})

    def _files(self, request: httpx.Request, file_path: str) -> httpx.Response:
        if request.method == "GET":
            ref = request.url.params.get("ref", self.main_branch)
            content = self.branches.get(ref, {}).get(file_path)
            if content is None:
                return _error(404, "404 File Not Found")
            return httpx.Response(
                200,
                json={
                    "file_name": file_path.rsplit("/", 1)[-1],
                    "file_path": file_path,
                    "encoding": "base64",
                    "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
                    "ref": ref,
                },
            )

        body = json.loads(request.content or b"{}")
        files = self.branches.get(body.get("branch", ""))
        if files is None:
            return _error(400, "You can only create or edit files when you are on a branch")
        match request.method:
            case "POST":
                if file_path in files:
                    return _error(400, "A file with this name already exists")
                files[file_path] = body["content"]
                return httpx.Response(201, json={"file_path": file_path, "branch": body["branch"]})
            case "PUT":
                if file_path not in files:
                    return _error(400, "A file with this name doesn't exist")
                files[file_path] = body["content"]
                return httpx.Response(200, json={"file_path": file_path, "branch": body["branch"]})
            case "DELETE":
                if files.pop(file_path, None) is None:
                    return _error(400, "A file with this name doesn't exist")
                return httpx.Response(204)
            case _:
                return _error(405, "405 Method Not Allowed")

    def _create_branch(self, request: httpx.Request) -> httpx.Response:
        name = request.url.params["branch"]
        ref = request.url.params["ref"]
        if name in self.branches:
            return _error(400, "Branch already exists")
        if ref not in self.branches:
            return _error(400, "Invalid reference name")
        self.branches[name] = dict(self.branches[ref])
        return httpx.Response(201, json={"name": name})

    def _create_merge_request(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        iid = len(self.merge_requests) + 1
        source = self.branches.get(body["source_branch"], {})
        target = self.branches.get(body["target_branch"], {})
        self.diffs[iid] = [
            {
                "old_path": p,
                "new_path": p,
                "new_file": p not in target,
                "renamed_file": False,
                "deleted_file": p not in source,
            }
            for p in sorted(set(source) | set(target))
            if source.get(p) != target.get(p)
        ]
        payload = {
            "id": 1000 + iid,
            "iid": iid,
            "state": "opened",
            "title": body["title"],
            "description": body["description"],
            "web_url": f"{INSTANCE}/{self.project}/-/merge_requests/{iid}",
            "source_branch": body["source_branch"],
            "target_branch": body["target_branch"],
            "labels": body.get("labels", ""),
            "assignee_id": body.get("assignee_id"),
            "remove_source_branch": body.get("remove_source_branch"),
        }
        self.merge_requests[iid] = payload
        return httpx.Response(201, json=payload)

    def _merge_request(self, rest: str) -> httpx.Response:
        iid_text, _, tail = rest.partition("/")
        merge_request = self.merge_requests.get(int(iid_text))
        if merge_request is None:
            return _error(404, "404 Not found")
        if tail == "diffs":
            return httpx.Response(200, json=self.diffs.get(int(iid_text), []))
        return httpx.Response(200, json=merge_request)


def _error(status: int, message: str) -> httpx.Response:
    return httpx.Response(status, json={"message": message})
