"""Branch, commit, merge request: the write path of the GitLab catalog.

Every write becomes a proposal. A branch is cut from the main branch, the catalog
file is created, overwritten or removed on it, and a merge request is opened.
If any step after the branch exists fails before the merge request is open, the
branch is deleted again.
"""

from __future__ import annotations

import re
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Final

import httpx

from featctl.adapters.proposal_store import ProposalStoreError
from featctl.domain.errors import (
    AlreadyExistsError,
    ConflictError,
    FeatureBackendError,
    InvalidIDError,
    InvalidRequestError,
)
from featctl.domain.identifiers import is_local_id, is_valid_id, next_id
from featctl.domain.proposals import Proposal, ProposalOperation

from .catalog import FEATURES_DIR, feature_file_path, format_feature_file

if TYPE_CHECKING:
    from types import TracebackType

    from featctl.common.cancellation import CancelToken
    from featctl.config.gitlab import GitLabConfig
    from featctl.domain.model import Feature
    from featctl.domain.ports.sync import ProposalLedger

    from .cache import FeatureCache
    from .client import GitLabClient
    from .schema import MergeRequestPayload

log = getLogger(__name__)

CREATE_ATTEMPTS: Final[int] = 3
BRANCH_AREA: Final[str] = "feature"
SLUG_MAX_LENGTH: Final[int] = 30

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")

type FeatureLookup = Callable[[str, CancelToken | None], Feature]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def slugify(value: str) -> str:
    slug = _SLUG_STRIP.sub("-", value.lower()).strip("-")
    return slug[:SLUG_MAX_LENGTH].rstrip("-")


def random_suffix() -> str:
    """Four hex characters that keep branch names for the same feature apart."""

    try:
        return secrets.token_hex(2)
    except NotImplementedError:
        # No OS randomness source; uniqueness is all that matters here.
        return f"{time.time_ns() & 0xFFFF:04x}"


def branch_name(operation: ProposalOperation, feature: Feature, *, suffix: str) -> str:
    slug = slugify(feature.name) or "feature"
    match operation:
        case ProposalOperation.CREATE:
            return f"{BRANCH_AREA}/add-{slug}-{suffix}"
        case ProposalOperation.UPDATE:
            return f"{BRANCH_AREA}/update-{feature.id}-{slug}-{suffix}"
        case ProposalOperation.DELETE:
            return f"{BRANCH_AREA}/delete-{feature.id}-{suffix}"


def commit_message(operation: ProposalOperation, feature: Feature) -> str:
    match operation:
        case ProposalOperation.CREATE:
            return f"feat: add feature {feature.name} (ID: {feature.id})"
        case ProposalOperation.UPDATE | ProposalOperation.DELETE:
            return f"chore: {operation} feature {feature.name} (ID: {feature.id})"


def merge_request_title(operation: ProposalOperation, feature: Feature) -> str:
    verb = {"create": "Add", "update": "Update", "delete": "Delete"}[operation]
    return f"{verb} feature: {feature.name} (ID: {feature.id})"


_HEADINGS: Final[dict[ProposalOperation, str]] = {
    ProposalOperation.CREATE: "Feature Proposal",
    ProposalOperation.UPDATE: "Feature Update",
    ProposalOperation.DELETE: "Feature Deletion",
}

_CHECKLISTS: Final[dict[ProposalOperation, tuple[str, ...]]] = {
    ProposalOperation.CREATE: (
        f"- [x] YAML file added under `{FEATURES_DIR}/`",
        "- [ ] (Reviewer) Check for duplicates",
        "- [ ] (Reviewer) Validate owner exists",
    ),
    ProposalOperation.UPDATE: (
        f"- [x] YAML file updated under `{FEATURES_DIR}/`",
        "- [ ] (Reviewer) Verify changes are correct",
    ),
    ProposalOperation.DELETE: (
        f"- [x] YAML file removed from `{FEATURES_DIR}/`",
        "- [ ] (Reviewer) Confirm deletion is intended",
        "- [ ] (Reviewer) Check for dependencies",
    ),
}


def merge_request_description(operation: ProposalOperation, feature: Feature) -> str:
    lines = [f"## {_HEADINGS[operation]}", "", f"**Name:** {feature.name}", f"**ID:** {feature.id}"]
    if feature.summary:
        lines.append(f"**Summary:** {feature.summary}")
    if feature.owner:
        lines.append(f"**Owner:** {feature.owner}")
    if feature.tags:
        lines.append(f"**Tags:** {', '.join(feature.tags)}")
    lines.extend(["", "## Checklist", "", *_CHECKLISTS[operation]])
    return "\n".join(lines) + "\n"


def merge_updates(existing: Feature, updates: Feature, *, now: datetime) -> Feature:
    """Overlay the non-empty fields of ``updates`` onto a copy of ``existing``."""

    merged = existing.copy()
    if updates.name:
        merged.name = updates.name
    if updates.summary:
        merged.summary = updates.summary
    if updates.owner:
        merged.owner = updates.owner
    if updates.tags:
        merged.tags = list(updates.tags)
    merged.updated_at = now
    return merged


@dataclass(frozen=True, slots=True)
class ProposalOutcome:
    """Result of a successful write: the proposed feature and its tracked proposal.

    ``tracked`` is ``False`` when the merge request exists but the ledger could not
    be updated.
    """

    feature: Feature
    proposal: Proposal
    tracked: bool = True


class _BranchCleanup:
    """Deletes ``branch`` on exit unless ``disarm()`` was called first."""

    def __init__(self, client: GitLabClient, branch: str) -> None:
        self._client = client
        self._branch = branch
        self._armed = True

    def disarm(self) -> None:
        self._armed = False

    def __enter__(self) -> _BranchCleanup:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if not self._armed:
            return
        # No cancel token: a cancelled write should still remove its branch.
        try:
            self._client.delete_branch(self._branch)
        except (FeatureBackendError, httpx.HTTPError) as cleanup_error:
            log.warning("Could not delete branch %s: %s", self._branch, cleanup_error)
        else:
            log.debug("Deleted branch %s after a failed write", self._branch)


class WritePipeline:
    """Opens merge requests for feature writes and records them in the ledger."""

    def __init__(
        self,
        *,
        client: GitLabClient,
        cache: FeatureCache,
        ledger: ProposalLedger,
        config: GitLabConfig,
        lookup: FeatureLookup,
        clock: Callable[[], datetime] = _utcnow,
        suffix: Callable[[], str] = random_suffix,
    ) -> None:
        self._client = client
        self._cache = cache
        self._ledger = ledger
        self._config = config
        self._lookup = lookup
        self._clock = clock
        self._suffix = suffix

    # ProposalWriter

    def create(self, feature: Feature, *, cancel: CancelToken | None = None) -> Feature:
        return self.open_create(feature, cancel=cancel).feature

    def update(
        self, feature_id: str, updates: Feature, *, cancel: CancelToken | None = None
    ) -> Feature:
        return self.open_update(feature_id, updates, cancel=cancel).feature

    def delete(self, feature_id: str, *, cancel: CancelToken | None = None) -> None:
        self.open_delete(feature_id, cancel=cancel)

    # Operations

    def open_create(
        self, feature: Feature, *, cancel: CancelToken | None = None
    ) -> ProposalOutcome:
        """Propose ``feature`` under the next free synced id.

        Losing the id race to a concurrent create (the file already exists) restarts
        the whole pipeline with a fresh id, up to ``CREATE_ATTEMPTS`` times.
        """

        if not feature.name.strip():
            raise InvalidRequestError("name is required")

        local_id = feature.id if is_local_id(feature.id) else None
        now = self._clock()
        last_error: FeatureBackendError | None = None

        for attempt in range(CREATE_ATTEMPTS):
            if attempt:
                self._cache.invalidate()
            existing = self._cache.get_all(cancel=cancel)
            candidate = feature.copy()
            candidate.id = next_id(f.id for f in existing)
            candidate.created_at = now
            candidate.updated_at = now
            try:
                branch, merge_request = self._propose(
                    ProposalOperation.CREATE, candidate, cancel=cancel
                )
            except (AlreadyExistsError, ConflictError) as exc:
                log.info(
                    "Feature id %s already taken (attempt %s/%s)",
                    candidate.id,
                    attempt + 1,
                    CREATE_ATTEMPTS,
                )
                last_error = exc
                continue

            outcome = self._record(
                ProposalOperation.CREATE,
                candidate,
                branch,
                merge_request,
                local_id=local_id or candidate.id,
                server_id="" if local_id else candidate.id,
            )
            self._cache.invalidate()
            return outcome

        raise AlreadyExistsError(
            f"failed after {CREATE_ATTEMPTS} attempts: {last_error}"
        ) from last_error

    def open_update(
        self, feature_id: str, updates: Feature, *, cancel: CancelToken | None = None
    ) -> ProposalOutcome:
        if not is_valid_id(feature_id):
            raise InvalidIDError(f"invalid feature id: {feature_id!r}")
        existing = self._lookup(feature_id, cancel)
        updated = merge_updates(existing, updates, now=self._clock())

        branch, merge_request = self._propose(ProposalOperation.UPDATE, updated, cancel=cancel)
        outcome = self._record(
            ProposalOperation.UPDATE,
            updated,
            branch,
            merge_request,
            local_id=feature_id,
            server_id=feature_id,
        )
        self._cache.invalidate()
        return outcome

    def open_delete(
        self, feature_id: str, *, cancel: CancelToken | None = None
    ) -> ProposalOutcome:
        if not is_valid_id(feature_id):
            raise InvalidIDError(f"invalid feature id: {feature_id!r}")
        existing = self._lookup(feature_id, cancel)

        branch, merge_request = self._propose(ProposalOperation.DELETE, existing, cancel=cancel)
        outcome = self._record(
            ProposalOperation.DELETE,
            existing,
            branch,
            merge_request,
            local_id=feature_id,
            server_id=feature_id,
        )
        self._cache.invalidate()
        return outcome

    # Steps

    def _propose(
        self,
        operation: ProposalOperation,
        feature: Feature,
        *,
        cancel: CancelToken | None,
    ) -> tuple[str, MergeRequestPayload]:
        branch = branch_name(operation, feature, suffix=self._suffix())
        self._client.create_branch(branch, ref=self._config.main_branch, cancel=cancel)
        log.debug("Created branch %s", branch)

        with _BranchCleanup(self._client, branch) as cleanup:
            self._commit(operation, feature, branch, cancel=cancel)
            merge_request = self._open_merge_request(operation, feature, branch, cancel=cancel)
            cleanup.disarm()

        log.info(
            "Opened merge request !%s for %s: %s",
            merge_request.iid,
            feature.id,
            merge_request.web_url,
        )
        return branch, merge_request

    def _commit(
        self,
        operation: ProposalOperation,
        feature: Feature,
        branch: str,
        *,
        cancel: CancelToken | None,
    ) -> None:
        path = feature_file_path(feature.id)
        message = commit_message(operation, feature)
        match operation:
            case ProposalOperation.CREATE:
                self._client.create_file(
                    path,
                    branch=branch,
                    content=format_feature_file(feature, now=self._clock()).decode("utf-8"),
                    commit_message=message,
                    cancel=cancel,
                )
            case ProposalOperation.UPDATE:
                self._client.update_file(
                    path,
                    branch=branch,
                    content=format_feature_file(feature, now=self._clock()).decode("utf-8"),
                    commit_message=message,
                    cancel=cancel,
                )
            case ProposalOperation.DELETE:
                self._client.delete_file(
                    path, branch=branch, commit_message=message, cancel=cancel
                )

    def _open_merge_request(
        self,
        operation: ProposalOperation,
        feature: Feature,
        branch: str,
        *,
        cancel: CancelToken | None,
    ) -> MergeRequestPayload:
        settings = self._config.merge_requests
        return self._client.create_merge_request(
            source_branch=branch,
            target_branch=self._config.main_branch,
            title=merge_request_title(operation, feature),
            description=merge_request_description(operation, feature),
            labels=settings.labels,
            remove_source_branch=settings.remove_source_branch,
            assignee_id=self._resolve_assignee(cancel=cancel),
            cancel=cancel,
        )

    def _resolve_assignee(self, *, cancel: CancelToken | None) -> int | None:
        username = self._config.merge_requests.default_assignee
        if not username:
            return None
        try:
            user = self._client.find_user(username, cancel=cancel)
        except (FeatureBackendError, httpx.HTTPError) as exc:
            log.debug("Assignee lookup for %s failed: %s", username, exc)
            return None
        if user is None:
            log.debug("Assignee %s not found; leaving merge request unassigned", username)
            return None
        return user.id

    def _record(
        self,
        operation: ProposalOperation,
        feature: Feature,
        branch: str,
        merge_request: MergeRequestPayload,
        *,
        local_id: str,
        server_id: str,
    ) -> ProposalOutcome:
        proposal = Proposal(
            local_id=local_id,
            server_id=server_id,
            proposal_id=merge_request.iid,
            url=merge_request.web_url,
            branch=branch,
            operation=operation,
            created_at=self._clock(),
        )
        try:
            proposals = self._ledger.load()
            proposals.add(proposal)
            self._ledger.save(proposals)
        except (ProposalStoreError, OSError) as exc:
            log.warning(
                "Merge request %s is open but could not be tracked locally: %s",
                merge_request.web_url,
                exc,
            )
            return ProposalOutcome(feature=feature, proposal=proposal, tracked=False)
        return ProposalOutcome(feature=feature, proposal=proposal)
