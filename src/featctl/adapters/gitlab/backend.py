"""``FeatureBackend`` over a GitLab repository catalog."""

from __future__ import annotations

from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from featctl.adapters.proposal_store import ProposalStore
from featctl.domain.errors import FeatureBackendError, InvalidIDError, NotFoundError
from featctl.domain.identifiers import is_local_id, is_valid_id
from featctl.domain.model import AuthInfo, BackendMode
from featctl.domain.search import filter_features, suggest_features
from featctl.domain.sync import SyncExecutor, SyncPlanner

from .cache import FeatureCache
from .catalog import feature_id_from_path, fetch_feature, load_catalog
from .client import GitLabAPIError, GitLabClient
from .pipeline import ProposalOutcome, WritePipeline, random_suffix
from .schema import access_level_to_role

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from types import TracebackType

    from featctl.common.cancellation import CancelToken
    from featctl.config.gitlab import GitLabConfig
    from featctl.domain.model import Feature, LocalFeature, SuggestItem
    from featctl.domain.ports.sync import ProposalLedger
    from featctl.domain.proposals import Proposal
    from featctl.domain.sync import SyncAction, SyncResult

log = getLogger(__name__)

DEFAULT_ROLE = "guest"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class GitLabBackend:
    """Catalog stored as ``features/<id>.yaml`` on a GitLab project's main branch.

    Reads are served from a lazily loaded ``FeatureCache``; writes open merge
    requests through ``WritePipeline`` and are tracked in the proposal ledger.
    The backend is also the ``ProposalStatusSource`` used when planning a sync.
    """

    def __init__(
        self,
        config: GitLabConfig,
        *,
        client: GitLabClient | None = None,
        ledger: ProposalLedger | None = None,
        clock: Callable[[], datetime] = _utcnow,
        suffix: Callable[[], str] = random_suffix,
    ) -> None:
        self.config = config
        self._client = client or GitLabClient(config=config)
        self._ledger: ProposalLedger = ledger or ProposalStore()
        self._cache = FeatureCache(self._load_catalog)
        self._pipeline = WritePipeline(
            client=self._client,
            cache=self._cache,
            ledger=self._ledger,
            config=config,
            lookup=self._lookup,
            clock=clock,
            suffix=suffix,
        )
        self._planner = SyncPlanner(self)
        self._executor = SyncExecutor(writer=self._pipeline, ledger=self._ledger)

    def __enter__(self) -> GitLabBackend:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def mode(self) -> BackendMode:
        return BackendMode.GITLAB

    def instance_id(self) -> str:
        return f"gitlab:{self.config.instance}/{self.config.project}"

    @property
    def ledger(self) -> ProposalLedger:
        return self._ledger

    # Reads

    def suggest(
        self, query: str, limit: int, *, cancel: CancelToken | None = None
    ) -> list[SuggestItem]:
        return suggest_features(self._cache.get_all(cancel=cancel), query, limit)

    def search(self, query: str, limit: int, *, cancel: CancelToken | None = None) -> list[Feature]:
        return filter_features(self._cache.get_all(cancel=cancel), query, limit)

    def list_all(self, *, cancel: CancelToken | None = None) -> list[Feature]:
        return self._cache.get_all(cancel=cancel)

    def get_feature(self, feature_id: str, *, cancel: CancelToken | None = None) -> Feature:
        if not is_valid_id(feature_id):
            raise InvalidIDError(f"invalid feature id: {feature_id!r}")
        cached = self._cache.find(feature_id)
        if cached is not None:
            return cached
        return fetch_feature(
            self._client, feature_id, ref=self.config.main_branch, cancel=cancel
        )

    def feature_exists(self, feature_id: str, *, cancel: CancelToken | None = None) -> bool:
        if not is_valid_id(feature_id):
            raise InvalidIDError(f"invalid feature id: {feature_id!r}")
        try:
            fetch_feature(self._client, feature_id, ref=self.config.main_branch, cancel=cancel)
        except NotFoundError:
            return False
        return True

    def get_auth_info(self, *, cancel: CancelToken | None = None) -> AuthInfo:
        user = self._client.current_user(cancel=cancel)
        role = DEFAULT_ROLE
        try:
            member = self._client.project_member(user.id, cancel=cancel)
        except (FeatureBackendError, httpx.HTTPStatusError) as exc:
            # Access may come through a group the members endpoint does not report.
            log.debug("No project membership found for %s: %s", user.username, exc)
        else:
            role = access_level_to_role(member.access_level)
        return AuthInfo(username=user.username, display_name=user.name, role=role)

    def invalidate_cache(self) -> None:
        self._cache.invalidate()

    # Writes

    def create_feature(self, feature: Feature, *, cancel: CancelToken | None = None) -> Feature:
        return self._pipeline.create(feature, cancel=cancel)

    def update_feature(
        self, feature_id: str, updates: Feature, *, cancel: CancelToken | None = None
    ) -> Feature:
        return self._pipeline.update(feature_id, updates, cancel=cancel)

    def delete_feature(self, feature_id: str, *, cancel: CancelToken | None = None) -> None:
        self._pipeline.delete(feature_id, cancel=cancel)

    def propose_create(
        self, feature: Feature, *, cancel: CancelToken | None = None
    ) -> ProposalOutcome:
        return self._pipeline.open_create(feature, cancel=cancel)

    def propose_update(
        self, feature_id: str, updates: Feature, *, cancel: CancelToken | None = None
    ) -> ProposalOutcome:
        return self._pipeline.open_update(feature_id, updates, cancel=cancel)

    def propose_delete(
        self, feature_id: str, *, cancel: CancelToken | None = None
    ) -> ProposalOutcome:
        return self._pipeline.open_delete(feature_id, cancel=cancel)

    # Proposal status

    def proposal_state(self, proposal_id: int, *, cancel: CancelToken | None = None) -> str:
        try:
            return self._client.get_merge_request(proposal_id, cancel=cancel).state
        except (httpx.HTTPError, ValidationError) as exc:
            raise GitLabAPIError(f"Could not read MR !{proposal_id}: {exc}") from exc

    def merged_feature_id(self, proposal_id: int, *, cancel: CancelToken | None = None) -> str:
        """Find the synced id a merged request added by scanning its changed paths.

        Unmapped HTTP and payload failures are raised as ``GitLabAPIError``.
        """

        try:
            diffs = self._client.list_merge_request_diffs(proposal_id, cancel=cancel)
        except (httpx.HTTPError, ValidationError) as exc:
            raise GitLabAPIError(f"Could not read diffs of MR !{proposal_id}: {exc}") from exc
        for diff in diffs:
            feature_id = feature_id_from_path(diff.new_path)
            if feature_id is not None and not is_local_id(feature_id):
                return feature_id
        raise NotFoundError(f"no feature id found in MR !{proposal_id} diffs")

    # Sync

    def pending_proposals(self) -> list[Proposal]:
        return self._ledger.load().entries()

    def plan_sync(
        self,
        local_features: Mapping[str, LocalFeature],
        *,
        prefer_local: bool = False,
        cancel: CancelToken | None = None,
    ) -> SyncResult:
        proposals = self._ledger.load()
        remote = self._cache.get_all(cancel=cancel)
        return self._planner.plan(
            local_features, proposals, remote, prefer_local=prefer_local, cancel=cancel
        )

    def execute_action(self, action: SyncAction, *, cancel: CancelToken | None = None) -> None:
        self._executor.execute(action, cancel=cancel)

    def _load_catalog(self, cancel: CancelToken | None) -> list[Feature]:
        return load_catalog(self._client, ref=self.config.main_branch, cancel=cancel)

    def _lookup(self, feature_id: str, cancel: CancelToken | None) -> Feature:
        return self.get_feature(feature_id, cancel=cancel)
