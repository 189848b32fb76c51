"""Three-way sync planning: local replica, tracked proposals and the remote catalog.

Planning is read-only apart from proposal status lookups; it never writes to the
remote or to the ledger. Local entries are visited in id order so the same inputs
always produce the same plan.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from featctl.common.cancellation import raise_if_cancelled
from featctl.domain.errors import FeatureBackendError
from featctl.domain.identifiers import is_local_id, is_synced_id
from featctl.domain.proposals import ProposalState

from .actions import (
    UNKNOWN_SERVER_ID,
    Conflict,
    CreateProposal,
    NoAction,
    ProposalMerged,
    ProposalPending,
    PullRemote,
    PushRemote,
    SyncAction,
    SyncResult,
    UnseenRemote,
)

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from featctl.common.cancellation import CancelToken
    from featctl.domain.model import Feature, LocalFeature
    from featctl.domain.ports.sync import ProposalStatusSource
    from featctl.domain.proposals import Proposal, Proposals

log = getLogger(__name__)


class SyncPlanner:
    """Produce an ordered ``SyncResult`` describing how to reconcile one replica."""

    def __init__(self, status_source: ProposalStatusSource) -> None:
        self._status = status_source

    def plan(
        self,
        local_features: Mapping[str, LocalFeature],
        proposals: Proposals,
        remote_features: Sequence[Feature],
        *,
        prefer_local: bool = False,
        cancel: CancelToken | None = None,
    ) -> SyncResult:
        result = SyncResult()
        remote_by_id = {feature.id: feature for feature in remote_features}

        for local_id in sorted(local_features):
            raise_if_cancelled(cancel)
            if not (is_local_id(local_id) or is_synced_id(local_id)):
                result.warnings.append(f"Skipping {local_id}: not a valid feature id")
                continue
            result.add(
                self.plan_feature(
                    local_id,
                    local_features[local_id],
                    remote_by_id,
                    proposals,
                    prefer_local=prefer_local,
                    cancel=cancel,
                )
            )

        self._plan_orphaned_proposals(local_features, proposals, result, cancel=cancel)

        for server_id in sorted(remote_by_id.keys() - local_features.keys()):
            remote = remote_by_id[server_id]
            result.add(
                UnseenRemote(
                    server_id=server_id,
                    feature=remote.copy(),
                    description=f"New remote feature: {server_id} ({remote.name})",
                )
            )

        return result

    def plan_feature(
        self,
        local_id: str,
        local: LocalFeature,
        remote_by_id: Mapping[str, Feature],
        proposals: Proposals,
        *,
        prefer_local: bool = False,
        cancel: CancelToken | None = None,
    ) -> SyncAction:
        if is_local_id(local_id):
            return self._plan_local(local_id, local, proposals, cancel=cancel)
        return _plan_synced(local_id, local, remote_by_id, proposals, prefer_local=prefer_local)

    def _plan_local(
        self,
        local_id: str,
        local: LocalFeature,
        proposals: Proposals,
        *,
        cancel: CancelToken | None,
    ) -> SyncAction:
        proposal = proposals.find_by_local_id(local_id)
        if proposal is None:
            return CreateProposal(
                local_id=local_id,
                feature=local.to_feature(local_id),
                description=f"Create MR for {local_id} ({local.name})",
            )

        try:
            state = self._status.proposal_state(proposal.proposal_id, cancel=cancel)
        except FeatureBackendError as exc:
            log.warning("Could not check MR !%s for %s: %s", proposal.proposal_id, local_id, exc)
            return ProposalPending(
                local_id=local_id,
                proposal=proposal,
                description=f"MR !{proposal.proposal_id} pending (status check failed: {exc})",
            )

        match state:
            case ProposalState.MERGED:
                return self._merged(proposal, cancel=cancel)
            case ProposalState.CLOSED:
                return CreateProposal(
                    local_id=local_id,
                    feature=local.to_feature(local_id),
                    superseded=proposal,
                    description=(
                        f"Previous MR !{proposal.proposal_id} was closed, creating new MR"
                    ),
                )
            case ProposalState.OPEN:
                return ProposalPending(
                    local_id=local_id,
                    proposal=proposal,
                    description=f"MR !{proposal.proposal_id} is still open: {proposal.url}",
                )
            case _:
                return ProposalPending(
                    local_id=local_id,
                    proposal=proposal,
                    description=f"MR !{proposal.proposal_id} in unknown state: {state}",
                )

    def _merged(self, proposal: Proposal, *, cancel: CancelToken | None) -> ProposalMerged:
        try:
            server_id = self._status.merged_feature_id(proposal.proposal_id, cancel=cancel)
        except FeatureBackendError as exc:
            log.warning(
                "Could not determine feature id for merged MR !%s: %s", proposal.proposal_id, exc
            )
            server_id = UNKNOWN_SERVER_ID
        return ProposalMerged(
            local_id=proposal.local_id,
            server_id=server_id,
            proposal=proposal,
            description=f"MR !{proposal.proposal_id} was merged -> {server_id}",
        )

    def _plan_orphaned_proposals(
        self,
        local_features: Mapping[str, LocalFeature],
        proposals: Proposals,
        result: SyncResult,
        *,
        cancel: CancelToken | None,
    ) -> None:
        for proposal in proposals.entries():
            if proposal.local_id in local_features:
                continue
            raise_if_cancelled(cancel)
            try:
                state = self._status.proposal_state(proposal.proposal_id, cancel=cancel)
            except FeatureBackendError as exc:
                result.warnings.append(
                    f"Could not check MR !{proposal.proposal_id} for {proposal.local_id}: {exc}"
                )
                continue
            if state == ProposalState.MERGED:
                result.add(self._merged(proposal, cancel=cancel))


def _plan_synced(
    local_id: str,
    local: LocalFeature,
    remote_by_id: Mapping[str, Feature],
    proposals: Proposals,
    *,
    prefer_local: bool,
) -> SyncAction:
    remote = remote_by_id.get(local_id)
    if remote is None:
        return Conflict(local_id=local_id, description=f"{local_id} was deleted remotely")

    proposal = proposals.find_by_server_id(local_id)
    if proposal is not None:
        return ProposalPending(
            local_id=local_id,
            server_id=local_id,
            proposal=proposal,
            description=(
                f"{proposal.operation.capitalize()} MR !{proposal.proposal_id} pending: "
                f"{proposal.url}"
            ),
        )

    local_changed = has_local_changes(local, remote)
    remote_changed = has_remote_changes(local, remote)

    if local_changed and (remote_changed or prefer_local):
        if prefer_local:
            verb = "Conflict: pushing" if remote_changed else "Pushing"
            return PushRemote(
                local_id=local_id,
                server_id=local_id,
                feature=local.to_feature(local_id),
                description=f"{verb} local changes for {local_id} via MR",
            )
        return Conflict(
            local_id=local_id,
            server_id=local_id,
            description=f"Conflict: both local and remote changed for {local_id}",
        )

    if remote_changed:
        return PullRemote(
            local_id=local_id,
            server_id=local_id,
            feature=remote.copy(),
            description=f"Pull remote changes for {local_id}",
        )

    # Local-only edits stay local unless the caller prefers local content.
    return NoAction(local_id=local_id, server_id=local_id)


def has_local_changes(local: LocalFeature, remote: Feature) -> bool:
    return (
        local.name != remote.name
        or local.summary != remote.summary
        or (local.owner or "") != (remote.owner or "")
        or not tags_equal(local.tags, remote.tags)
    )


def has_remote_changes(local: LocalFeature, remote: Feature) -> bool:
    """Whether the remote changed since the last sync; never-synced entries always have."""

    if local.synced_at is None:
        return True
    if remote.updated_at is None:
        return False
    return remote.updated_at > local.synced_at


def tags_equal(left: Sequence[str], right: Sequence[str]) -> bool:
    return set(left) == set(right)
