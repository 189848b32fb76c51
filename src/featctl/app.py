"""Application orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

import httpx

from featctl.adapters.gitlab import GitLabBackend, GitLabClient
from featctl.adapters.http_resilience import ResilientClient
from featctl.adapters.proposal_store import ProposalStore, ProposalStoreError
from featctl.config import get_gitlab_config
from featctl.domain.errors import FeatureBackendError
from featctl.domain.sync import (
    Conflict,
    CreateProposal,
    NoAction,
    ProposalMerged,
    ProposalPending,
    PullRemote,
    PushRemote,
    SyncResult,
    UnseenRemote,
)
from featctl.domain.sync import force_remote as replace_with_remote

if TYPE_CHECKING:
    from featctl.common.cancellation import CancelToken
    from featctl.config import GitLabConfig, ResilienceConfig
    from featctl.domain.model import Feature
    from featctl.domain.ports.replica import LocalReplica
    from featctl.domain.ports.sync import ProposalLedger
    from featctl.domain.proposals import Proposal
    from featctl.domain.sync import SyncAction

ClientFactory = Callable[["ResilienceConfig"], ResilientClient]

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class SyncReport:
    """Outcome of one sync run.

    ``failed`` counts actions whose execution raised; a non-zero value is the only
    condition that makes a sync run unsuccessful.
    """

    plan: SyncResult
    dry_run: bool = False
    succeeded: int = 0
    failed: int = 0
    pending: int = 0
    conflicts: int = 0
    unseen: int = 0
    warnings: list[str] = field(default_factory=list[str])
    errors: list[str] = field(default_factory=list[str])

    @property
    def ok(self) -> bool:
        return self.failed == 0


def build_gitlab_backend(
    config: GitLabConfig | None = None,
    *,
    ledger: ProposalLedger | None = None,
    client_factory: ClientFactory | None = None,
) -> GitLabBackend:
    """Wire a ``GitLabBackend`` from environment configuration unless given one."""

    effective_config = config or get_gitlab_config()
    client = GitLabClient(config=effective_config, client_factory=client_factory)
    log.debug("Using GitLab project %s on %s", effective_config.project, effective_config.instance)
    return GitLabBackend(effective_config, client=client, ledger=ledger or ProposalStore())


def sync_features(
    backend: GitLabBackend,
    replica: LocalReplica,
    *,
    prefer_local: bool = False,
    dry_run: bool = False,
    cancel: CancelToken | None = None,
    clock: Callable[[], datetime] = _utcnow,
) -> SyncReport:
    """Reconcile ``replica`` with the remote catalog.

    A failing action is recorded and the run moves on to the next one. Decode and
    payload validation errors (``ValueError``) count as failures too. Pull and
    merge results are written back to ``replica``; nothing is executed when
    ``dry_run`` is set.
    """

    local_features = replica.features()
    log.info(
        "Starting sync: local=%s, prefer_local=%s, dry_run=%s",
        len(local_features),
        prefer_local,
        dry_run,
    )
    plan = backend.plan_sync(local_features, prefer_local=prefer_local, cancel=cancel)
    report = SyncReport(plan=plan, dry_run=dry_run, warnings=list(plan.warnings))

    for action in plan.actions:
        match action:
            case ProposalPending():
                report.pending += 1
                continue
            case Conflict():
                report.conflicts += 1
                continue
            case UnseenRemote():
                report.unseen += 1
                continue
            case NoAction():
                continue
            case CreateProposal() | PushRemote() | PullRemote() | ProposalMerged():
                pass
        if dry_run:
            continue
        try:
            _apply(backend, replica, action, report, clock=clock, cancel=cancel)
        except (FeatureBackendError, ProposalStoreError, httpx.HTTPError, ValueError) as exc:
            label = action.local_id or action.server_id
            log.error("Sync action %s for %s failed: %s", action.kind, label, exc)
            report.failed += 1
            report.errors.append(f"{label}: {exc}")
        else:
            report.succeeded += 1

    log.info(
        "Finished sync: succeeded=%s, failed=%s, pending=%s, conflicts=%s, unseen=%s",
        report.succeeded,
        report.failed,
        report.pending,
        report.conflicts,
        report.unseen,
    )
    return report


def _apply(
    backend: GitLabBackend,
    replica: LocalReplica,
    action: SyncAction,
    report: SyncReport,
    *,
    clock: Callable[[], datetime],
    cancel: CancelToken | None,
) -> None:
    backend.execute_action(action, cancel=cancel)
    match action:
        case PullRemote(feature=feature):
            replica.apply_remote(feature, synced_at=clock())
        case ProposalMerged(local_id=local_id, server_id=server_id) if action.server_id_known:
            if local_id in replica.features():
                replica.adopt(local_id, server_id, synced_at=clock())
        case ProposalMerged(local_id=local_id, proposal=proposal):
            report.warnings.append(
                f"MR !{proposal.proposal_id} for {local_id} was merged but its feature id "
                "could not be determined; run a forced remote sync to pick it up"
            )
        case _:
            pass


def force_remote(
    backend: GitLabBackend,
    replica: LocalReplica,
    *,
    cancel: CancelToken | None = None,
) -> list[Feature]:
    """Replace all local replica state with the current remote catalog."""

    log.warning("Discarding local replica state in favour of the remote catalog")
    return replace_with_remote(backend, replica, cancel=cancel)


def list_pending(ledger: ProposalLedger | None = None) -> list[Proposal]:
    return (ledger or ProposalStore()).load().entries()
