"""Apply planned sync actions that have remote or ledger side effects."""

from __future__ import annotations

from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, assert_never

from .actions import (
    Conflict,
    CreateProposal,
    NoAction,
    ProposalMerged,
    ProposalPending,
    PullRemote,
    PushRemote,
    UnseenRemote,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from featctl.common.cancellation import CancelToken
    from featctl.domain.model import Feature
    from featctl.domain.ports.backend import FeatureBackend
    from featctl.domain.ports.replica import LocalReplica
    from featctl.domain.ports.sync import ProposalLedger, ProposalWriter

    from .actions import SyncAction

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SyncExecutor:
    """Run one action at a time.

    ``PullRemote`` and ``ProposalMerged`` also need the caller to update its local
    replica; this class only handles the remote side and the proposal ledger.
    """

    def __init__(self, *, writer: ProposalWriter, ledger: ProposalLedger) -> None:
        self._writer = writer
        self._ledger = ledger

    def execute(self, action: SyncAction, *, cancel: CancelToken | None = None) -> None:
        match action:
            case CreateProposal(feature=feature):
                # The writer records the new proposal, replacing any superseded one.
                self._writer.create(feature, cancel=cancel)
            case PushRemote(server_id=server_id, feature=feature):
                self._writer.update(server_id, feature, cancel=cancel)
            case ProposalMerged(local_id=local_id):
                proposals = self._ledger.load()
                proposals.remove(local_id)
                self._ledger.save(proposals)
                log.debug("Removed merged proposal for %s from ledger", local_id)
            case NoAction() | ProposalPending() | PullRemote() | Conflict() | UnseenRemote():
                return
            case _:
                assert_never(action)


def force_remote(
    backend: FeatureBackend,
    replica: LocalReplica,
    *,
    clock: Callable[[], datetime] = _utcnow,
    cancel: CancelToken | None = None,
) -> list[Feature]:
    """Discard local replica state and replace it with a fresh remote snapshot.

    Everything is marked synced at ``clock()``. Tracked proposals are left alone;
    they still exist remotely.
    """

    backend.invalidate_cache()
    features = backend.list_all(cancel=cancel)
    replica.replace_all(features, synced_at=clock())
    log.info("Replaced local replica with %s remote features", len(features))
    return features
