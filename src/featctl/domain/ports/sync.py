"""Ports used by sync planning and execution."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from featctl.common.cancellation import CancelToken
    from featctl.domain.model import Feature
    from featctl.domain.proposals import Proposals


@runtime_checkable
class ProposalStatusSource(Protocol):
    """Looks up the remote state of tracked merge requests."""

    def proposal_state(self, proposal_id: int, *, cancel: CancelToken | None = None) -> str: ...

    def merged_feature_id(self, proposal_id: int, *, cancel: CancelToken | None = None) -> str:
        """Return the synced id a merged proposal introduced; raise when none is found."""
        ...


@runtime_checkable
class ProposalWriter(Protocol):
    """Opens proposals for feature writes and records them in the ledger."""

    def create(self, feature: Feature, *, cancel: CancelToken | None = None) -> Feature: ...

    def update(
        self, feature_id: str, updates: Feature, *, cancel: CancelToken | None = None
    ) -> Feature: ...


@runtime_checkable
class ProposalLedger(Protocol):
    """Persistence for the in-flight proposal ledger."""

    def load(self) -> Proposals: ...

    def save(self, proposals: Proposals) -> None: ...
