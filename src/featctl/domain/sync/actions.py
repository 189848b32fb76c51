"""Sync action variants produced by planning and consumed by execution.

Each variant is a small dataclass discriminated by ``kind``; ``SyncAction`` is the
closed union, so ``match`` statements over it can be checked for exhaustiveness.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from featctl.domain.model import Feature
    from featctl.domain.proposals import Proposal

UNKNOWN_SERVER_ID = "unknown"


class SyncActionKind(StrEnum):
    NONE = "none"
    CREATE_PROPOSAL = "create_proposal"
    PROPOSAL_PENDING = "proposal_pending"
    PROPOSAL_MERGED = "proposal_merged"
    PULL_REMOTE = "pull_remote"
    PUSH_REMOTE = "push_remote"
    CONFLICT = "conflict"
    UNSEEN_REMOTE = "unseen_remote"


@dataclass(slots=True, frozen=True, kw_only=True)
class NoAction:
    local_id: str
    server_id: str = ""
    description: str = ""
    kind: Literal[SyncActionKind.NONE] = SyncActionKind.NONE


@dataclass(slots=True, frozen=True, kw_only=True)
class CreateProposal:
    """Open a create proposal for a local-only feature."""

    local_id: str
    feature: Feature
    description: str
    superseded: Proposal | None = None
    kind: Literal[SyncActionKind.CREATE_PROPOSAL] = SyncActionKind.CREATE_PROPOSAL

    @property
    def server_id(self) -> str:
        return ""


@dataclass(slots=True, frozen=True, kw_only=True)
class ProposalPending:
    local_id: str
    proposal: Proposal
    description: str
    server_id: str = ""
    kind: Literal[SyncActionKind.PROPOSAL_PENDING] = SyncActionKind.PROPOSAL_PENDING


@dataclass(slots=True, frozen=True, kw_only=True)
class ProposalMerged:
    """A tracked proposal was merged; ``server_id`` may be ``UNKNOWN_SERVER_ID``."""

    local_id: str
    server_id: str
    proposal: Proposal
    description: str
    kind: Literal[SyncActionKind.PROPOSAL_MERGED] = SyncActionKind.PROPOSAL_MERGED

    @property
    def server_id_known(self) -> bool:
        return bool(self.server_id) and self.server_id != UNKNOWN_SERVER_ID


@dataclass(slots=True, frozen=True, kw_only=True)
class PullRemote:
    local_id: str
    server_id: str
    feature: Feature
    description: str
    kind: Literal[SyncActionKind.PULL_REMOTE] = SyncActionKind.PULL_REMOTE


@dataclass(slots=True, frozen=True, kw_only=True)
class PushRemote:
    local_id: str
    server_id: str
    feature: Feature
    description: str
    kind: Literal[SyncActionKind.PUSH_REMOTE] = SyncActionKind.PUSH_REMOTE


@dataclass(slots=True, frozen=True, kw_only=True)
class Conflict:
    local_id: str
    description: str
    server_id: str = ""
    kind: Literal[SyncActionKind.CONFLICT] = SyncActionKind.CONFLICT


@dataclass(slots=True, frozen=True, kw_only=True)
class UnseenRemote:
    """Remote feature with no local entry; informational only."""

    server_id: str
    feature: Feature
    description: str
    kind: Literal[SyncActionKind.UNSEEN_REMOTE] = SyncActionKind.UNSEEN_REMOTE

    @property
    def local_id(self) -> str:
        return ""


type SyncAction = (
    NoAction
    | CreateProposal
    | ProposalPending
    | ProposalMerged
    | PullRemote
    | PushRemote
    | Conflict
    | UnseenRemote
)


@dataclass(slots=True)
class SyncResult:
    """Ordered plan for one sync run plus free-form warnings."""

    actions: list[SyncAction] = field(default_factory=list["SyncAction"])
    warnings: list[str] = field(default_factory=list[str])

    def add(self, action: SyncAction) -> None:
        if action.kind is SyncActionKind.NONE:
            return
        self.actions.append(action)

    def counts(self) -> Counter[SyncActionKind]:
        return Counter(action.kind for action in self.actions)

    def of_kind(self, kind: SyncActionKind) -> list[SyncAction]:
        return [action for action in self.actions if action.kind is kind]
