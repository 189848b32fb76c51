"""In-flight merge-request proposals tracked across process restarts.

``Proposals`` is a plain value: load it, mutate it, save it. Persistence lives in
``featctl.adapters.proposal_store``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime


class ProposalOperation(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ProposalState(StrEnum):
    """Remote merge-request states as reported by GitLab."""

    OPEN = "opened"
    MERGED = "merged"
    CLOSED = "closed"
    LOCKED = "locked"


@dataclass(slots=True, kw_only=True)
class Proposal:
    """One open merge request created for a feature.

    ``server_id`` stays empty until the synced id is known (creates of local
    features); updates and deletes carry the synced id in both fields.
    """

    local_id: str
    server_id: str = ""
    proposal_id: int
    url: str
    branch: str
    operation: ProposalOperation
    created_at: datetime


@dataclass(slots=True)
class Proposals:
    version: str
    pending: list[Proposal] = field(default_factory=list[Proposal])

    def add(self, proposal: Proposal) -> None:
        """Track ``proposal``, replacing any record for the same local id."""

        self.remove(proposal.local_id)
        self.pending.append(proposal)

    def remove(self, local_id: str) -> None:
        self.pending = [p for p in self.pending if p.local_id != local_id]

    def remove_by_server_id(self, server_id: str) -> None:
        self.pending = [p for p in self.pending if p.server_id != server_id]

    def find_by_local_id(self, local_id: str) -> Proposal | None:
        return next((p for p in self.pending if p.local_id == local_id), None)

    def find_by_server_id(self, server_id: str) -> Proposal | None:
        if not server_id:
            return None
        return next((p for p in self.pending if p.server_id == server_id), None)

    def find_by_proposal_id(self, proposal_id: int) -> Proposal | None:
        return next((p for p in self.pending if p.proposal_id == proposal_id), None)

    def entries(self) -> list[Proposal]:
        return [replace(p) for p in self.pending]

    def __len__(self) -> int:
        return len(self.pending)
