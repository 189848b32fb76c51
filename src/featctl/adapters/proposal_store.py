"""File persistence for the in-flight proposal ledger (``.fas/pending-mrs.json``)."""

from __future__ import annotations

import os
import tempfile
from datetime import datetime
from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from featctl.config.storage import (
    PENDING_PROPOSALS_VERSION,
    find_repository_root,
    pending_proposals_path,
)
from featctl.domain.proposals import Proposal, ProposalOperation, Proposals

if TYPE_CHECKING:
    from pathlib import Path

    from featctl.config.storage import RootLocator

log = getLogger(__name__)


class ProposalStoreError(RuntimeError):
    """Raised when the ledger file cannot be read or written."""


class ProposalRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    local_id: str
    server_id: str = ""
    proposal_id: int = Field(alias="mr_iid")
    url: str = Field(alias="mr_url")
    branch: str
    operation: ProposalOperation
    created_at: datetime

    @classmethod
    def from_domain(cls, proposal: Proposal) -> ProposalRecord:
        return cls(
            local_id=proposal.local_id,
            server_id=proposal.server_id,
            proposal_id=proposal.proposal_id,
            url=proposal.url,
            branch=proposal.branch,
            operation=proposal.operation,
            created_at=proposal.created_at,
        )

    def to_domain(self) -> Proposal:
        return Proposal(
            local_id=self.local_id,
            server_id=self.server_id,
            proposal_id=self.proposal_id,
            url=self.url,
            branch=self.branch,
            operation=self.operation,
            created_at=self.created_at,
        )


class ProposalFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: str = PENDING_PROPOSALS_VERSION
    pending: list[ProposalRecord] = Field(default_factory=list[ProposalRecord])


class ProposalStore:
    """Loads and saves ``Proposals`` at ``<repo root>/.fas/pending-mrs.json``.

    The root is resolved on every call through ``root_locator`` so tests can point
    it at a temporary directory.
    """

    def __init__(self, root_locator: RootLocator = find_repository_root) -> None:
        self._root_locator = root_locator

    @property
    def path(self) -> Path:
        return pending_proposals_path(self._root_locator())

    def load(self) -> Proposals:
        path = self.path
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Proposals(version=PENDING_PROPOSALS_VERSION)
        except OSError as exc:
            raise ProposalStoreError(f"Could not read {path}: {exc}") from exc

        try:
            document = ProposalFile.model_validate_json(raw)
        except ValidationError as exc:
            raise ProposalStoreError(f"Malformed proposal ledger {path}: {exc}") from exc
        return Proposals(
            version=document.version or PENDING_PROPOSALS_VERSION,
            pending=[record.to_domain() for record in document.pending],
        )

    def save(self, proposals: Proposals) -> None:
        path = self.path
        document = ProposalFile(
            version=proposals.version or PENDING_PROPOSALS_VERSION,
            pending=[ProposalRecord.from_domain(p) for p in proposals.pending],
        )
        payload = document.model_dump_json(by_alias=True, indent=2)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            _atomic_write(path, payload)
        except OSError as exc:
            raise ProposalStoreError(f"Could not write {path}: {exc}") from exc
        log.debug("Saved %s pending proposals to %s", len(proposals), path)


def _atomic_write(path: Path, payload: str) -> None:
    # Same directory as the target so the rename never crosses filesystems.
    fd, temp_path = tempfile.mkstemp(prefix=f"{path.stem}_", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(temp_path, 0o600)
        os.replace(temp_path, path)
    except BaseException:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise
