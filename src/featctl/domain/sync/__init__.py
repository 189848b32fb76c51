"""Reconciliation of a local replica against the remote catalog."""

from __future__ import annotations

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
    SyncActionKind,
    SyncResult,
    UnseenRemote,
)
from .executor import SyncExecutor, force_remote
from .planner import SyncPlanner, has_local_changes, has_remote_changes, tags_equal

__all__ = [
    "UNKNOWN_SERVER_ID",
    "Conflict",
    "CreateProposal",
    "NoAction",
    "ProposalMerged",
    "ProposalPending",
    "PullRemote",
    "PushRemote",
    "SyncAction",
    "SyncActionKind",
    "SyncExecutor",
    "SyncPlanner",
    "SyncResult",
    "UnseenRemote",
    "force_remote",
    "has_local_changes",
    "has_remote_changes",
    "tags_equal",
]
