"""Ports implemented by adapters and consumed by sync planning."""

from __future__ import annotations

from .backend import FeatureBackend
from .replica import LocalReplica
from .sync import ProposalLedger, ProposalStatusSource, ProposalWriter

__all__ = [
    "FeatureBackend",
    "LocalReplica",
    "ProposalLedger",
    "ProposalStatusSource",
    "ProposalWriter",
]
