"""Port for the local feature replica (manifest)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from datetime import datetime

    from featctl.domain.model import Feature, LocalFeature


@runtime_checkable
class LocalReplica(Protocol):
    """Local copy of the catalog that sync reconciles against the remote."""

    def features(self) -> Mapping[str, LocalFeature]: ...

    def apply_remote(self, feature: Feature, *, synced_at: datetime) -> None:
        """Overwrite the entry for ``feature.id`` with remote content and mark it synced."""
        ...

    def adopt(self, local_id: str, server_id: str, *, synced_at: datetime) -> None:
        """Rename ``local_id`` to ``server_id``, keeping the old id as an alias."""
        ...

    def replace_all(self, features: Sequence[Feature], *, synced_at: datetime) -> None: ...
