"""Capability interface shared by every catalog backend."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from featctl.common.cancellation import CancelToken
    from featctl.domain.model import AuthInfo, BackendMode, Feature, SuggestItem


@runtime_checkable
class FeatureBackend(Protocol):
    """Read/write surface the CLI and TUI use regardless of the backing store.

    ``create_feature`` accepts an empty or ``FT-LOCAL-*`` id and returns the feature
    with the id the backend assigned.
    """

    def suggest(
        self, query: str, limit: int, *, cancel: CancelToken | None = None
    ) -> list[SuggestItem]: ...

    def search(
        self, query: str, limit: int, *, cancel: CancelToken | None = None
    ) -> list[Feature]: ...

    def get_feature(self, feature_id: str, *, cancel: CancelToken | None = None) -> Feature: ...

    def feature_exists(self, feature_id: str, *, cancel: CancelToken | None = None) -> bool: ...

    def list_all(self, *, cancel: CancelToken | None = None) -> list[Feature]: ...

    def create_feature(self, feature: Feature, *, cancel: CancelToken | None = None) -> Feature: ...

    def update_feature(
        self, feature_id: str, updates: Feature, *, cancel: CancelToken | None = None
    ) -> Feature: ...

    def delete_feature(self, feature_id: str, *, cancel: CancelToken | None = None) -> None: ...

    def get_auth_info(self, *, cancel: CancelToken | None = None) -> AuthInfo: ...

    def mode(self) -> BackendMode: ...

    def invalidate_cache(self) -> None: ...
