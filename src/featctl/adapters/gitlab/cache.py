"""Process-wide snapshot of the remote catalog."""

from __future__ import annotations

from collections.abc import Callable
from logging import getLogger
from typing import TYPE_CHECKING

from featctl.common.locks import ReadWriteLock

if TYPE_CHECKING:
    from featctl.common.cancellation import CancelToken
    from featctl.domain.model import Feature

log = getLogger(__name__)

type CatalogLoader = Callable[[CancelToken | None], list[Feature]]


class FeatureCache:
    """Lazily loaded, wholesale-replaced feature list.

    Readers share the lock; loads and invalidations take it exclusively. The
    loaded flag is re-checked under the write lock, so concurrent first reads
    trigger a single load. Every read hands out copies.
    """

    def __init__(self, loader: CatalogLoader) -> None:
        self._loader = loader
        self._lock = ReadWriteLock()
        self._features: list[Feature] = []
        self._loaded = False

    @property
    def loaded(self) -> bool:
        with self._lock.read():
            return self._loaded

    def get_all(self, *, cancel: CancelToken | None = None) -> list[Feature]:
        with self._lock.read():
            if self._loaded:
                return [feature.copy() for feature in self._features]

        with self._lock.write():
            if not self._loaded:
                features = self._loader(cancel)
                self._features = features
                self._loaded = True
                log.debug("Feature cache populated with %s entries", len(features))
            return [feature.copy() for feature in self._features]

    def find(self, feature_id: str) -> Feature | None:
        """Return a copy of a cached feature without triggering a load."""

        with self._lock.read():
            if not self._loaded:
                return None
            for feature in self._features:
                if feature.id == feature_id:
                    return feature.copy()
            return None

    def invalidate(self) -> None:
        with self._lock.write():
            self._features = []
            self._loaded = False
