"""Local state storage helpers."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Final

STATE_DIR_NAME: Final[str] = ".fas"
PENDING_PROPOSALS_FILENAME: Final[str] = "pending-mrs.json"
PENDING_PROPOSALS_VERSION: Final[str] = "1"
REPOSITORY_MARKER: Final[str] = ".git"

type RootLocator = Callable[[], Path]


def find_repository_root(start: Path | None = None, *, marker: str = REPOSITORY_MARKER) -> Path:
    """Walk upward from ``start`` to the first directory containing ``marker``.

    Falls back to ``start`` itself (the current directory by default) when no
    ancestor carries the marker.
    """

    origin = (start or Path.cwd()).resolve()
    for directory in (origin, *origin.parents):
        if (directory / marker).exists():
            return directory
    return origin


def pending_proposals_path(root: Path) -> Path:
    return root / STATE_DIR_NAME / PENDING_PROPOSALS_FILENAME
