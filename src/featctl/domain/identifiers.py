"""Feature identifier scheme.

Synced ids look like ``FT-000123`` and are assigned by scanning the remote catalog;
local ids look like ``FT-LOCAL-login-flow`` and are assigned by clients before a
proposal is accepted.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Iterable

SYNCED_PREFIX: Final[str] = "FT-"
LOCAL_PREFIX: Final[str] = "FT-LOCAL-"

_SYNCED_ID = re.compile(r"FT-([0-9]{6})")
_LOCAL_ID = re.compile(r"FT-LOCAL-[a-z0-9-]{1,64}")


def is_synced_id(value: str) -> bool:
    return _SYNCED_ID.fullmatch(value) is not None


def is_local_id(value: str) -> bool:
    return _LOCAL_ID.fullmatch(value) is not None


def is_valid_id(value: str) -> bool:
    return is_synced_id(value) or is_local_id(value)


def id_number(value: str) -> int | None:
    """Return the numeric suffix of a synced id, ``None`` for anything else."""

    match = _SYNCED_ID.fullmatch(value)
    if match is None:
        return None
    return int(match.group(1))


def format_synced_id(number: int) -> str:
    return f"{SYNCED_PREFIX}{number:06d}"


def next_id(existing_ids: Iterable[str]) -> str:
    """Return the id following the highest synced id in ``existing_ids``.

    Local ids are ignored. The function knows nothing about concurrent writers;
    collisions are handled by whoever commits the file.
    """

    highest = max((n for n in map(id_number, existing_ids) if n is not None), default=0)
    return format_synced_id(highest + 1)
