"""Feature catalog entities (pure, dependency-light)."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime


class BackendMode(StrEnum):
    ATLAS = "atlas"
    GITLAB = "gitlab"


@dataclass(slots=True, kw_only=True)
class Feature:
    """Backend-agnostic feature record.

    ``id`` is either synced (``FT-NNNNNN``) or local (``FT-LOCAL-*``). Timestamps are
    ``None`` until known; codecs fill them in when writing.
    """

    id: str
    name: str
    summary: str = ""
    owner: str | None = None
    tags: list[str] = field(default_factory=list[str])
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def copy(self) -> Feature:
        return replace(self, tags=list(self.tags))


@dataclass(slots=True, frozen=True)
class SuggestItem:
    id: str
    name: str
    summary: str = ""


@dataclass(slots=True, frozen=True)
class AuthInfo:
    username: str
    display_name: str
    role: str


@dataclass(slots=True, kw_only=True)
class LocalFeature:
    """A local replica entry as seen by sync planning.

    ``synced_at`` is ``None`` when the entry has never been synced.
    """

    name: str
    summary: str = ""
    owner: str | None = None
    tags: list[str] = field(default_factory=list[str])
    synced: bool = False
    synced_at: datetime | None = None
    updated_at: datetime | None = None

    def to_feature(self, feature_id: str) -> Feature:
        return Feature(
            id=feature_id,
            name=self.name,
            summary=self.summary,
            owner=self.owner,
            tags=list(self.tags),
        )
