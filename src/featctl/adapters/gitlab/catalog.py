"""YAML codec for catalog files (``features/<id>.yaml``)."""

from __future__ import annotations

from datetime import UTC, date, datetime
from logging import getLogger
from posixpath import basename
from typing import TYPE_CHECKING, Any, Final

import httpx
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from featctl.domain.errors import FeatureBackendError, NotFoundError
from featctl.domain.identifiers import is_valid_id
from featctl.domain.model import Feature

if TYPE_CHECKING:
    from featctl.common.cancellation import CancelToken

    from .client import GitLabClient

log = getLogger(__name__)

FEATURES_DIR: Final[str] = "features"
FEATURE_FILE_EXT: Final[str] = ".yaml"


class CatalogDecodeError(ValueError):
    """Raised when a catalog file is not a valid feature document."""


def _parse_timestamp(value: object) -> datetime | None:
    """Accept RFC3339 strings or YAML timestamps; both must carry a UTC offset."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.strip())
    elif isinstance(value, date):
        raise ValueError(f"date without time: {value!r}")
    else:
        raise ValueError(f"unsupported timestamp value: {value!r}")
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp without UTC offset: {value!r}")
    return parsed


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat().replace("+00:00", "Z")


class FeatureFile(BaseModel):
    """On-disk shape of a catalog file."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    summary: str = ""
    owner: str | None = None
    tags: list[str] = Field(default_factory=list[str])
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("summary", mode="before")
    @classmethod
    def _blank_summary(cls, value: object) -> object:
        return "" if value is None else value

    @field_validator("owner", mode="before")
    @classmethod
    def _blank_owner(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _null_tags(cls, value: object) -> object:
        return [] if value is None else value

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _timestamp(cls, value: object) -> datetime | None:
        return _parse_timestamp(value)

    def to_feature(self) -> Feature:
        return Feature(
            id=self.id,
            name=self.name,
            summary=self.summary,
            owner=self.owner,
            tags=list(self.tags),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


def parse_feature_file(content: bytes | str) -> Feature:
    """Decode a catalog file.

    ``id`` and ``name`` are required. Missing timestamps stay ``None``; present
    ones must be RFC3339.
    """

    try:
        raw = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise CatalogDecodeError(f"parse feature yaml: {exc}") from exc
    if not isinstance(raw, dict):
        raise CatalogDecodeError("feature file must contain a mapping")
    try:
        document = FeatureFile.model_validate(raw)
    except ValidationError as exc:
        raise CatalogDecodeError(f"invalid feature file: {exc}") from exc
    return document.to_feature()


def format_feature_file(feature: Feature, *, now: datetime | None = None) -> bytes:
    """Encode ``feature`` as YAML, filling missing timestamps with ``now``."""

    stamp = now or datetime.now(UTC)
    document: dict[str, Any] = {
        "id": feature.id,
        "name": feature.name,
        "summary": feature.summary,
    }
    if feature.owner:
        document["owner"] = feature.owner
    if feature.tags:
        document["tags"] = list(feature.tags)
    document["created_at"] = format_timestamp(feature.created_at or stamp)
    document["updated_at"] = format_timestamp(feature.updated_at or stamp)
    return yaml.safe_dump(document, sort_keys=False, allow_unicode=True).encode("utf-8")


def feature_file_path(feature_id: str) -> str:
    return f"{FEATURES_DIR}/{feature_id}{FEATURE_FILE_EXT}"


def feature_id_from_path(file_path: str) -> str | None:
    """Return the feature id encoded in ``file_path``, or ``None`` for other files."""

    name = basename(file_path)
    if not name.endswith(FEATURE_FILE_EXT):
        return None
    feature_id = name.removesuffix(FEATURE_FILE_EXT)
    return feature_id if is_valid_id(feature_id) else None


def load_catalog(
    client: GitLabClient, *, ref: str, cancel: CancelToken | None = None
) -> list[Feature]:
    """Fetch and decode every feature file on ``ref``.

    A missing ``features/`` directory is an empty catalog. Files that cannot be
    fetched or decoded are logged and skipped.
    """

    try:
        nodes = client.list_tree(FEATURES_DIR, ref=ref, cancel=cancel)
    except NotFoundError:
        log.info("No %s/ directory on %s; catalog is empty", FEATURES_DIR, ref)
        return []

    features: list[Feature] = []
    for node in nodes:
        if node.type != "blob" or feature_id_from_path(node.path) is None:
            continue
        try:
            content = client.get_file(node.path, ref=ref, cancel=cancel)
        except (FeatureBackendError, httpx.HTTPStatusError) as exc:
            log.warning("Skipping %s: %s", node.path, exc)
            continue
        try:
            features.append(parse_feature_file(content))
        except CatalogDecodeError as exc:
            log.warning("Skipping %s: %s", node.path, exc)
    log.debug("Loaded %s features from %s", len(features), ref)
    return features


def fetch_feature(
    client: GitLabClient, feature_id: str, *, ref: str, cancel: CancelToken | None = None
) -> Feature:
    """Read one feature file straight from ``ref``, bypassing any cache."""

    content = client.get_file(feature_file_path(feature_id), ref=ref, cancel=cancel)
    return parse_feature_file(content)
