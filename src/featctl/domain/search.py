"""In-memory search and autocomplete over a feature list."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .model import SuggestItem

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .model import Feature


def filter_features(features: Sequence[Feature], query: str, limit: int) -> list[Feature]:
    """Case-insensitive substring match on id, name and summary.

    An empty query returns the first ``limit`` features; ``limit <= 0`` means no limit.
    """

    if not query:
        if 0 < limit < len(features):
            return list(features[:limit])
        return list(features)

    needle = query.lower()
    matches: list[Feature] = []
    for feature in features:
        if _matches(feature, needle):
            matches.append(feature)
            if 0 < limit <= len(matches):
                break
    return matches


def suggest_features(features: Sequence[Feature], query: str, limit: int) -> list[SuggestItem]:
    """Rank features for autocomplete, best match first and id ascending on ties."""

    needle = query.lower()
    scored = [
        (score, feature) for feature in features if (score := match_score(feature, needle)) > 0
    ]
    scored.sort(key=lambda item: (-item[0], item[1].id))
    if limit > 0:
        scored = scored[:limit]
    return [
        SuggestItem(id=feature.id, name=feature.name, summary=feature.summary)
        for _, feature in scored
    ]


def match_score(feature: Feature, needle: str) -> int:
    if not needle:
        return 1

    feature_id = feature.id.lower()
    name = feature.name.lower()

    if feature_id == needle:
        return 100
    if feature_id.startswith(needle):
        return 80
    if name.startswith(needle):
        return 60
    if needle in feature_id:
        return 40
    if needle in name:
        return 30
    if needle in feature.summary.lower():
        return 10
    return 0


def _matches(feature: Feature, needle: str) -> bool:
    return (
        needle in feature.id.lower()
        or needle in feature.name.lower()
        or needle in feature.summary.lower()
    )
