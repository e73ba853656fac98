"""
CommunityData list merges shared by both providers.

Every helper returns a new CommunityData; inputs are never mutated.
"""

from __future__ import annotations

import re

from services.api.community.config import (
    AUDIENCE_AUGMENT_CATEGORIES,
    AUDIENCE_NEIGHBORHOOD_FIELD,
    CATEGORY_FIELD_MAP,
    NON_NEIGHBORHOOD_CATEGORY_KEYS,
    NONE_FOUND,
    get_category_display_limit,
    get_category_min_primary_results,
    normalize_audience_segment,
)
from services.api.community.models import CommunityData
from services.api.community.places.scoring import count_list_items, parse_list_lines, trim_list

AudienceDelta = dict[str, str]

_LEADING_BULLET = re.compile(r"^-\s*")
_COMMENTARY_TAIL = re.compile(r"\s+—\s+.*$")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize_list_key(line: str) -> str:
    """'- Franklin BBQ — brisket, lines' -> 'franklin bbq'."""
    name = _COMMENTARY_TAIL.sub("", _LEADING_BULLET.sub("", line))
    return _NON_ALNUM.sub(" ", name.lower()).strip()


def merge_lists(delta_list: str, base_list: str, max_items: int) -> str:
    """Delta lines first, then base lines, deduped by name, capped at max_items."""
    delta_lines = parse_list_lines(delta_list)
    if not delta_lines:
        return trim_list(base_list, max_items, False)

    merged: list[str] = []
    seen: set[str] = set()
    for line in [*delta_lines, *parse_list_lines(base_list)]:
        key = normalize_list_key(line)
        if not key or key in seen:
            continue
        seen.add(key)
        merged.append(line)

    if not merged:
        return NONE_FOUND
    return "\n".join(merged[:max_items])


def apply_audience_delta(data: CommunityData, delta: AudienceDelta) -> CommunityData:
    updates: dict[str, str] = {}
    for category, delta_list in delta.items():
        field = CATEGORY_FIELD_MAP.get(category)
        if not field or not delta_list or "(none found)" in delta_list:
            continue
        base_list = data.get_list(field)
        if base_list is None:
            continue
        updates[field] = merge_lists(delta_list, base_list, get_category_display_limit(category))
    return data.model_copy(update=updates) if updates else data


def trim_community_data_lists(data: CommunityData) -> CommunityData:
    """Neighborhoods lose their commentary; every list is cut to its display limit."""
    updates: dict[str, str] = {
        "neighborhoods_list": trim_list(
            data.neighborhoods_list, get_category_display_limit("neighborhoods"), True
        ),
    }
    for category in NON_NEIGHBORHOOD_CATEGORY_KEYS:
        field = CATEGORY_FIELD_MAP[category]
        updates[field] = trim_list(data.get_list(field), get_category_display_limit(category), False)
    return data.model_copy(update=updates)


def get_audience_skip_categories(delta: AudienceDelta | None) -> set[str]:
    """Augmentable categories whose delta alone satisfies the minimum primary result count."""
    skip: set[str] = set()
    if not delta:
        return skip
    for category in AUDIENCE_AUGMENT_CATEGORIES:
        value = delta.get(category)
        if not value or "(none found)" in value:
            continue
        min_primary = get_category_min_primary_results(category)
        if min_primary <= 0 or count_list_items(value) >= min_primary:
            skip.add(category)
    return skip


def build_audience_community_data(data: CommunityData, audience: str | None) -> CommunityData:
    """Surface the audience's neighborhood variant as neighborhoods_list."""
    field = AUDIENCE_NEIGHBORHOOD_FIELD.get(normalize_audience_segment(audience) or "")
    if field is None:
        return data
    return data.model_copy(update={"neighborhoods_list": data.get_list(field) or NONE_FOUND})


def to_available_category_keys(data: CommunityData | None) -> list[str]:
    """List fields with content plus any seasonal section headers."""
    if data is None:
        return []
    keys = [
        field
        for field in CATEGORY_FIELD_MAP.values()
        if count_list_items(data.get_list(field)) > 0
    ]
    keys.extend(key for key, value in data.seasonal_geo_sections.items() if count_list_items(value) > 0)
    return keys
