"""
Place scoring — ranking, deduplication, tiered sampling, list formatting.

Ranking score:
    log10(review_count + 1) * 10 + rating - min(distance_km, 20) * 0.05
Places with unknown distance take no distance penalty.

Dedup key: provider place ID when present, else the normalised "name|address"
string. Duplicate hits are merged: source queries are unioned, the longer
summary / keyword list is kept, and rating / review count / address / distance
come from whichever record has the higher (review_count + rating).
"""

from __future__ import annotations

import math
import random
import re
from dataclasses import dataclass, replace

from services.api.community.config import (
    DISTANCE_SCORE_CAP_KM,
    DISTANCE_SCORE_WEIGHT,
    NONE_FOUND,
    get_category_display_limit,
)

_NONE_FOUND_MARKER = "(none found)"
_TRAILING_COMMENTARY = re.compile(r"\s+—\s+[^—]+$")


@dataclass
class ScoredPlace:
    name: str
    rating: float
    review_count: int
    address: str
    category: str
    summary: str | None = None
    keywords: list[str] | None = None
    place_id: str | None = None
    distance_km: float | None = None
    source_queries: list[str] | None = None


def score_place(place: ScoredPlace) -> float:
    distance_penalty = (
        min(place.distance_km, DISTANCE_SCORE_CAP_KM) * DISTANCE_SCORE_WEIGHT
        if place.distance_km is not None
        else 0.0
    )
    return math.log10(place.review_count + 1) * 10 + (place.rating or 0.0) - distance_penalty


def rank_places(places: list[ScoredPlace]) -> list[ScoredPlace]:
    """Highest composite score first. Stable for equal scores."""
    return sorted(places, key=score_place, reverse=True)


def dedupe_key(place: ScoredPlace) -> str:
    if place.place_id:
        return f"place:{place.place_id}"
    return re.sub(r"[^a-z0-9|]+", "", f"{place.name}|{place.address}".lower())


def _merge_into(existing: ScoredPlace, incoming: ScoredPlace) -> None:
    if incoming.summary and len(incoming.summary) > len(existing.summary or ""):
        existing.summary = incoming.summary
    if incoming.keywords and len(incoming.keywords) > len(existing.keywords or []):
        existing.keywords = list(incoming.keywords)
    if incoming.source_queries:
        merged = list(existing.source_queries or [])
        for query in incoming.source_queries:
            if query not in merged:
                merged.append(query)
        existing.source_queries = merged

    if incoming.review_count + incoming.rating > existing.review_count + existing.rating:
        existing.rating = incoming.rating
        existing.review_count = incoming.review_count
        if incoming.address:
            existing.address = incoming.address
        if incoming.distance_km is not None:
            existing.distance_km = incoming.distance_km
        if incoming.place_id:
            existing.place_id = incoming.place_id


def dedupe_places(places: list[ScoredPlace]) -> list[ScoredPlace]:
    """Collapse duplicates, preserving first-seen order. Inputs are not mutated."""
    seen: dict[str, ScoredPlace] = {}
    for place in places:
        key = dedupe_key(place)
        existing = seen.get(key)
        if existing is None:
            seen[key] = replace(
                place,
                keywords=list(place.keywords) if place.keywords else place.keywords,
                source_queries=list(place.source_queries) if place.source_queries else place.source_queries,
            )
            continue
        _merge_into(existing, place)
    return list(seen.values())


# ---------------------------------------------------------------------------
# Sampling
# ---------------------------------------------------------------------------

def sample_random(items: list, count: int, rng: random.Random | None = None) -> list:
    """Uniform sample without replacement; returns a copy when count covers everything."""
    if count <= 0:
        return []
    if len(items) <= count:
        return list(items)
    return (rng or random).sample(items, count)


def sample_from_pool(pool: list, count: int, rng: random.Random | None = None) -> list:
    """
    Tiered weighted random sample from a ranked pool.

    Tiers: top 20% / next 50% / bottom 30%. Roughly 60% of the draw comes from
    the top tier, 30% from the middle, the rest from the bottom; any shortfall
    is backfilled from whatever was not drawn. The result is shuffled so tier
    rank does not leak into presentation order.
    """
    rand = rng or random
    if len(pool) <= count:
        result = list(pool)
        rand.shuffle(result)
        return result
    if count <= 0:
        return []

    top_end = max(1, math.floor(len(pool) * 0.2))
    mid_end = max(top_end + 1, math.floor(len(pool) * 0.7))
    top_tier = pool[:top_end]
    mid_tier = pool[top_end:mid_end]
    bottom_tier = pool[mid_end:]

    top_count = min(math.ceil(count * 0.6), len(top_tier))
    mid_count = min(math.ceil(count * 0.3), len(mid_tier))
    bottom_count = min(count - top_count - mid_count, len(bottom_tier))

    sampled = (
        sample_random(top_tier, top_count, rng)
        + sample_random(mid_tier, mid_count, rng)
        + sample_random(bottom_tier, max(0, bottom_count), rng)
    )

    if len(sampled) < count:
        taken = {id(item) for item in sampled}
        remaining = [item for item in pool if id(item) not in taken]
        sampled.extend(sample_random(remaining, count - len(sampled), rng))

    result = sampled[:count]
    rand.shuffle(result)
    return result


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def format_place_line(place: ScoredPlace, include_keywords: bool) -> str:
    if place.summary:
        return f"- {place.name} — {place.summary}"
    if include_keywords and place.keywords:
        return f"- {place.name} — {', '.join(place.keywords)}"
    return f"- {place.name}"


def format_place_list(places: list[ScoredPlace], max_items: int, include_keywords: bool) -> str:
    if not places:
        return NONE_FOUND
    lines = [
        format_place_line(place, include_keywords)
        for place in rank_places(dedupe_places(places))[:max_items]
    ]
    return "\n".join(lines) if lines else NONE_FOUND


def build_neighborhood_detail_list(places: list[ScoredPlace]) -> str:
    if not places:
        return NONE_FOUND
    limit = get_category_display_limit("neighborhoods")
    lines = [f"- {place.name}" for place in rank_places(dedupe_places(places))[:limit]]
    return "\n".join(lines) if lines else NONE_FOUND


def is_empty_list(value: str | None) -> bool:
    return not value or not value.strip() or _NONE_FOUND_MARKER in value


def parse_list_lines(value: str | None) -> list[str]:
    if not value:
        return []
    return [
        line.strip()
        for line in value.split("\n")
        if line.strip() and _NONE_FOUND_MARKER not in line
    ]


def trim_list(value: str | None, max_items: int, strip_keywords: bool) -> str:
    """Keep the first max_items lines, optionally dropping trailing " — ..." commentary."""
    if not value:
        return NONE_FOUND
    lines = [line.strip() for line in value.split("\n") if line.strip()]
    if not lines:
        return NONE_FOUND
    if len(lines) == 1 and _NONE_FOUND_MARKER in lines[0]:
        return lines[0]

    trimmed = lines[:max_items]
    if strip_keywords:
        trimmed = [_TRAILING_COMMENTARY.sub("", line) for line in trimmed]
    return "\n".join(trimmed)


def count_list_items(value: str | None) -> int:
    return len(parse_list_lines(value))
