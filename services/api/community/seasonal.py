"""
Seasonal query planner.

For a category and the current UTC month, blends at most one seasonal header
(drawn from the holiday pack and the state's regional pack) ahead of the
category's baseline queries. A per-batch `used_headers` set keeps the same
header from being drawn for two categories in one aggregation run.

Which categories get seasonal treatment at all is decided once per run with a
seeded, hash-based shuffle so the choice is stable for a (zip, month, scope)
key and varies across zips:

    seed = "<zip>:<month>:base"                 base refresh
    seed = "<zip>:<audience>:<month>:aud"       audience delta

Shuffle: SHA-1 of the seed gives 40 hex chars. Walking i from n-1 down to 1,
each step consumes the next 8-hex slice (wrapping around the digest) as an
unsigned int r and swaps positions i and r % (i + 1). If a slice comes up short,
the first 8 hex chars of SHA-1("<seed>:<i>") are used instead.
"""

from __future__ import annotations

import hashlib
import random
from datetime import datetime, timezone

from services.api.community.config import LOW_PRIORITY_ANCHOR_CATEGORIES, get_region_for_state
from services.api.community.places.scoring import ScoredPlace, format_place_list, is_empty_list, sample_random
from services.api.community.query_packs import GEO_SEASON_QUERY_PACK, HOLIDAY_QUERY_PACK, MONTH_KEYS


def get_utc_month_key(now: datetime | None = None) -> str:
    """Lowercase English month name for the UTC month of `now`."""
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return MONTH_KEYS[moment.month - 1]


def normalize_query_key(query: str) -> str:
    return query.lower().strip()


def merge_unique_queries(base: list[str], additions: list[str]) -> list[str]:
    """Order-preserving, case-insensitive union."""
    seen: set[str] = set()
    merged: list[str] = []
    for query in [*base, *additions]:
        key = normalize_query_key(query)
        if not key or key in seen:
            continue
        seen.add(key)
        merged.append(query)
    return merged


def build_seasonal_queries(
    state: str,
    category: str,
    queries: list[str],
    now: datetime | None = None,
    allowed_categories: set[str] | None = None,
    used_headers: set[str] | None = None,
    rng: random.Random | None = None,
) -> tuple[list[str], set[str]]:
    """
    Returns (combined_queries, seasonal_query_keys).

    The chosen header (if any) is recorded in `used_headers` and leads the
    combined list. Categories outside `allowed_categories` pass through untouched.
    """
    if allowed_categories is not None and category not in allowed_categories:
        return list(queries), set()

    month = get_utc_month_key(now)
    region = get_region_for_state(state)
    holiday = HOLIDAY_QUERY_PACK.get(category, {}).get(month, [])
    geo = (
        GEO_SEASON_QUERY_PACK.get(category, {}).get(region, {}).get(month, [])
        if region
        else []
    )

    seasonal = merge_unique_queries(holiday, geo)
    if used_headers is not None:
        seasonal = [q for q in seasonal if normalize_query_key(q) not in used_headers]

    chosen = sample_random(seasonal, 1, rng) if len(seasonal) > 1 else seasonal
    if used_headers is not None and chosen:
        used_headers.add(normalize_query_key(chosen[0]))

    combined = merge_unique_queries(chosen, queries)
    return combined, {normalize_query_key(q) for q in chosen}


def seeded_shuffle(values: list, seed: str) -> list:
    digest = hashlib.sha1(seed.encode("utf-8")).hexdigest()
    result = list(values)
    seed_index = 0
    for i in range(len(result) - 1, 0, -1):
        chunk = digest[seed_index:seed_index + 8]
        if len(chunk) != 8:
            chunk = hashlib.sha1(f"{seed}:{i}".encode("utf-8")).hexdigest()[:8]
        seed_index = (seed_index + 8) % len(digest)
        j = int(chunk, 16) % (i + 1)
        result[i], result[j] = result[j], result[i]
    return result


def pick_seasonal_categories(seed: str, categories: list[str], count: int) -> list[str]:
    if len(categories) <= count:
        return list(categories)
    return seeded_shuffle(categories, seed)[:count]


def estimate_search_calls_for_queries(
    category: str,
    queries: list[str],
    seasonal_queries: set[str],
    anchor_count: int,
) -> int:
    """Upstream search calls a query list will cost (seasonal queries use one anchor)."""
    base_anchors = 1 if category in LOW_PRIORITY_ANCHOR_CATEGORIES else anchor_count
    return sum(
        1 if normalize_query_key(query) in seasonal_queries else base_anchors
        for query in queries
    )


def build_seasonal_query_sections(
    grouped: dict[str, list[ScoredPlace]],
    max_per_query: int,
    max_headers: int,
    rng: random.Random | None = None,
) -> dict[str, str]:
    """Group places by the seasonal header that produced them into extra sections."""
    by_query: dict[str, tuple[str, list[ScoredPlace]]] = {}
    for places in grouped.values():
        for place in places:
            for query in place.source_queries or []:
                key = normalize_query_key(query)
                if key in by_query:
                    by_query[key][1].append(place)
                else:
                    by_query[key] = (query, [place])

    sections: dict[str, str] = {}
    for query, places in sample_random(list(by_query.values()), max_headers, rng):
        value = format_place_list(places, max_per_query, True)
        if is_empty_list(value):
            continue
        sections[query] = value
    return sections
