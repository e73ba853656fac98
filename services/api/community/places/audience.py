"""
Audience augmentation delta builder.

For each augmentable category, audience-specific queries run first (padded
with category fallback queries up to the category's target query count). When
the deduped primary results come back under the category's minimum, the
fallback queries run too and their results are appended after the primary
ones. The pooled, sampled, hydrated result becomes the category's delta entry.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime

from services.api.community.cache import CommunityCache
from services.api.community.config import (
    AUDIENCE_AUGMENT_CATEGORIES,
    SEARCH_ANCHOR_OFFSETS,
    get_audience_augment_limit,
    get_audience_augment_queries,
    get_category_display_limit,
    get_category_fallback_queries,
    get_category_min_primary_results,
    get_category_target_query_count,
    get_query_overrides,
)
from services.api.community.geo import GeoRuntimeContext, LocationRecord
from services.api.community.places.client import PlacesClient
from services.api.community.places.pools import PoolRequest, get_pooled_category_places, hydrate_pool_selection
from services.api.community.places.scoring import ScoredPlace, dedupe_places, format_place_list, is_empty_list
from services.api.community.places.search import fetch_scored_places_for_queries, get_search_anchors
from services.api.community.seasonal import (
    build_seasonal_queries,
    estimate_search_calls_for_queries,
    get_utc_month_key,
    merge_unique_queries,
    pick_seasonal_categories,
)

logger = logging.getLogger(__name__)


def combine_audience_queries(audience_queries: list[str], category: str) -> list[str]:
    fallback = get_category_fallback_queries(category)
    target = get_category_target_query_count(category)
    if not audience_queries:
        return fallback[:target]
    if len(audience_queries) < target:
        return merge_unique_queries(audience_queries, fallback[: target - len(audience_queries)])
    return list(audience_queries)


async def build_audience_augment_delta(
    client: PlacesClient,
    cache: CommunityCache,
    location: LocationRecord,
    audience: str,
    geo: GeoRuntimeContext,
    zip_code: str,
    service_areas: list[str] | None = None,
    preferred_city: str | None = None,
    preferred_state: str | None = None,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> dict[str, str]:
    queries_by_category = get_audience_augment_queries(audience)
    if not queries_by_category:
        return {}

    month = get_utc_month_key(now)
    seasonal_categories = pick_seasonal_categories(
        f"{zip_code}:{audience}:{month}:aud", AUDIENCE_AUGMENT_CATEGORIES, 4
    )
    allowed = set(seasonal_categories)
    used_headers: set[str] = set()
    anchor_count = len(get_search_anchors(location, SEARCH_ANCHOR_OFFSETS))
    logger.info(
        "Selected seasonal categories for audience delta zip=%s audience=%s month=%s categories=%s",
        zip_code, audience, month, seasonal_categories,
    )

    delta: dict[str, str] = {}
    search_calls = 0
    details_calls = 0
    fetched: list[str] = []

    for category in AUDIENCE_AUGMENT_CATEGORIES:
        fallback_queries = get_category_fallback_queries(category)
        combined = combine_audience_queries(queries_by_category.get(category, []), category)
        queries, seasonal_keys = build_seasonal_queries(
            location.state, category, combined, now, allowed, used_headers, rng
        )
        if not queries:
            continue
        if seasonal_keys:
            logger.info(
                "Audience seasonal queries zip=%s audience=%s category=%s queries=%s",
                zip_code, audience, category, sorted(seasonal_keys),
            )

        search_calls += estimate_search_calls_for_queries(category, queries, seasonal_keys, anchor_count)
        details_calls += get_category_display_limit(category)
        max_per_query = get_audience_augment_limit(audience, category)

        async def fetch_audience_places(
            category: str = category,
            queries: list[str] = queries,
            seasonal_keys: set[str] = seasonal_keys,
            fallback_queries: list[str] = fallback_queries,
            max_per_query: int = max_per_query,
        ) -> list[ScoredPlace]:
            places = await fetch_scored_places_for_queries(
                client, queries, category, max_per_query, location,
                geo.distance_cache, SEARCH_ANCHOR_OFFSETS, seasonal_keys,
                geo.service_area_cache,
            )
            min_primary = get_category_min_primary_results(category)
            if (min_primary <= 0 or len(dedupe_places(places)) < min_primary) and fallback_queries:
                places = places + await fetch_scored_places_for_queries(
                    client, fallback_queries, category, max_per_query, location,
                    geo.distance_cache, SEARCH_ANCHOR_OFFSETS, seasonal_keys,
                    geo.service_area_cache, overrides_for_query=get_query_overrides,
                )
            return places

        try:
            selection = await get_pooled_category_places(
                cache,
                PoolRequest(
                    zip_code=zip_code,
                    category=category,
                    audience=audience,
                    service_areas=service_areas,
                    city=preferred_city,
                    state=preferred_state,
                ),
                fetch_audience_places,
                now=now,
                rng=rng,
            )
            if not selection.from_cache:
                fetched.append(category)
            places = await hydrate_pool_selection(client, cache, selection, category)
        except Exception:
            logger.exception(
                "Audience delta failed zip=%s audience=%s category=%s; skipping",
                zip_code, audience, category,
            )
            continue

        formatted = format_place_list(places, len(places), True)
        if not is_empty_list(formatted):
            delta[category] = formatted

    if fetched:
        logger.info(
            "Community audience refresh estimated calls zip=%s audience=%s fetched=%s search=%d details=%d",
            zip_code, audience, fetched, search_calls, details_calls,
        )
    return delta
