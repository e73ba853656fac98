"""
Place-search community data provider.

Base refresh for a zip:
  1. full CommunityData cache hit -> return it
  2. resolve location (None -> None), build distance caches
  3. pick 4 seasonal categories (seed "<zip>:<month>:base")
  4. per-category list cache and neighborhood list cache decide what to fetch
  5. fetch missing categories through the month-stale pools, concurrently
  6. format + persist non-empty lists, build seasonal sections, neighborhoods
  7. write the full cache unless the caller opted out

A category that fails upstream renders "- (none found)" without affecting its
siblings.
"""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timezone
from typing import Awaitable

from services.api.community.cache import CommunityCache
from services.api.community.city_description import CityDescriptionService
from services.api.community.config import (
    CATEGORY_FIELD_MAP,
    NEIGHBORHOOD_QUERIES,
    NON_NEIGHBORHOOD_CATEGORY_KEYS,
    NONE_FOUND,
    SEARCH_ANCHOR_OFFSETS,
    NeighborhoodQuery,
    get_category_display_limit,
    get_category_fallback_queries,
    get_category_max_per_query,
    get_query_overrides,
    normalize_audience_segment,
    should_include_service_areas_in_cache,
)
from services.api.community.geo import (
    GeoIndex,
    GeoRuntimeContext,
    LocationRecord,
    build_geo_runtime_context,
    resolve_location_or_warn,
)
from services.api.community.lists import (
    apply_audience_delta,
    build_audience_community_data,
    get_audience_skip_categories,
    trim_community_data_lists,
)
from services.api.community.models import CommunityData, FetchOptions
from services.api.community.places.audience import build_audience_augment_delta
from services.api.community.places.client import PlacesClient
from services.api.community.places.pools import PoolRequest, get_pooled_category_places, hydrate_pool_selection
from services.api.community.places.scoring import (
    ScoredPlace,
    build_neighborhood_detail_list,
    format_place_list,
    is_empty_list,
)
from services.api.community.places.search import (
    fetch_places_with_anchors,
    fetch_scored_places_for_queries,
    get_search_anchors,
    to_scored_places,
)
from services.api.community.seasonal import (
    build_seasonal_queries,
    build_seasonal_query_sections,
    estimate_search_calls_for_queries,
    get_utc_month_key,
    pick_seasonal_categories,
)

logger = logging.getLogger(__name__)


async def _isolated(label: str, work: Awaitable[list[ScoredPlace]]) -> list[ScoredPlace]:
    try:
        return await work
    except Exception:
        logger.exception("Community fetch failed for %s; rendering as none found", label)
        return []


class GooglePlacesProvider:
    """
    Usage:
        provider = GooglePlacesProvider(places_client, cache, geo_index, city_descriptions)
        data = await provider.get_community_data_by_zip("78701")
        data = await provider.get_community_data_by_zip_and_audience("78701", "growing_families")
    """

    name = "google"

    def __init__(
        self,
        client: PlacesClient,
        cache: CommunityCache,
        geo: GeoIndex,
        city_descriptions: CityDescriptionService | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._client = client
        self._cache = cache
        self._geo = geo
        self._city_descriptions = city_descriptions
        self._rng = rng

    # -- base ----------------------------------------------------------------

    async def get_community_data_by_zip(
        self,
        zip_code: str,
        service_areas: list[str] | None = None,
        preferred_city: str | None = None,
        preferred_state: str | None = None,
        options: FetchOptions | None = None,
        now: datetime | None = None,
    ) -> CommunityData | None:
        if not zip_code:
            return None

        cached = await self._cache.get_community_data(zip_code, preferred_city, preferred_state)
        if cached is not None:
            return cached

        options = options or FetchOptions()
        location = resolve_location_or_warn(self._geo, zip_code, preferred_city, preferred_state)
        if location is None:
            return None
        geo = build_geo_runtime_context(location, service_areas, self._geo)

        month = get_utc_month_key(now)
        allowed = set(pick_seasonal_categories(f"{zip_code}:{month}:base", NON_NEIGHBORHOOD_CATEGORY_KEYS, 4))
        used_headers: set[str] = set()
        logger.info(
            "Selected seasonal categories for base refresh zip=%s month=%s categories=%s",
            zip_code, month, sorted(allowed),
        )

        cached_lists: dict[str, str] = {}
        categories_to_fetch: list[str] = []
        for category in NON_NEIGHBORHOOD_CATEGORY_KEYS:
            if category in options.skip_categories:
                continue
            value = await self._cache.get_category_list(zip_code, category, preferred_city, preferred_state)
            if value and not is_empty_list(value):
                cached_lists[category] = value
            else:
                categories_to_fetch.append(category)

        cached_neighborhoods: dict[str, str] = {}
        neighborhoods_to_fetch: list[NeighborhoodQuery] = []
        for neighborhood in NEIGHBORHOOD_QUERIES:
            value = await self._cache.get_category_list(
                zip_code, neighborhood.key, preferred_city, preferred_state
            )
            if value and not is_empty_list(value):
                cached_neighborhoods[neighborhood.key] = value
            else:
                neighborhoods_to_fetch.append(neighborhood)

        plans: list[tuple[str, list[str], set[str]]] = []
        for category in categories_to_fetch:
            queries, seasonal_keys = build_seasonal_queries(
                location.state,
                category,
                get_category_fallback_queries(category),
                now,
                allowed,
                used_headers,
                self._rng,
            )
            plans.append((category, queries, seasonal_keys))

        if categories_to_fetch or neighborhoods_to_fetch:
            anchor_count = len(get_search_anchors(location, SEARCH_ANCHOR_OFFSETS))
            search_calls = len(neighborhoods_to_fetch) * anchor_count + sum(
                estimate_search_calls_for_queries(category, queries, seasonal_keys, anchor_count)
                for category, queries, seasonal_keys in plans
            )
            details_calls = sum(get_category_display_limit(category) for category in categories_to_fetch)
            logger.info(
                "Community base refresh zip=%s cached=%s fetching=%s skipped=%s "
                "estimated_search_calls=%d estimated_details_calls=%d",
                zip_code,
                sorted(cached_lists),
                categories_to_fetch,
                sorted(options.skip_categories),
                search_calls,
                details_calls,
            )

        category_results = await asyncio.gather(*[
            _isolated(
                f"zip={zip_code} category={category}",
                self._fetch_category(
                    zip_code, category, queries, seasonal_keys, location, geo,
                    service_areas, preferred_city, preferred_state, now,
                ),
            )
            for category, queries, seasonal_keys in plans
        ])
        neighborhood_results = await asyncio.gather(*[
            _isolated(
                f"zip={zip_code} {neighborhood.key}",
                self._fetch_neighborhoods(neighborhood, location, geo),
            )
            for neighborhood in neighborhoods_to_fetch
        ])

        grouped: dict[str, list[ScoredPlace]] = {}
        for (category, _, _), places in zip(plans, category_results):
            grouped[category] = places
        for neighborhood, places in zip(neighborhoods_to_fetch, neighborhood_results):
            grouped[neighborhood.key] = places

        list_map = dict(cached_lists)
        for category in categories_to_fetch:
            value = format_place_list(grouped.get(category, []), get_category_display_limit(category), True)
            if is_empty_list(value):
                continue
            list_map[category] = value
            await self._cache.set_category_list(zip_code, category, value, preferred_city, preferred_state)

        seasonal_sections = await self._cache.get_seasonal_sections(
            zip_code, month, preferred_city, preferred_state
        )
        if seasonal_sections is None:
            seasonal_sections = build_seasonal_query_sections(grouped, 3, 3, self._rng)
            if seasonal_sections:
                await self._cache.set_seasonal_sections(
                    zip_code, month, seasonal_sections, preferred_city, preferred_state, now=now
                )

        neighborhood_lists: dict[str, str] = {}
        for neighborhood in NEIGHBORHOOD_QUERIES:
            value = cached_neighborhoods.get(neighborhood.key)
            if value is None:
                value = build_neighborhood_detail_list(grouped.get(neighborhood.key, []))
                if not is_empty_list(value):
                    await self._cache.set_category_list(
                        zip_code, neighborhood.key, value, preferred_city, preferred_state
                    )
            neighborhood_lists[neighborhood.key] = value

        fields: dict[str, str] = {
            CATEGORY_FIELD_MAP[category]: (
                NONE_FOUND if category in options.skip_categories else list_map.get(category, NONE_FOUND)
            )
            for category in NON_NEIGHBORHOOD_CATEGORY_KEYS
        }
        general = neighborhood_lists["neighborhoods_general"]
        family = neighborhood_lists["neighborhoods_family"]
        data = CommunityData(
            city=location.city,
            state=location.state,
            zip_code=zip_code,
            data_timestamp=now or datetime.now(timezone.utc),
            neighborhoods_list=general,
            neighborhoods_family_list=family,
            neighborhoods_luxury_list=family,
            neighborhoods_senior_list=neighborhood_lists["neighborhoods_senior"],
            neighborhoods_relocators_list=general,
            seasonal_geo_sections=seasonal_sections,
            **fields,
        )

        if options.write_cache:
            await self._cache.set_community_data(zip_code, data, preferred_city, preferred_state)
        return data

    async def _fetch_category(
        self,
        zip_code: str,
        category: str,
        queries: list[str],
        seasonal_keys: set[str],
        location: LocationRecord,
        geo: GeoRuntimeContext,
        service_areas: list[str] | None,
        preferred_city: str | None,
        preferred_state: str | None,
        now: datetime | None,
    ) -> list[ScoredPlace]:
        async def fetch_fn() -> list[ScoredPlace]:
            return await fetch_scored_places_for_queries(
                self._client,
                queries,
                category,
                get_category_max_per_query(category),
                location,
                geo.distance_cache,
                SEARCH_ANCHOR_OFFSETS,
                seasonal_keys,
                geo.service_area_cache,
                overrides_for_query=get_query_overrides,
            )

        request = PoolRequest(
            zip_code=zip_code,
            category=category,
            service_areas=service_areas if should_include_service_areas_in_cache(category) else None,
            city=preferred_city,
            state=preferred_state,
        )
        selection = await get_pooled_category_places(self._cache, request, fetch_fn, now=now, rng=self._rng)
        return await hydrate_pool_selection(self._client, self._cache, selection, category)

    async def _fetch_neighborhoods(
        self, neighborhood: NeighborhoodQuery, location: LocationRecord, geo: GeoRuntimeContext
    ) -> list[ScoredPlace]:
        raw = await fetch_places_with_anchors(
            self._client, neighborhood.query, location, neighborhood.max_results, SEARCH_ANCHOR_OFFSETS
        )
        return to_scored_places(raw, neighborhood.key, geo.distance_cache, city=location.city)

    # -- audience ------------------------------------------------------------

    async def get_community_data_by_zip_and_audience(
        self,
        zip_code: str,
        audience: str | None = None,
        service_areas: list[str] | None = None,
        preferred_city: str | None = None,
        preferred_state: str | None = None,
        now: datetime | None = None,
    ) -> CommunityData | None:
        normalized = normalize_audience_segment(audience)
        if normalized is None:
            return await self.get_community_data_by_zip(
                zip_code, service_areas, preferred_city, preferred_state, now=now
            )

        delta = await self._cache.get_audience_delta(
            zip_code, normalized, service_areas, preferred_city, preferred_state
        )
        if delta is None:
            location = resolve_location_or_warn(
                self._geo, zip_code, preferred_city, preferred_state, normalized
            )
            if location is not None:
                delta = await build_audience_augment_delta(
                    self._client,
                    self._cache,
                    location,
                    normalized,
                    build_geo_runtime_context(location, service_areas, self._geo),
                    zip_code,
                    service_areas,
                    preferred_city,
                    preferred_state,
                    now=now,
                    rng=self._rng,
                )
                if delta:
                    await self._cache.set_audience_delta(
                        zip_code, normalized, delta, service_areas, preferred_city, preferred_state
                    )

        skip = get_audience_skip_categories(delta)
        base = await self.get_community_data_by_zip(
            zip_code,
            service_areas,
            preferred_city,
            preferred_state,
            options=FetchOptions(skip_categories=frozenset(skip), write_cache=not skip),
            now=now,
        )
        if base is None:
            return None

        merged = apply_audience_delta(base, delta) if delta else base
        return build_audience_community_data(trim_community_data_lists(merged), normalized)

    # -- city description ----------------------------------------------------

    async def get_city_description(self, city: str | None, state: str | None) -> str | None:
        if self._city_descriptions is None:
            return None
        return await self._city_descriptions.get(city, state)
