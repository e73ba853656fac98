"""
Month-stale place pools and details hydration.

A pool is the full ranked candidate set for one (zip, category, audience,
service-area signature, city, state) key, persisted as [{place_id,
source_queries}] plus fetched_at. Reads sample from it with the tiered
weighted sampler, never a plain top-N.

Freshness is calendar based: a pool is fresh for the rest of the UTC month it
was fetched in, however little time that is. On a stale read the stale pool is
served once while a detached task rebuilds it. Concurrent stale reads may both
spawn a refresh; the last write wins.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable

from services.api.community.background import spawn_background
from services.api.community.cache import CommunityCache
from services.api.community.config import get_category_display_limit, get_category_pool_max
from services.api.community.models import CachedPlacePool, CachedPoolItem
from services.api.community.places.client import PlacesClient, display_name, generative_summary
from services.api.community.places.scoring import (
    ScoredPlace,
    dedupe_places,
    rank_places,
    sample_from_pool,
)

logger = logging.getLogger(__name__)

_GENERIC_PLACE_TYPES = frozenset({"point_of_interest", "establishment", "food", "store"})

FetchFn = Callable[[], Awaitable[list[ScoredPlace]]]


def is_pool_stale(fetched_at: datetime | str | None, now: datetime | None = None) -> bool:
    """True when fetched_at falls in an earlier (or later) UTC calendar month than now."""
    if fetched_at is None:
        return True
    if isinstance(fetched_at, str):
        try:
            fetched_at = datetime.fromisoformat(fetched_at.replace("Z", "+00:00"))
        except ValueError:
            return True
    if fetched_at.tzinfo is None:
        fetched_at = fetched_at.replace(tzinfo=timezone.utc)
    current = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    fetched = fetched_at.astimezone(timezone.utc)
    return (fetched.year, fetched.month) != (current.year, current.month)


@dataclass(frozen=True)
class PoolRequest:
    zip_code: str
    category: str
    audience: str | None = None
    service_areas: list[str] | None = None
    city: str | None = None
    state: str | None = None


@dataclass
class PoolSelection:
    """Sampled pool items, plus full records for any place fetched in this call."""

    items: list[CachedPoolItem]
    known: dict[str, ScoredPlace] = field(default_factory=dict)
    from_cache: bool = False


def build_pool_items(places: list[ScoredPlace], pool_max: int) -> list[ScoredPlace]:
    ranked = rank_places(dedupe_places(places))
    return [place for place in ranked if place.place_id][:pool_max]


def _to_items(places: list[ScoredPlace]) -> list[CachedPoolItem]:
    return [
        CachedPoolItem(place_id=place.place_id, source_queries=place.source_queries)
        for place in places
        if place.place_id
    ]


async def _write_pool(
    cache: CommunityCache,
    request: PoolRequest,
    places: list[ScoredPlace],
    now: datetime | None,
) -> None:
    await cache.set_place_pool(
        request.zip_code,
        request.category,
        _to_items(places),
        audience=request.audience,
        service_areas=request.service_areas,
        city=request.city,
        state=request.state,
        now=now,
    )


async def refresh_pool(
    cache: CommunityCache,
    request: PoolRequest,
    fetch_fn: FetchFn,
    now: datetime | None = None,
) -> list[ScoredPlace]:
    places = build_pool_items(await fetch_fn(), get_category_pool_max(request.category))
    if places:
        await _write_pool(cache, request, places, now)
    logger.info(
        "Refreshed place pool zip=%s category=%s audience=%s size=%d",
        request.zip_code, request.category, request.audience, len(places),
    )
    return places


async def get_pooled_category_places(
    cache: CommunityCache,
    request: PoolRequest,
    fetch_fn: FetchFn,
    count: int | None = None,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> PoolSelection:
    """
    Sample `count` (default: category display limit) items from the pool.

    Categories with pool_max <= 0 are not pooled: they are fetched, ranked and
    returned directly without a cache write.
    """
    sample_count = count if count is not None else get_category_display_limit(request.category)
    pool_max = get_category_pool_max(request.category)

    if pool_max <= 0:
        places = rank_places(dedupe_places(await fetch_fn()))[:sample_count]
        return PoolSelection(
            items=_to_items(places),
            known={place.place_id: place for place in places if place.place_id},
        )

    cached: CachedPlacePool | None = await cache.get_place_pool(
        request.zip_code,
        request.category,
        audience=request.audience,
        service_areas=request.service_areas,
        city=request.city,
        state=request.state,
    )
    if cached is not None and cached.items:
        if is_pool_stale(cached.fetched_at, now):
            logger.info(
                "Serving stale place pool zip=%s category=%s; refreshing in background",
                request.zip_code, request.category,
            )
            spawn_background(
                refresh_pool(cache, request, fetch_fn),
                name=f"pool-refresh-{request.zip_code}-{request.category}",
            )
        return PoolSelection(
            items=sample_from_pool(cached.items, sample_count, rng),
            from_cache=True,
        )

    places = build_pool_items(await fetch_fn(), pool_max)
    if places:
        await _write_pool(cache, request, places, now)
    sampled = sample_from_pool(places, sample_count, rng)
    return PoolSelection(
        items=_to_items(sampled),
        known={place.place_id: place for place in sampled},
    )


# ---------------------------------------------------------------------------
# Hydration
# ---------------------------------------------------------------------------

def _keywords_from_types(details: dict) -> list[str] | None:
    types = details.get("types")
    if not isinstance(types, list):
        return None
    keywords = [
        str(value).replace("_", " ")
        for value in types
        if isinstance(value, str) and value not in _GENERIC_PLACE_TYPES
    ]
    return keywords[:3] or None


async def get_place_details_cached(
    client: PlacesClient, cache: CommunityCache, place_id: str
) -> dict | None:
    cached = await cache.get_place_details(place_id)
    if cached is not None:
        return cached
    details = await client.place_details(place_id)
    if details:
        await cache.set_place_details(place_id, details)
    return details


async def hydrate_pool_selection(
    client: PlacesClient,
    cache: CommunityCache,
    selection: PoolSelection,
    category: str,
) -> list[ScoredPlace]:
    """
    Turn sampled pool items into ScoredPlaces with summaries.

    Places fetched in this call keep their search data; details supply the
    generative summary and any fields a cached pool does not carry.
    """
    details_list = await asyncio.gather(*[
        get_place_details_cached(client, cache, item.place_id) for item in selection.items
    ])
    hydrated: list[ScoredPlace] = []
    for item, details in zip(selection.items, details_list):
        known = selection.known.get(item.place_id)
        if known is None and not details:
            continue

        if known is not None:
            place = ScoredPlace(
                name=known.name,
                rating=known.rating,
                review_count=known.review_count,
                address=known.address,
                category=category,
                place_id=item.place_id,
                distance_km=known.distance_km,
                source_queries=item.source_queries,
            )
        else:
            name = display_name(details)
            if not name:
                continue
            place = ScoredPlace(
                name=name,
                rating=float(details.get("rating") or 0.0),
                review_count=int(details.get("userRatingCount") or 0),
                address=str(details.get("formattedAddress") or ""),
                category=category,
                place_id=item.place_id,
                source_queries=item.source_queries,
            )

        if details:
            place.summary = generative_summary(details)
            place.keywords = _keywords_from_types(details)
        hydrated.append(place)
    return hydrated
