"""
Multi-anchor place search fan-out and candidate filtering.

Each query is issued once per anchor (origin + SEARCH_ANCHOR_OFFSETS, deduped
at 4-decimal precision). Low-priority categories and seasonal headers search
from the origin only. Per-anchor cap: max(3, ceil(max_results / anchors)).

Candidates are then filtered in order:
  1. distance cap (MAX_PLACE_DISTANCE_KM from origin; unknown distance passes)
  2. neighborhoods_*: agency / facility terms and the city's own name rejected
  3. everything else: chain blacklist, then min rating / min reviews
     (per-query overrides replace the category thresholds)
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Callable

from services.api.community.config import (
    CHAIN_FILTER_CATEGORIES,
    CHAIN_NAME_BLACKLIST,
    DEFAULT_SEARCH_RADIUS_METERS,
    LOW_PRIORITY_ANCHOR_CATEGORIES,
    MAX_PLACE_DISTANCE_KM,
    NEIGHBORHOOD_REJECT_TERMS,
    QueryOverrides,
    get_category_min_rating,
    get_category_min_reviews,
)
from services.api.community.geo import DistanceCache, LocationRecord, ServiceAreaDistanceCache
from services.api.community.places.client import PlacesClient, display_name
from services.api.community.places.scoring import ScoredPlace
from services.api.community.seasonal import normalize_query_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchAnchor:
    lat: float
    lng: float


def get_search_anchors(
    location: LocationRecord, offsets: list[tuple[float, float]]
) -> list[SearchAnchor]:
    seen: set[str] = set()
    anchors: list[SearchAnchor] = []
    for d_lat, d_lng in offsets:
        anchor = SearchAnchor(location.lat + d_lat, location.lng + d_lng)
        key = f"{anchor.lat:.4f}:{anchor.lng:.4f}"
        if key in seen:
            continue
        seen.add(key)
        anchors.append(anchor)
    return anchors or [SearchAnchor(location.lat, location.lng)]


async def fetch_places_with_anchors(
    client: PlacesClient,
    query: str,
    location: LocationRecord,
    max_results: int,
    offsets: list[tuple[float, float]],
    category: str | None = None,
    force_single_anchor: bool = False,
) -> list[dict[str, Any]]:
    if force_single_anchor or (category and category in LOW_PRIORITY_ANCHOR_CATEGORIES):
        anchors = [SearchAnchor(location.lat, location.lng)]
    else:
        anchors = get_search_anchors(location, offsets)
    per_anchor_max = max(3, math.ceil(max_results / len(anchors)))

    results = await asyncio.gather(
        *[
            client.search_text(query, anchor.lat, anchor.lng, per_anchor_max, DEFAULT_SEARCH_RADIUS_METERS)
            for anchor in anchors
        ],
        return_exceptions=True,
    )
    places: list[dict[str, Any]] = []
    for anchor, batch in zip(anchors, results):
        if isinstance(batch, BaseException):
            logger.warning(
                "Places search failed for query=%r anchor=(%.4f, %.4f): %s",
                query, anchor.lat, anchor.lng, batch,
            )
            continue
        places.extend(batch)
    return places


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

def is_chain_place(name: str, category: str) -> bool:
    if category.startswith("neighborhoods") or category not in CHAIN_FILTER_CATEGORIES:
        return False
    normalized = name.lower()
    return any(term in normalized for term in CHAIN_NAME_BLACKLIST)


def _coordinates(place: dict[str, Any]) -> tuple[float, float] | None:
    loc = place.get("location")
    if not isinstance(loc, dict):
        return None
    lat, lng = loc.get("latitude"), loc.get("longitude")
    if lat is None or lng is None:
        return None
    return float(lat), float(lng)


def _passes_filters(
    place: dict[str, Any],
    name: str,
    category: str,
    city: str | None,
    overrides: QueryOverrides | None,
) -> bool:
    if category.startswith("neighborhoods"):
        lowered = name.lower()
        if any(term in lowered for term in NEIGHBORHOOD_REJECT_TERMS):
            return False
        return not (city and lowered.strip() == city.strip().lower())

    if is_chain_place(name, category):
        return False

    min_rating = (
        overrides.min_rating
        if overrides and overrides.min_rating is not None
        else get_category_min_rating(category)
    )
    min_reviews = (
        overrides.min_reviews
        if overrides and overrides.min_reviews is not None
        else get_category_min_reviews(category)
    )
    if min_rating > 0 and float(place.get("rating") or 0) < min_rating:
        return False
    if min_reviews > 0 and int(place.get("userRatingCount") or 0) < min_reviews:
        return False
    return True


def to_scored_places(
    places: list[dict[str, Any]] | None,
    category: str,
    distance_cache: DistanceCache,
    service_area_cache: ServiceAreaDistanceCache | None = None,
    overrides: QueryOverrides | None = None,
    source_query: str | None = None,
    city: str | None = None,
) -> list[ScoredPlace]:
    if not places:
        return []

    scored: list[ScoredPlace] = []
    for place in places:
        name = display_name(place)
        if not name:
            continue

        coords = _coordinates(place)
        primary = distance_cache.distance_km(*coords) if coords else None
        if primary is not None and primary > MAX_PLACE_DISTANCE_KM:
            continue
        if not _passes_filters(place, name, category, city, overrides):
            continue

        distance = primary
        if coords and service_area_cache is not None:
            service = service_area_cache.distance_km(*coords)
            if service is not None:
                distance = min(service, primary if primary is not None else service)

        scored.append(ScoredPlace(
            name=name,
            rating=float(place.get("rating") or 0.0),
            review_count=int(place.get("userRatingCount") or 0),
            address=str(place.get("formattedAddress") or ""),
            category=category,
            place_id=place.get("id") or None,
            distance_km=distance,
            source_queries=[source_query] if source_query else None,
        ))
    return scored


async def fetch_scored_places_for_queries(
    client: PlacesClient,
    queries: list[str],
    category: str,
    max_results: int,
    location: LocationRecord,
    distance_cache: DistanceCache,
    offsets: list[tuple[float, float]],
    seasonal_queries: set[str],
    service_area_cache: ServiceAreaDistanceCache | None = None,
    overrides_for_query: Callable[[str, str], QueryOverrides | None] | None = None,
) -> list[ScoredPlace]:
    """
    Run every query concurrently and flatten the filtered results.

    Only seasonal headers are recorded as a place's source query so that
    seasonal sections can be attributed back to the header that found them.
    """
    if not queries:
        return []

    async def _one(query: str) -> list[ScoredPlace]:
        source_query = query if normalize_query_key(query) in seasonal_queries else None
        try:
            raw = await fetch_places_with_anchors(
                client,
                query,
                location,
                max_results,
                offsets,
                category=category,
                force_single_anchor=source_query is not None,
            )
        except Exception:
            logger.exception("Community query failed category=%s query=%r", category, query)
            return []
        return to_scored_places(
            raw,
            category,
            distance_cache,
            service_area_cache,
            overrides_for_query(category, query) if overrides_for_query else None,
            source_query,
        )

    batches = await asyncio.gather(*[_one(query) for query in queries])
    return [place for batch in batches for place in batch]
