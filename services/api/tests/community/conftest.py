"""
Community test fixtures.

Provides:
- geo_index / austin: GeoIndex over the bundled cities sample and its Austin record
- cache: CommunityCache over FakeRedis
- make_place: Places API (New) searchText result dict
- make_scored: ScoredPlace factory
- drain_background: awaits every spawned background task
- MARCH: fixed "now" for month-sensitive code
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import pytest

from services.api.community.background import pending_tasks
from services.api.community.cache import CommunityCache
from services.api.community.geo import GeoIndex, LocationRecord
from services.api.community.places.scoring import ScoredPlace
from services.api.config import settings

MARCH = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)

# Downtown Austin
AUSTIN_LAT = 30.2672
AUSTIN_LNG = -97.7431


@pytest.fixture
def geo_index() -> GeoIndex:
    return GeoIndex.from_csv(settings.community_cities_dataset)


@pytest.fixture
def austin(geo_index) -> LocationRecord:
    location = geo_index.resolve("78701")
    assert location is not None
    return location


@pytest.fixture
def cache(fake_redis) -> CommunityCache:
    return CommunityCache(fake_redis, prefix="community", ttl_days=30)


def make_place(
    place_id: str,
    name: str,
    rating: float = 4.7,
    reviews: int = 500,
    lat: float = AUSTIN_LAT,
    lng: float = AUSTIN_LNG,
    address: str = "Austin, TX",
) -> dict[str, Any]:
    return {
        "id": place_id,
        "displayName": {"text": name, "languageCode": "en"},
        "formattedAddress": address,
        "location": {"latitude": lat, "longitude": lng},
        "rating": rating,
        "userRatingCount": reviews,
    }


def make_scored(
    name: str,
    rating: float = 4.5,
    review_count: int = 100,
    place_id: str | None = None,
    category: str = "dining",
    distance_km: float | None = None,
    **overrides: Any,
) -> ScoredPlace:
    return ScoredPlace(
        name=name,
        rating=rating,
        review_count=review_count,
        address=overrides.pop("address", f"{name} St"),
        category=category,
        place_id=place_id,
        distance_km=distance_km,
        **overrides,
    )


async def drain_background() -> None:
    tasks = pending_tasks()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
