"""
Community data value objects.

CommunityData is the unit handed to callers: one formatted bulleted list per
category (or the "- (none found)" sentinel) plus extra seasonal sections keyed
by the query header that produced them. Instances are frozen; merges return a
new object via model_copy(update=...).

CommunityCategoryPayload / PlaceItem are the structured-text provider's parsed
shape and are cached verbatim as JSON. CachedPlacePool is the persisted
projection of a ranked place-search candidate set.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from services.api.community.config import NONE_FOUND


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CommunityData(BaseModel):
    model_config = ConfigDict(frozen=True)

    city: str
    state: str
    zip_code: str
    data_timestamp: datetime = Field(default_factory=_utcnow)

    neighborhoods_list: str = NONE_FOUND
    neighborhoods_family_list: str = NONE_FOUND
    neighborhoods_luxury_list: str = NONE_FOUND
    neighborhoods_senior_list: str = NONE_FOUND
    neighborhoods_relocators_list: str = NONE_FOUND

    dining_list: str = NONE_FOUND
    coffee_brunch_list: str = NONE_FOUND
    nature_outdoors_list: str = NONE_FOUND
    shopping_list: str = NONE_FOUND
    entertainment_list: str = NONE_FOUND
    arts_culture_list: str = NONE_FOUND
    attractions_list: str = NONE_FOUND
    sports_rec_list: str = NONE_FOUND
    nightlife_social_list: str = NONE_FOUND
    fitness_wellness_list: str = NONE_FOUND
    education_list: str = NONE_FOUND
    community_events_list: str = NONE_FOUND

    seasonal_geo_sections: dict[str, str] = Field(default_factory=dict)

    def get_list(self, field_name: str) -> str | None:
        value = getattr(self, field_name, None)
        return value if isinstance(value, str) else None


class FetchOptions(BaseModel):
    """Base fetch knobs used by the audience path."""

    model_config = ConfigDict(frozen=True)

    skip_categories: frozenset[str] = frozenset()
    write_cache: bool = True


class Citation(BaseModel):
    title: str | None = None
    url: str | None = None
    source: str | None = None


class PlaceItem(BaseModel):
    name: str
    location: str | None = None
    drive_distance_minutes: int | None = None
    dates: str | None = None
    description: str | None = None
    cost: str | None = None
    why_suitable_for_audience: str | None = None
    cuisine: list[str] | None = None
    disclaimer: str | None = None
    citations: list[Citation] | None = None


class CommunityCategoryPayload(BaseModel):
    provider: str = "perplexity"
    category: str
    audience: str | None = None
    zip_code: str
    city: str | None = None
    state: str | None = None
    fetched_at: datetime = Field(default_factory=_utcnow)
    items: list[PlaceItem] = Field(default_factory=list)


class CachedPoolItem(BaseModel):
    place_id: str
    source_queries: list[str] | None = None


class CachedPlacePool(BaseModel):
    items: list[CachedPoolItem] = Field(default_factory=list)
    fetched_at: datetime
    query_count: int = 0


class EventsSection(BaseModel):
    """Monthly "things to do" section: key is things_to_do_<month>."""

    key: str
    value: str
