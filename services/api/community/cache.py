"""
Community cache — Redis-backed, best-effort.

Key formats (<base> = <prefix>:<zip> or <prefix>:<zip>:<STATE>:<city-slug>):

  community data       <base>
  category list        <base>:list:<category>
  seasonal sections    <base>:seasonal:<month>
  audience delta       <base>:aud:<audience>[:sa:<hash>]
  place pool           <prefix>:pool:<zip>[:<STATE>:<city-slug>]:<category>[:<audience>][:sa:<hash>]
  place details        <prefix>:place:<place_id>
  LLM category         <prefix>:perplexity:<zip>[:<STATE>:<city-slug>]:cat:<category>[:aud:<audience>][:sa:<hash>]
  LLM monthly events   <prefix>:perplexity:<zip>[:<STATE>:<city-slug>]:things_to_do:<month>[:aud:<audience>]
  city description     <prefix>:citydesc:<STATE>:<city-slug>

<hash> is the first 12 hex chars of SHA-1 over the sorted, lowercased,
trimmed service-area names joined with "|".

TTLs:
  LLM category payloads   90 days
  LLM monthly events      until the end of the current UTC month
  audience deltas         12 hours
  place pools             until the end of the month + the configured TTL, so a
                          month-stale pool is still readable while it refreshes
  everything else         configured TTL (default 30 days)

Every Redis call is wrapped: errors are logged and behave as a miss. A None
client disables the cache entirely.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
import re
import unicodedata
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from services.api.community.config import should_include_service_areas_in_cache
from services.api.community.models import (
    CachedPlacePool,
    CachedPoolItem,
    CommunityCategoryPayload,
    CommunityData,
)

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "community"

CATEGORY_PAYLOAD_TTL_SECONDS = 60 * 60 * 24 * 90
AUDIENCE_DELTA_TTL_SECONDS = 60 * 60 * 12
PLACE_DETAILS_TTL_SECONDS = 60 * 60 * 24 * 30


def slugify(value: str) -> str:
    """ASCII slug for Redis keys: 'São Paulo' -> 'sao-paulo'."""
    normalised = unicodedata.normalize("NFKD", value)
    ascii_str = normalised.encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_str.lower()).strip("-")
    return slug or "unknown"


def service_areas_signature(service_areas: list[str] | None) -> str | None:
    if not service_areas:
        return None
    normalized = sorted(value.strip().lower() for value in service_areas if value and value.strip())
    if not normalized:
        return None
    return hashlib.sha1("|".join(normalized).encode("utf-8")).hexdigest()[:12]


def seconds_until_end_of_month(now: datetime | None = None) -> int:
    moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    if moment.month == 12:
        boundary = datetime(moment.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        boundary = datetime(moment.year, moment.month + 1, 1, tzinfo=timezone.utc)
    return max(60, math.ceil((boundary - moment).total_seconds()))


# ---------------------------------------------------------------------------
# Key builders
# ---------------------------------------------------------------------------

def _location_suffix(city: str | None, state: str | None) -> str:
    if city and state:
        return f":{state.upper()}:{slugify(city)}"
    return ""


def community_data_key(prefix: str, zip_code: str, city: str | None = None, state: str | None = None) -> str:
    return f"{prefix}:{zip_code}{_location_suffix(city, state)}"


def category_list_key(
    prefix: str, zip_code: str, category: str, city: str | None = None, state: str | None = None
) -> str:
    return f"{community_data_key(prefix, zip_code, city, state)}:list:{category}"


def seasonal_sections_key(
    prefix: str, zip_code: str, month_key: str, city: str | None = None, state: str | None = None
) -> str:
    return f"{community_data_key(prefix, zip_code, city, state)}:seasonal:{month_key}"


def audience_delta_key(
    prefix: str,
    zip_code: str,
    audience: str,
    service_areas: list[str] | None = None,
    city: str | None = None,
    state: str | None = None,
) -> str:
    base = f"{community_data_key(prefix, zip_code, city, state)}:aud:{audience}"
    signature = service_areas_signature(service_areas)
    return f"{base}:sa:{signature}" if signature else base


def place_pool_key(
    prefix: str,
    zip_code: str,
    category: str,
    audience: str | None = None,
    service_areas: list[str] | None = None,
    city: str | None = None,
    state: str | None = None,
) -> str:
    key = f"{prefix}:pool:{zip_code}{_location_suffix(city, state)}:{category}"
    if audience:
        key = f"{key}:{audience}"
    signature = service_areas_signature(service_areas)
    return f"{key}:sa:{signature}" if signature else key


def place_details_key(prefix: str, place_id: str) -> str:
    return f"{prefix}:place:{place_id}"


def _llm_base_key(prefix: str, zip_code: str, city: str | None, state: str | None) -> str:
    return f"{prefix}:perplexity:{zip_code}{_location_suffix(city, state)}"


def llm_category_key(
    prefix: str,
    zip_code: str,
    category: str,
    audience: str | None = None,
    service_areas: list[str] | None = None,
    city: str | None = None,
    state: str | None = None,
) -> str:
    key = f"{_llm_base_key(prefix, zip_code, city, state)}:cat:{category}"
    if audience:
        key = f"{key}:aud:{audience}"
    if not should_include_service_areas_in_cache(category):
        return key
    signature = service_areas_signature(service_areas)
    return f"{key}:sa:{signature}" if signature else key


def llm_monthly_events_key(
    prefix: str,
    zip_code: str,
    month_key: str,
    audience: str | None = None,
    city: str | None = None,
    state: str | None = None,
) -> str:
    key = f"{_llm_base_key(prefix, zip_code, city, state)}:things_to_do:{month_key}"
    return f"{key}:aud:{audience}" if audience else key


def city_description_key(prefix: str, city: str, state: str) -> str:
    return f"{prefix}:citydesc:{state.upper()}:{slugify(city)}"


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

class CommunityCache:
    """
    Usage:
        cache = CommunityCache(redis_client, prefix="community", ttl_days=30)
        pool = await cache.get_place_pool("78701", "dining")
        await cache.set_place_pool("78701", "dining", items)
    """

    def __init__(self, redis, prefix: str = DEFAULT_PREFIX, ttl_days: int = 30) -> None:
        """
        Args:
            redis:    An async Redis client (redis.asyncio compatible, decode_responses=True).
                      May be None; every operation then degrades to a cache miss.
            prefix:   Namespace for every key.
            ttl_days: TTL for community data, category lists, and pools.
        """
        self._redis = redis
        self.prefix = prefix
        self.ttl_seconds = ttl_days * 24 * 60 * 60

    @property
    def enabled(self) -> bool:
        return self._redis is not None

    async def _get_json(self, key: str) -> Any | None:
        if self._redis is None:
            return None
        try:
            raw = await self._redis.get(key)
            if raw is None:
                logger.debug("Community cache miss: %s", key)
                return None
            logger.debug("Community cache hit: %s", key)
            return json.loads(raw)
        except Exception:
            logger.warning("Community cache GET failed for key=%s", key, exc_info=True)
            return None

    async def _set_json(self, key: str, payload: Any, ttl_seconds: int | None) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.set(key, json.dumps(payload), ex=ttl_seconds)
            logger.debug("Community cached: key=%s ttl=%s", key, ttl_seconds)
        except Exception:
            logger.warning("Community cache SET failed for key=%s", key, exc_info=True)

    # -- community data ----------------------------------------------------

    async def get_community_data(
        self, zip_code: str, city: str | None = None, state: str | None = None
    ) -> CommunityData | None:
        raw = await self._get_json(community_data_key(self.prefix, zip_code, city, state))
        if raw is None:
            return None
        try:
            return CommunityData.model_validate(raw)
        except ValidationError:
            logger.warning("Discarding malformed community data for zip=%s", zip_code)
            return None

    async def set_community_data(
        self, zip_code: str, data: CommunityData, city: str | None = None, state: str | None = None
    ) -> None:
        await self._set_json(
            community_data_key(self.prefix, zip_code, city, state),
            data.model_dump(mode="json"),
            self.ttl_seconds,
        )

    async def get_category_list(
        self, zip_code: str, category: str, city: str | None = None, state: str | None = None
    ) -> str | None:
        raw = await self._get_json(category_list_key(self.prefix, zip_code, category, city, state))
        return raw if isinstance(raw, str) else None

    async def set_category_list(
        self, zip_code: str, category: str, value: str, city: str | None = None, state: str | None = None
    ) -> None:
        await self._set_json(
            category_list_key(self.prefix, zip_code, category, city, state), value, self.ttl_seconds
        )

    async def get_seasonal_sections(
        self, zip_code: str, month_key: str, city: str | None = None, state: str | None = None
    ) -> dict[str, str] | None:
        raw = await self._get_json(seasonal_sections_key(self.prefix, zip_code, month_key, city, state))
        return raw if isinstance(raw, dict) else None

    async def set_seasonal_sections(
        self,
        zip_code: str,
        month_key: str,
        sections: dict[str, str],
        city: str | None = None,
        state: str | None = None,
        now: datetime | None = None,
    ) -> None:
        await self._set_json(
            seasonal_sections_key(self.prefix, zip_code, month_key, city, state),
            sections,
            seconds_until_end_of_month(now),
        )

    # -- audience delta ----------------------------------------------------

    async def get_audience_delta(
        self,
        zip_code: str,
        audience: str,
        service_areas: list[str] | None = None,
        city: str | None = None,
        state: str | None = None,
    ) -> dict[str, str] | None:
        raw = await self._get_json(
            audience_delta_key(self.prefix, zip_code, audience, service_areas, city, state)
        )
        return raw if isinstance(raw, dict) else None

    async def set_audience_delta(
        self,
        zip_code: str,
        audience: str,
        delta: dict[str, str],
        service_areas: list[str] | None = None,
        city: str | None = None,
        state: str | None = None,
    ) -> None:
        await self._set_json(
            audience_delta_key(self.prefix, zip_code, audience, service_areas, city, state),
            delta,
            AUDIENCE_DELTA_TTL_SECONDS,
        )

    # -- place pools -------------------------------------------------------

    async def get_place_pool(
        self,
        zip_code: str,
        category: str,
        audience: str | None = None,
        service_areas: list[str] | None = None,
        city: str | None = None,
        state: str | None = None,
    ) -> CachedPlacePool | None:
        key = place_pool_key(self.prefix, zip_code, category, audience, service_areas, city, state)
        raw = await self._get_json(key)
        if raw is None:
            return None
        try:
            return CachedPlacePool.model_validate(raw)
        except ValidationError:
            logger.warning("Discarding malformed place pool key=%s", key)
            return None

    async def set_place_pool(
        self,
        zip_code: str,
        category: str,
        items: list[CachedPoolItem],
        audience: str | None = None,
        service_areas: list[str] | None = None,
        city: str | None = None,
        state: str | None = None,
        now: datetime | None = None,
    ) -> None:
        moment = now or datetime.now(timezone.utc)
        pool = CachedPlacePool(items=items, fetched_at=moment, query_count=len(items))
        await self._set_json(
            place_pool_key(self.prefix, zip_code, category, audience, service_areas, city, state),
            pool.model_dump(mode="json"),
            seconds_until_end_of_month(moment) + self.ttl_seconds,
        )

    async def get_place_details(self, place_id: str) -> dict[str, Any] | None:
        raw = await self._get_json(place_details_key(self.prefix, place_id))
        return raw if isinstance(raw, dict) else None

    async def set_place_details(self, place_id: str, payload: dict[str, Any]) -> None:
        await self._set_json(place_details_key(self.prefix, place_id), payload, PLACE_DETAILS_TTL_SECONDS)

    # -- city description --------------------------------------------------

    async def get_city_description(self, city: str, state: str) -> str | None:
        raw = await self._get_json(city_description_key(self.prefix, city, state))
        return raw if isinstance(raw, str) and raw else None

    async def set_city_description(
        self, city: str, state: str, description: str, now: datetime | None = None
    ) -> None:
        await self._set_json(
            city_description_key(self.prefix, city, state),
            description,
            seconds_until_end_of_month(now),
        )

    # -- structured-text payloads ------------------------------------------

    async def get_category_payload(
        self,
        zip_code: str,
        category: str,
        audience: str | None = None,
        service_areas: list[str] | None = None,
        city: str | None = None,
        state: str | None = None,
    ) -> CommunityCategoryPayload | None:
        key = llm_category_key(self.prefix, zip_code, category, audience, service_areas, city, state)
        return self._validate_payload(key, await self._get_json(key))

    async def set_category_payload(
        self,
        payload: CommunityCategoryPayload,
        service_areas: list[str] | None = None,
    ) -> None:
        await self._set_json(
            llm_category_key(
                self.prefix,
                payload.zip_code,
                payload.category,
                payload.audience,
                service_areas,
                payload.city,
                payload.state,
            ),
            payload.model_dump(mode="json", exclude_none=True),
            CATEGORY_PAYLOAD_TTL_SECONDS,
        )

    async def get_monthly_events_payload(
        self,
        zip_code: str,
        month_key: str,
        audience: str | None = None,
        city: str | None = None,
        state: str | None = None,
    ) -> CommunityCategoryPayload | None:
        key = llm_monthly_events_key(self.prefix, zip_code, month_key, audience, city, state)
        return self._validate_payload(key, await self._get_json(key))

    async def set_monthly_events_payload(
        self,
        payload: CommunityCategoryPayload,
        month_key: str,
        now: datetime | None = None,
    ) -> None:
        await self._set_json(
            llm_monthly_events_key(
                self.prefix, payload.zip_code, month_key, payload.audience, payload.city, payload.state
            ),
            payload.model_dump(mode="json", exclude_none=True),
            seconds_until_end_of_month(now),
        )

    @staticmethod
    def _validate_payload(key: str, raw: Any) -> CommunityCategoryPayload | None:
        if raw is None:
            return None
        try:
            return CommunityCategoryPayload.model_validate(raw)
        except ValidationError:
            logger.warning("Discarding malformed category payload key=%s", key)
            return None
