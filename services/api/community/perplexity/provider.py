"""
Structured-text community data provider.

One chat-completions request per category, constrained by a JSON schema and
cached for 90 days per (zip, city, state, category, audience, service areas).
A separate monthly "things to do" payload is cached until the end of the month
and surfaces as the seasonal section things_to_do_<month>.

An unresolvable zip returns UNRESOLVED from the byZip entry points so the
orchestrator shows nothing rather than trying the fallback provider.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from services.api.community.cache import CommunityCache
from services.api.community.city_description import CityDescriptionService
from services.api.community.config import (
    CATEGORY_FIELD_MAP,
    CATEGORY_KEYS,
    NONE_FOUND,
    get_category_display_limit,
    normalize_audience_segment,
    should_include_service_areas_in_cache,
)
from services.api.community.geo import GeoIndex, LocationRecord, resolve_location_or_warn
from services.api.community.models import CommunityCategoryPayload, CommunityData, EventsSection, FetchOptions
from services.api.community.perplexity.client import PerplexityClient
from services.api.community.perplexity.formatting import format_category_list
from services.api.community.perplexity.parsing import build_category_payload
from services.api.community.perplexity.prompts import (
    build_avoid_instructions,
    build_community_messages,
    build_response_format,
)
from services.api.community.places.scoring import is_empty_list
from services.api.community.query_packs import MONTH_SEASONAL_HINTS
from services.api.community.registry import UNRESOLVED, _Unresolved
from services.api.community.seasonal import get_utc_month_key

logger = logging.getLogger(__name__)


def _service_areas_for(category: str, service_areas: list[str] | None) -> list[str] | None:
    return service_areas if should_include_service_areas_in_cache(category) else None


class PerplexityProvider:
    """
    Usage:
        provider = PerplexityProvider(perplexity_client, cache, geo_index, city_descriptions)
        data = await provider.get_community_data_by_zip("78701")
    """

    name = "perplexity"

    def __init__(
        self,
        client: PerplexityClient,
        cache: CommunityCache,
        geo: GeoIndex,
        city_descriptions: CityDescriptionService | None = None,
    ) -> None:
        self._client = client
        self._cache = cache
        self._geo = geo
        self._city_descriptions = city_descriptions

    # -- payload fetching ----------------------------------------------------

    async def fetch_category_payload(
        self,
        zip_code: str,
        category: str,
        location: LocationRecord,
        audience: str | None = None,
        service_areas: list[str] | None = None,
        extra_instructions: str | None = None,
        avoid_recommendations: list[str] | None = None,
        force_refresh: bool = False,
        now: datetime | None = None,
    ) -> CommunityCategoryPayload | None:
        scoped_areas = _service_areas_for(category, service_areas)
        if not force_refresh:
            cached = await self._cache.get_category_payload(
                zip_code, category, audience, scoped_areas, location.city, location.state
            )
            if cached is not None:
                logger.info("Structured-text cache hit zip=%s category=%s audience=%s", zip_code, category, audience)
                return cached

        limit = get_category_display_limit(category)
        instructions = " ".join(
            part
            for part in (extra_instructions, build_avoid_instructions(avoid_recommendations, category))
            if part
        )
        messages = build_community_messages(
            category,
            location.city,
            location.state,
            audience=audience,
            zip_code=zip_code,
            service_areas=scoped_areas,
            limit=limit,
            extra_instructions=instructions or None,
        )
        response = await self._client.request(messages, build_response_format(category, audience))
        if response is None:
            logger.warning("Structured-text request failed zip=%s category=%s audience=%s", zip_code, category, audience)
            return None

        payload = build_category_payload(
            response,
            category,
            zip_code,
            audience=audience,
            city=location.city,
            state=location.state,
            max_items=limit,
            now=now,
        )
        if payload is None:
            logger.warning("Structured-text payload empty zip=%s category=%s audience=%s", zip_code, category, audience)
            return None

        await self._cache.set_category_payload(payload, scoped_areas)
        return payload

    async def fetch_monthly_events_payload(
        self,
        zip_code: str,
        month_key: str,
        location: LocationRecord,
        audience: str | None = None,
        now: datetime | None = None,
    ) -> CommunityCategoryPayload | None:
        cached = await self._cache.get_monthly_events_payload(
            zip_code, month_key, audience, location.city, location.state
        )
        if cached is not None:
            logger.info("Monthly events cache hit zip=%s month=%s audience=%s", zip_code, month_key, audience)
            return cached

        limit = get_category_display_limit("community_events")
        instructions = (
            f"Focus on seasonal activities and events happening in {month_key.capitalize()}. "
            f"{MONTH_SEASONAL_HINTS.get(month_key, '')}"
        ).strip()
        messages = build_community_messages(
            "community_events",
            location.city,
            location.state,
            audience=audience,
            zip_code=zip_code,
            limit=limit,
            extra_instructions=instructions,
        )
        response = await self._client.request(messages, build_response_format("community_events", audience))
        if response is None:
            logger.warning("Monthly events request failed zip=%s month=%s", zip_code, month_key)
            return None

        payload = build_category_payload(
            response,
            "community_events",
            zip_code,
            audience=audience,
            city=location.city,
            state=location.state,
            max_items=limit,
            now=now,
        )
        if payload is None:
            logger.warning("Monthly events payload empty zip=%s month=%s", zip_code, month_key)
            return None

        await self._cache.set_monthly_events_payload(payload, month_key, now=now)
        return payload

    async def get_monthly_events_section(
        self,
        zip_code: str,
        location: LocationRecord,
        audience: str | None = None,
        now: datetime | None = None,
    ) -> EventsSection | None:
        month_key = get_utc_month_key(now)
        payload = await self.fetch_monthly_events_payload(zip_code, month_key, location, audience, now)
        if payload is None or not payload.items:
            return None
        value = format_category_list("community_events", payload.items)
        if is_empty_list(value):
            return None
        return EventsSection(key=f"things_to_do_{month_key}", value=value)

    async def _category_list(
        self,
        zip_code: str,
        category: str,
        location: LocationRecord,
        audience: str | None,
        service_areas: list[str] | None,
        force_refresh: bool = False,
        avoid_recommendations: list[str] | None = None,
        now: datetime | None = None,
    ) -> str:
        try:
            payload = await self.fetch_category_payload(
                zip_code,
                category,
                location,
                audience=audience,
                service_areas=service_areas,
                avoid_recommendations=avoid_recommendations,
                force_refresh=force_refresh,
                now=now,
            )
        except Exception:
            logger.exception("Structured-text category failed zip=%s category=%s", zip_code, category)
            return NONE_FOUND
        if payload is None or not payload.items:
            return NONE_FOUND
        return format_category_list(category, payload.items)

    def _assemble(
        self,
        zip_code: str,
        location: LocationRecord,
        lists: dict[str, str],
        events_section: EventsSection | None,
        now: datetime | None,
    ) -> CommunityData:
        neighborhoods = lists.get("neighborhoods", NONE_FOUND)
        fields = {
            CATEGORY_FIELD_MAP[category]: lists.get(category, NONE_FOUND)
            for category in CATEGORY_KEYS
            if category != "neighborhoods"
        }
        return CommunityData(
            city=location.city,
            state=location.state,
            zip_code=zip_code,
            data_timestamp=now or datetime.now(timezone.utc),
            neighborhoods_list=neighborhoods,
            neighborhoods_family_list=neighborhoods,
            neighborhoods_luxury_list=neighborhoods,
            neighborhoods_senior_list=neighborhoods,
            neighborhoods_relocators_list=neighborhoods,
            seasonal_geo_sections={events_section.key: events_section.value} if events_section else {},
            **fields,
        )

    async def get_community_data_for_location(
        self,
        zip_code: str,
        location: LocationRecord,
        audience: str | None = None,
        service_areas: list[str] | None = None,
        now: datetime | None = None,
    ) -> CommunityData:
        """Every category plus the monthly events section."""
        results = await asyncio.gather(*[
            self._category_list(zip_code, category, location, audience, service_areas, now=now)
            for category in CATEGORY_KEYS
        ])
        try:
            events_section = await self.get_monthly_events_section(zip_code, location, audience, now)
        except Exception:
            logger.exception("Monthly events section failed zip=%s", zip_code)
            events_section = None
        return self._assemble(zip_code, location, dict(zip(CATEGORY_KEYS, results)), events_section, now)

    # -- strategy ------------------------------------------------------------

    async def get_community_data_by_zip(
        self,
        zip_code: str,
        service_areas: list[str] | None = None,
        preferred_city: str | None = None,
        preferred_state: str | None = None,
        options: FetchOptions | None = None,
        now: datetime | None = None,
    ) -> CommunityData | _Unresolved:
        location = resolve_location_or_warn(self._geo, zip_code, preferred_city, preferred_state)
        if location is None:
            return UNRESOLVED
        return await self.get_community_data_for_location(zip_code, location, None, service_areas, now)

    async def get_community_data_by_zip_and_audience(
        self,
        zip_code: str,
        audience: str | None = None,
        service_areas: list[str] | None = None,
        preferred_city: str | None = None,
        preferred_state: str | None = None,
        now: datetime | None = None,
    ) -> CommunityData | _Unresolved:
        normalized = normalize_audience_segment(audience)
        location = resolve_location_or_warn(self._geo, zip_code, preferred_city, preferred_state, normalized)
        if location is None:
            return UNRESOLVED
        return await self.get_community_data_for_location(zip_code, location, normalized, service_areas, now)

    async def get_monthly_events_section_by_zip(
        self,
        zip_code: str,
        audience: str | None = None,
        preferred_city: str | None = None,
        preferred_state: str | None = None,
        now: datetime | None = None,
    ) -> EventsSection | None:
        normalized = normalize_audience_segment(audience)
        location = resolve_location_or_warn(self._geo, zip_code, preferred_city, preferred_state, normalized)
        if location is None:
            return None
        return await self.get_monthly_events_section(zip_code, location, normalized, now)

    async def get_community_data_for_categories(
        self,
        zip_code: str,
        categories: list[str],
        audience: str | None = None,
        service_areas: list[str] | None = None,
        preferred_city: str | None = None,
        preferred_state: str | None = None,
        events_section: EventsSection | None = None,
        force_refresh: bool = False,
        avoid_recommendations: dict[str, list[str]] | None = None,
        now: datetime | None = None,
    ) -> CommunityData | None:
        normalized = normalize_audience_segment(audience)
        location = resolve_location_or_warn(self._geo, zip_code, preferred_city, preferred_state, normalized)
        if location is None:
            return None

        unique = list(dict.fromkeys(categories))
        results = await asyncio.gather(*[
            self._category_list(
                zip_code,
                category,
                location,
                normalized,
                service_areas,
                force_refresh=force_refresh,
                avoid_recommendations=(avoid_recommendations or {}).get(category),
                now=now,
            )
            for category in unique
        ])
        return self._assemble(zip_code, location, dict(zip(unique, results)), events_section, now)

    async def get_avoid_recommendations_for_categories(
        self,
        zip_code: str,
        categories: list[str],
        audience: str | None = None,
        service_areas: list[str] | None = None,
        preferred_city: str | None = None,
        preferred_state: str | None = None,
    ) -> dict[str, list[str]]:
        """Names already served from cached payloads, per category, first-seen order."""
        normalized = normalize_audience_segment(audience)
        location = self._geo.resolve(zip_code, preferred_city, preferred_state)
        city = location.city if location else preferred_city
        state = location.state if location else preferred_state

        payloads = await asyncio.gather(*[
            self._cache.get_category_payload(
                zip_code, category, normalized, _service_areas_for(category, service_areas), city, state
            )
            for category in categories
        ])
        avoid: dict[str, list[str]] = {}
        for category, payload in zip(categories, payloads):
            names = [item.name.strip() for item in (payload.items if payload else []) if item.name.strip()]
            if names:
                avoid[category] = list(dict.fromkeys(names))
        return avoid

    async def prefetch_categories_by_zip(
        self,
        zip_code: str,
        categories: list[str],
        audience: str | None = None,
        service_areas: list[str] | None = None,
        preferred_city: str | None = None,
        preferred_state: str | None = None,
    ) -> None:
        normalized = normalize_audience_segment(audience)
        location = resolve_location_or_warn(self._geo, zip_code, preferred_city, preferred_state, normalized)
        if location is None:
            return
        await asyncio.gather(*[
            self.fetch_category_payload(zip_code, category, location, normalized, service_areas)
            for category in dict.fromkeys(categories)
        ])

    async def get_city_description(self, city: str | None, state: str | None) -> str | None:
        if self._city_descriptions is None:
            return None
        return await self._city_descriptions.get(city, state)
