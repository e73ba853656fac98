"""
Community data orchestration.

Wraps the provider registry with the one-way fallback policy and assembles the
content context handed to content generation:

  category == "community"   rotated category selection, category-scoped data
                            (or full audience data), city description
  category == "seasonal"    monthly "things to do" section, city description
  anything else             empty context

Fallback rules for the byZip entry points:
  primary returns data          -> served
  primary returns UNRESOLVED    -> None, fallback skipped
  primary returns None / raises -> fallback provider, if one is configured
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from redis.asyncio import Redis

from services.api.community.background import spawn_background
from services.api.community.lists import to_available_category_keys
from services.api.community.models import CommunityData, EventsSection, FetchOptions
from services.api.community.registry import (
    CommunityDataProviderStrategy,
    ProviderRegistry,
    _Unresolved,
    supports,
)
from services.api.community.rotation import (
    COMMUNITY_CATEGORY_KEYS,
    peek_next_community_categories,
    select_community_categories,
    to_category,
)

logger = logging.getLogger(__name__)

COMMUNITY_CATEGORY = "community"
SEASONAL_CATEGORY = "seasonal"
ROTATION_COUNT = 2


@dataclass
class CommunityContentContext:
    community_data: CommunityData | None = None
    city_description: str | None = None
    community_category_keys: list[str] | None = None
    seasonal_extra_sections: dict[str, str] | None = None


ProviderCall = Callable[[CommunityDataProviderStrategy], Awaitable[Any]]


async def call_with_fallback(
    primary: CommunityDataProviderStrategy,
    fallback: CommunityDataProviderStrategy | None,
    call: ProviderCall,
    label: str,
) -> CommunityData | None:
    try:
        data = await call(primary)
    except Exception:
        logger.exception("%s failed on primary provider %s", label, primary.name)
        data = None
    else:
        if isinstance(data, _Unresolved):
            return None
        if data:
            return data

    if fallback is None:
        return None

    logger.info("%s falling back from %s to %s", label, primary.name, fallback.name)
    try:
        data = await call(fallback)
    except Exception:
        logger.exception("%s failed on fallback provider %s", label, fallback.name)
        return None
    if isinstance(data, _Unresolved) or not data:
        return None
    return data


def _to_category_keys(keys: list[str]) -> list[str]:
    return [category for category in (to_category(key) for key in keys) if category]


class CommunityDataOrchestrator:
    """
    Usage:
        orchestrator = CommunityDataOrchestrator(registry, redis, prefix="community")
        data = await orchestrator.get_community_data_by_zip_and_audience("78701", "growing_families")
        context = await orchestrator.get_community_content_context(
            user_id="u1", category="community", zip_code="78701",
        )
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        redis: Redis | None = None,
        prefix: str = "community",
        rng: random.Random | None = None,
    ) -> None:
        self._registry = registry
        self._redis = redis
        self._prefix = prefix
        self._rng = rng

    async def get_community_data_by_zip(
        self,
        zip_code: str,
        service_areas: list[str] | None = None,
        preferred_city: str | None = None,
        preferred_state: str | None = None,
        options: FetchOptions | None = None,
    ) -> CommunityData | None:
        if not zip_code:
            return None
        return await call_with_fallback(
            self._registry.primary,
            self._registry.fallback,
            lambda provider: provider.get_community_data_by_zip(
                zip_code,
                service_areas=service_areas,
                preferred_city=preferred_city,
                preferred_state=preferred_state,
                options=options,
            ),
            label=f"community data zip={zip_code}",
        )

    async def get_community_data_by_zip_and_audience(
        self,
        zip_code: str,
        audience: str | None = None,
        service_areas: list[str] | None = None,
        preferred_city: str | None = None,
        preferred_state: str | None = None,
    ) -> CommunityData | None:
        if not zip_code:
            return None
        return await call_with_fallback(
            self._registry.primary,
            self._registry.fallback,
            lambda provider: provider.get_community_data_by_zip_and_audience(
                zip_code,
                audience=audience,
                service_areas=service_areas,
                preferred_city=preferred_city,
                preferred_state=preferred_state,
            ),
            label=f"community data zip={zip_code} audience={audience}",
        )

    # -- content context -----------------------------------------------------

    async def _optional(self, provider: CommunityDataProviderStrategy, capability: str, **kwargs: Any) -> Any:
        """Call an optional capability; missing or failing calls yield None."""
        if not supports(provider, capability):
            return None
        try:
            return await getattr(provider, capability)(**kwargs)
        except Exception:
            logger.exception("%s failed on provider %s", capability, provider.name)
            return None

    async def _monthly_events(
        self,
        provider: CommunityDataProviderStrategy,
        zip_code: str,
        audience: str | None,
        preferred_city: str | None,
        preferred_state: str | None,
    ) -> EventsSection | None:
        section = await self._optional(
            provider,
            "get_monthly_events_section_by_zip",
            zip_code=zip_code,
            audience=audience,
            preferred_city=preferred_city,
            preferred_state=preferred_state,
        )
        if section is None or not section.key or not section.value:
            return None
        return section

    async def _rotated_community_data(
        self,
        provider: CommunityDataProviderStrategy,
        user_id: str,
        zip_code: str,
        audience: str | None,
        service_areas: list[str] | None,
        preferred_city: str | None,
        preferred_state: str | None,
    ) -> tuple[CommunityData | None, list[str]]:
        events_section = await self._monthly_events(provider, zip_code, audience, preferred_city, preferred_state)
        available = COMMUNITY_CATEGORY_KEYS + ([events_section.key] if events_section else [])
        selection = await select_community_categories(
            self._redis, user_id, ROTATION_COUNT, available, prefix=self._prefix, rng=self._rng
        )
        categories = _to_category_keys(selection.selected)

        avoid = None
        if selection.should_refresh:
            avoid = await self._optional(
                provider,
                "get_avoid_recommendations_for_categories",
                zip_code=zip_code,
                categories=categories,
                audience=audience,
                service_areas=service_areas,
                preferred_city=preferred_city,
                preferred_state=preferred_state,
            )

        data = await self._optional(
            provider,
            "get_community_data_for_categories",
            zip_code=zip_code,
            categories=categories,
            audience=audience,
            service_areas=service_areas,
            preferred_city=preferred_city,
            preferred_state=preferred_state,
            events_section=events_section,
            force_refresh=selection.should_refresh,
            avoid_recommendations=avoid,
        )

        next_categories = _to_category_keys(
            await peek_next_community_categories(self._redis, user_id, ROTATION_COUNT, prefix=self._prefix)
        )
        if next_categories and supports(provider, "prefetch_categories_by_zip"):
            spawn_background(
                provider.prefetch_categories_by_zip(
                    zip_code=zip_code,
                    categories=next_categories,
                    audience=audience,
                    service_areas=service_areas,
                    preferred_city=preferred_city,
                    preferred_state=preferred_state,
                ),
                name=f"community-prefetch:{zip_code}",
            )
        return data, selection.selected

    async def get_community_content_context(
        self,
        user_id: str,
        category: str,
        zip_code: str,
        audience: str | None = None,
        service_areas: list[str] | None = None,
        preferred_city: str | None = None,
        preferred_state: str | None = None,
    ) -> CommunityContentContext:
        context = CommunityContentContext()
        if not zip_code:
            return context

        primary = self._registry.primary

        if category == SEASONAL_CATEGORY:
            section = await self._monthly_events(primary, zip_code, audience, preferred_city, preferred_state)
            if section is not None:
                context.seasonal_extra_sections = {section.key: section.value}

        if category == COMMUNITY_CATEGORY:
            if supports(primary, "get_community_data_for_categories") and supports(
                primary, "get_monthly_events_section_by_zip"
            ):
                context.community_data, context.community_category_keys = await self._rotated_community_data(
                    primary, user_id, zip_code, audience, service_areas, preferred_city, preferred_state
                )
            else:
                context.community_data = await self.get_community_data_by_zip_and_audience(
                    zip_code, audience, service_areas, preferred_city, preferred_state
                )
                if context.community_data is not None:
                    selection = await select_community_categories(
                        self._redis,
                        user_id,
                        ROTATION_COUNT,
                        to_available_category_keys(context.community_data),
                        prefix=self._prefix,
                        rng=self._rng,
                    )
                    context.community_category_keys = selection.selected

        if category in (COMMUNITY_CATEGORY, SEASONAL_CATEGORY):
            city = preferred_city or (context.community_data.city if context.community_data else None)
            state = preferred_state or (context.community_data.state if context.community_data else None)
            context.city_description = await self._optional(
                primary, "get_city_description", city=city, state=state
            )

        return context
