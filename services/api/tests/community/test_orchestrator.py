"""
Registry + orchestrator tests.

Providers are small hand-written stubs so that optional capabilities are
genuinely absent (supports() probes with getattr).
"""

from __future__ import annotations

import json
import random

import pytest

from services.api.community.models import CommunityData, EventsSection
from services.api.community.orchestrator import CommunityDataOrchestrator, call_with_fallback
from services.api.community.registry import GOOGLE, PERPLEXITY, UNRESOLVED, ProviderRegistry, supports
from services.api.community.rotation import rotation_key
from services.api.tests.community.conftest import drain_background

pytestmark = pytest.mark.asyncio


def _data(**lists: str) -> CommunityData:
    return CommunityData(city="Austin", state="TX", zip_code="78701", **lists)


class BasicProvider:
    """Only the two required byZip methods."""

    def __init__(self, name: str, result=None, error: Exception | None = None) -> None:
        self.name = name
        self.result = result
        self.error = error
        self.calls: list[tuple[str, dict]] = []

    async def _respond(self, method: str, kwargs: dict):
        self.calls.append((method, kwargs))
        if self.error is not None:
            raise self.error
        return self.result

    async def get_community_data_by_zip(self, zip_code, **kwargs):
        return await self._respond("by_zip", {"zip_code": zip_code, **kwargs})

    async def get_community_data_by_zip_and_audience(self, zip_code, **kwargs):
        return await self._respond("by_zip_and_audience", {"zip_code": zip_code, **kwargs})


class DescribingProvider(BasicProvider):
    async def get_city_description(self, city, state):
        return f"{city}, {state} description" if city and state else None


class RotatingProvider(DescribingProvider):
    """Every optional capability, recording what it was asked for."""

    def __init__(self, name: str = PERPLEXITY, categories_error: Exception | None = None) -> None:
        super().__init__(name)
        self.categories_error = categories_error
        self.category_calls: list[dict] = []
        self.avoid_calls: list[dict] = []
        self.prefetch_calls: list[dict] = []

    async def get_monthly_events_section_by_zip(self, **kwargs):
        return EventsSection(key="things_to_do_march", value="- Spring Fair")

    async def get_community_data_for_categories(self, **kwargs):
        self.category_calls.append(kwargs)
        if self.categories_error is not None:
            raise self.categories_error
        return _data(dining_list="- Uchi")

    async def get_avoid_recommendations_for_categories(self, **kwargs):
        self.avoid_calls.append(kwargs)
        return {"dining": ["Uchi"]}

    async def prefetch_categories_by_zip(self, **kwargs):
        self.prefetch_calls.append(kwargs)


class TestRegistry:
    async def test_google_primary_has_no_fallback(self):
        registry = ProviderRegistry({GOOGLE: BasicProvider(GOOGLE), PERPLEXITY: BasicProvider(PERPLEXITY)})
        assert registry.primary.name == GOOGLE
        assert registry.fallback is None

    async def test_perplexity_primary_falls_back_to_google(self):
        registry = ProviderRegistry(
            {GOOGLE: BasicProvider(GOOGLE), PERPLEXITY: BasicProvider(PERPLEXITY)}, primary=" Perplexity "
        )
        assert registry.primary.name == PERPLEXITY
        assert registry.fallback.name == GOOGLE

    async def test_unknown_name_uses_google(self):
        registry = ProviderRegistry({GOOGLE: BasicProvider(GOOGLE)}, primary="bing")
        assert registry.primary_name == GOOGLE

    async def test_unregistered_primary(self):
        with pytest.raises(ValueError):
            ProviderRegistry({GOOGLE: BasicProvider(GOOGLE)}, primary=PERPLEXITY)

    async def test_supports(self):
        assert not supports(BasicProvider(GOOGLE), "get_city_description")
        assert supports(DescribingProvider(GOOGLE), "get_city_description")

    async def test_supports_rejects_unknown_capability(self):
        with pytest.raises(ValueError):
            supports(DescribingProvider(GOOGLE), "get_city_descriptions")


async def _by_zip(provider):
    return await provider.get_community_data_by_zip("78701")


class TestCallWithFallback:
    async def test_primary_data_served(self):
        primary, fallback = BasicProvider(PERPLEXITY, _data()), BasicProvider(GOOGLE, _data())
        assert await call_with_fallback(primary, fallback, _by_zip, "t") is primary.result
        assert fallback.calls == []

    async def test_primary_none_uses_fallback(self):
        fallback = BasicProvider(GOOGLE, _data())
        assert await call_with_fallback(BasicProvider(PERPLEXITY), fallback, _by_zip, "t") is fallback.result

    async def test_primary_error_uses_fallback(self):
        primary = BasicProvider(PERPLEXITY, error=RuntimeError("down"))
        fallback = BasicProvider(GOOGLE, _data())
        assert await call_with_fallback(primary, fallback, _by_zip, "t") is fallback.result

    async def test_unresolved_skips_fallback(self):
        fallback = BasicProvider(GOOGLE, _data())
        assert await call_with_fallback(BasicProvider(PERPLEXITY, UNRESOLVED), fallback, _by_zip, "t") is None
        assert fallback.calls == []

    async def test_fallback_failures_are_none(self):
        primary = BasicProvider(PERPLEXITY)
        assert await call_with_fallback(primary, BasicProvider(GOOGLE, error=RuntimeError()), _by_zip, "t") is None
        assert await call_with_fallback(primary, BasicProvider(GOOGLE, UNRESOLVED), _by_zip, "t") is None
        assert await call_with_fallback(primary, None, _by_zip, "t") is None


def _orchestrator(primary, fallback=None, redis=None) -> CommunityDataOrchestrator:
    providers = {primary.name: primary}
    if fallback is not None:
        providers[fallback.name] = fallback
    return CommunityDataOrchestrator(
        ProviderRegistry(providers, primary=primary.name), redis=redis, rng=random.Random(5)
    )


class TestByZip:
    async def test_empty_zip(self):
        provider = BasicProvider(GOOGLE, _data())
        orchestrator = _orchestrator(provider)
        assert await orchestrator.get_community_data_by_zip("") is None
        assert await orchestrator.get_community_data_by_zip_and_audience("") is None
        assert provider.calls == []

    async def test_arguments_forwarded(self):
        provider = BasicProvider(GOOGLE, _data())
        await _orchestrator(provider).get_community_data_by_zip_and_audience(
            "78701", "growing_families", ["Round Rock"], "Austin", "TX"
        )
        method, kwargs = provider.calls[0]
        assert method == "by_zip_and_audience"
        assert kwargs == {
            "zip_code": "78701",
            "audience": "growing_families",
            "service_areas": ["Round Rock"],
            "preferred_city": "Austin",
            "preferred_state": "TX",
        }

    async def test_falls_back(self):
        fallback = BasicProvider(GOOGLE, _data())
        orchestrator = _orchestrator(BasicProvider(PERPLEXITY), fallback)
        assert await orchestrator.get_community_data_by_zip("78701") is fallback.result


class TestContentContext:
    async def test_rotated_community_context(self, fake_redis):
        provider = RotatingProvider()
        orchestrator = _orchestrator(provider, BasicProvider(GOOGLE), redis=fake_redis)

        context = await orchestrator.get_community_content_context(
            "u1", "community", "78701", audience="growing_families",
            preferred_city="Austin", preferred_state="TX",
        )
        await drain_background()

        assert context.community_data.dining_list == "- Uchi"
        assert len(context.community_category_keys) == 2
        assert context.city_description == "Austin, TX description"

        [call] = provider.category_calls
        assert call["events_section"].key == "things_to_do_march"
        assert call["force_refresh"] is False
        assert call["avoid_recommendations"] is None
        assert len(call["categories"]) == len([k for k in context.community_category_keys if k.endswith("_list")])
        assert provider.avoid_calls == []

        # the next rotation step is prefetched in the background
        [prefetch] = provider.prefetch_calls
        remaining = json.loads(fake_redis.store[rotation_key("community", "u1")])["remaining"]
        assert prefetch["categories"] == [
            key.removesuffix("_list") for key in remaining[:2] if key.endswith("_list")
        ]

    async def test_refresh_uses_avoid_list(self, fake_redis):
        fake_redis.store[rotation_key("community", "u1")] = json.dumps({"remaining": [], "cyclesCompleted": 1})
        provider = RotatingProvider()

        await _orchestrator(provider, redis=fake_redis).get_community_content_context("u1", "community", "78701")
        await drain_background()

        [call] = provider.category_calls
        assert call["force_refresh"] is True
        assert call["avoid_recommendations"] == {"dining": ["Uchi"]}
        assert len(provider.avoid_calls) == 1

    async def test_category_data_failure_degrades(self, fake_redis):
        provider = RotatingProvider(categories_error=RuntimeError("boom"))
        context = await _orchestrator(provider, redis=fake_redis).get_community_content_context(
            "u1", "community", "78701"
        )
        await drain_background()
        assert context.community_data is None
        assert len(context.community_category_keys) == 2

    async def test_full_data_path_without_category_capability(self, fake_redis):
        data = _data(dining_list="- Uchi", shopping_list="- Waterloo Records")
        provider = DescribingProvider(GOOGLE, data)

        context = await _orchestrator(provider, redis=fake_redis).get_community_content_context(
            "u1", "community", "78701", audience="growing_families"
        )

        assert context.community_data is data
        assert sorted(context.community_category_keys) == ["dining_list", "shopping_list"]
        # city and state fall back to the data's own location
        assert context.city_description == "Austin, TX description"
        assert provider.calls[0][0] == "by_zip_and_audience"

    async def test_full_data_path_without_data(self):
        context = await _orchestrator(BasicProvider(GOOGLE)).get_community_content_context(
            "u1", "community", "78701"
        )
        assert context.community_data is None
        assert context.community_category_keys is None
        assert context.city_description is None

    async def test_seasonal_context(self):
        provider = RotatingProvider()
        context = await _orchestrator(provider).get_community_content_context(
            "u1", "seasonal", "78701", preferred_city="Austin", preferred_state="TX"
        )
        assert context.seasonal_extra_sections == {"things_to_do_march": "- Spring Fair"}
        assert context.community_data is None
        assert context.city_description == "Austin, TX description"
        assert provider.category_calls == []

    async def test_seasonal_without_capability(self):
        context = await _orchestrator(BasicProvider(GOOGLE)).get_community_content_context(
            "u1", "seasonal", "78701"
        )
        assert context.seasonal_extra_sections is None

    async def test_other_categories_are_empty(self):
        provider = RotatingProvider()
        context = await _orchestrator(provider).get_community_content_context("u1", "market_update", "78701")
        assert context.community_data is None
        assert context.city_description is None
        assert provider.category_calls == []
