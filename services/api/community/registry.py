"""
Community data provider strategy + registry.

Every provider implements get_community_data_by_zip and
get_community_data_by_zip_and_audience. Those may return:
  CommunityData   data to serve
  None            nothing usable; the orchestrator tries the fallback provider
  UNRESOLVED      the location could not be resolved; no fallback is attempted

The remaining capabilities are optional and must be probed with
supports(provider, "<method name>") before use.

Fallback is one-way: when the structured-text provider is primary the
place-search provider backs it up. A place-search primary has no fallback.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from services.api.community.models import CommunityData, FetchOptions

logger = logging.getLogger(__name__)

GOOGLE = "google"
PERPLEXITY = "perplexity"
PROVIDER_NAMES = (GOOGLE, PERPLEXITY)


class _Unresolved:
    _instance: "_Unresolved | None" = None

    def __new__(cls) -> "_Unresolved":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNRESOLVED"


UNRESOLVED = _Unresolved()

OPTIONAL_CAPABILITIES = (
    "get_city_description",
    "get_monthly_events_section_by_zip",
    "get_community_data_for_categories",
    "get_avoid_recommendations_for_categories",
    "prefetch_categories_by_zip",
)


@runtime_checkable
class CommunityDataProviderStrategy(Protocol):
    name: str

    async def get_community_data_by_zip(
        self,
        zip_code: str,
        service_areas: list[str] | None = None,
        preferred_city: str | None = None,
        preferred_state: str | None = None,
        options: FetchOptions | None = None,
    ) -> CommunityData | None | _Unresolved:
        ...

    async def get_community_data_by_zip_and_audience(
        self,
        zip_code: str,
        audience: str | None = None,
        service_areas: list[str] | None = None,
        preferred_city: str | None = None,
        preferred_state: str | None = None,
    ) -> CommunityData | None | _Unresolved:
        ...


def supports(provider: object, capability: str) -> bool:
    if capability not in OPTIONAL_CAPABILITIES:
        raise ValueError(f"Unknown optional provider capability: {capability!r}")
    return callable(getattr(provider, capability, None))


def resolve_provider_name(value: str | None) -> str:
    name = (value or "").strip().lower()
    if name not in PROVIDER_NAMES:
        if name:
            logger.warning("Unknown community data provider %r; using %s", value, GOOGLE)
        return GOOGLE
    return name


class ProviderRegistry:
    """
    Usage:
        registry = ProviderRegistry(
            {"google": google_provider, "perplexity": perplexity_provider},
            primary=settings.community_data_provider,
        )
        registry.primary, registry.fallback
    """

    def __init__(
        self,
        providers: dict[str, CommunityDataProviderStrategy],
        primary: str | None = GOOGLE,
    ) -> None:
        self._providers = dict(providers)
        name = resolve_provider_name(primary)
        if name not in self._providers:
            raise ValueError(f"Primary community data provider {name!r} is not registered")
        self.primary_name = name

    @property
    def primary(self) -> CommunityDataProviderStrategy:
        return self._providers[self.primary_name]

    @property
    def fallback(self) -> CommunityDataProviderStrategy | None:
        if self.primary_name == PERPLEXITY:
            return self._providers.get(GOOGLE)
        return None
