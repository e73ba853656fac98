"""
Short city descriptions for marketing prompts.

One Claude call per (city, state), cached under
<prefix>:citydesc:<STATE>:<city-slug> until the end of the UTC month.
Missing API key, timeouts and API errors all yield None.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime

import anthropic

from services.api.community.cache import CommunityCache

logger = logging.getLogger(__name__)

CITY_DESCRIPTION_MAX_TOKENS = 160

_SYSTEM_PROMPT = "You write concise, factual city descriptions for real estate marketing prompts."


def build_city_description_prompt(city: str, state: str) -> str:
    return (
        f"Write a 2-3 sentence high-quality description summarizing the city of {city}, {state}. "
        "This should include the general vibe of the area, places of interest, and its proximity "
        "to other things in the geographic region. Keep it brief but informative. "
        "Output only the sentences."
    )


class CityDescriptionService:
    """
    Usage:
        service = CityDescriptionService(anthropic.AsyncAnthropic(), cache)
        text = await service.get("Austin", "TX")
    """

    def __init__(
        self,
        anthropic_client: anthropic.AsyncAnthropic | None,
        cache: CommunityCache,
        model: str = "claude-haiku-4-5-20251001",
        timeout_s: float = 10.0,
    ) -> None:
        self._client = anthropic_client
        self._cache = cache
        self._model = model
        self._timeout_s = timeout_s

    async def get(self, city: str | None, state: str | None, now: datetime | None = None) -> str | None:
        if not city or not state:
            return None

        cached = await self._cache.get_city_description(city, state)
        if cached:
            return cached

        description = await self._fetch(city, state)
        if description:
            await self._cache.set_city_description(city, state, description, now=now)
        return description

    async def _fetch(self, city: str, state: str) -> str | None:
        if self._client is None:
            return None
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(
                    model=self._model,
                    max_tokens=CITY_DESCRIPTION_MAX_TOKENS,
                    system=_SYSTEM_PROMPT,
                    messages=[{"role": "user", "content": build_city_description_prompt(city, state)}],
                ),
                timeout=self._timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning("City description timed out for %s, %s", city, state)
            return None
        except anthropic.APIError as exc:
            logger.warning("City description API error for %s, %s: %s", city, state, exc)
            return None

        text = "".join(
            getattr(block, "text", "") for block in response.content if getattr(block, "type", "text") == "text"
        )
        collapsed = re.sub(r"\s+", " ", text).strip()
        return collapsed or None
