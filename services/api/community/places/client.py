"""
Google Places (New) API client — text search + place details.

Text search:  POST https://places.googleapis.com/v1/places:searchText
Details:      GET  https://places.googleapis.com/v1/places/{place_id}

Auth and projection travel in headers (X-Goog-Api-Key, X-Goog-FieldMask).
Identical concurrent text searches share one in-flight request.

Returns [] / None on a missing API key, non-2xx status, exhausted retries,
or an unparseable body. Never raises on upstream failure.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from services.api.community.config import DEFAULT_SEARCH_RADIUS_METERS
from services.api.community.retry import request_with_retry

logger = logging.getLogger(__name__)

SEARCH_TEXT_URL = "https://places.googleapis.com/v1/places:searchText"
PLACE_DETAILS_URL = "https://places.googleapis.com/v1/places/{place_id}"

SEARCH_FIELD_MASK = ",".join([
    "places.displayName",
    "places.formattedAddress",
    "places.id",
    "places.location",
    "places.rating",
    "places.userRatingCount",
])

DETAILS_FIELD_MASK = ",".join([
    "displayName",
    "formattedAddress",
    "rating",
    "userRatingCount",
    "primaryType",
    "types",
    "generativeSummary",
])


class PlacesClient:
    """
    Usage:
        async with httpx.AsyncClient() as http:
            client = PlacesClient(http, api_key=settings.google_places_api_key)
            places = await client.search_text("tacos", 30.27, -97.74, max_results=5)
    """

    def __init__(self, http: httpx.AsyncClient, api_key: str, timeout_s: float = 8.0) -> None:
        self._http = http
        self._api_key = api_key
        self._timeout_s = timeout_s
        self._inflight: dict[str, asyncio.Task] = {}
        self.search_calls = 0
        self.details_calls = 0

    async def search_text(
        self,
        query: str,
        lat: float,
        lng: float,
        max_results: int = 10,
        radius_m: int = DEFAULT_SEARCH_RADIUS_METERS,
    ) -> list[dict[str, Any]]:
        if not self._api_key:
            return []

        key = f"search:{query}:{lat:.4f}:{lng:.4f}:{max_results}:{radius_m}"
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._search_text(query, lat, lng, max_results, radius_m))
            self._inflight[key] = task
            task.add_done_callback(lambda _t: self._inflight.pop(key, None))
        return list(await asyncio.shield(task))

    async def _search_text(
        self, query: str, lat: float, lng: float, max_results: int, radius_m: int
    ) -> list[dict[str, Any]]:
        self.search_calls += 1
        body = {
            "textQuery": query,
            "maxResultCount": max_results,
            "locationBias": {
                "circle": {
                    "center": {"latitude": lat, "longitude": lng},
                    "radius": radius_m,
                }
            },
        }
        resp = await request_with_retry(
            self._http,
            "POST",
            SEARCH_TEXT_URL,
            label="Places search",
            json=body,
            headers=self._headers(SEARCH_FIELD_MASK),
            timeout=self._timeout_s,
        )
        if resp is None:
            return []
        if resp.status_code != 200:
            logger.warning("Places search HTTP %d for query=%r", resp.status_code, query)
            return []
        try:
            data = resp.json()
        except ValueError:
            logger.warning("Places search returned non-JSON body for query=%r", query)
            return []
        places = data.get("places") if isinstance(data, dict) else None
        return places if isinstance(places, list) else []

    async def place_details(self, place_id: str) -> dict[str, Any] | None:
        if not self._api_key or not place_id:
            return None
        self.details_calls += 1
        resp = await request_with_retry(
            self._http,
            "GET",
            PLACE_DETAILS_URL.format(place_id=place_id),
            label="Places details",
            headers=self._headers(DETAILS_FIELD_MASK),
            timeout=self._timeout_s,
        )
        if resp is None:
            return None
        if resp.status_code != 200:
            logger.warning("Places details HTTP %d for place_id=%s", resp.status_code, place_id)
            return None
        try:
            data = resp.json()
        except ValueError:
            logger.warning("Places details returned non-JSON body for place_id=%s", place_id)
            return None
        return data if isinstance(data, dict) else None

    def _headers(self, field_mask: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self._api_key,
            "X-Goog-FieldMask": field_mask,
        }


def display_name(place: dict[str, Any]) -> str:
    name = place.get("displayName")
    if isinstance(name, dict):
        return str(name.get("text") or "").strip()
    return str(name or "").strip()


def generative_summary(details: dict[str, Any]) -> str | None:
    summary = details.get("generativeSummary")
    if not isinstance(summary, dict):
        return None
    overview = summary.get("overview")
    text = overview.get("text") if isinstance(overview, dict) else None
    return text.strip() if isinstance(text, str) and text.strip() else None
