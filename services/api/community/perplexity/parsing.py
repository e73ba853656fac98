"""
Structured-text response parsing.

Content at choices[0].message.content may be bare JSON, fenced JSON, or JSON
wrapped in prose. Either a bare list or {"items": [...]} is accepted. Items
without a usable name are dropped; for neighborhoods, items named after the
city itself ("Austin", "Austin, TX", "Austin TX") are dropped too.
"""

from __future__ import annotations

import json
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any

from services.api.community.models import Citation, CommunityCategoryPayload, PlaceItem
from services.api.community.perplexity.prompts import get_why_suitable_field_key

logger = logging.getLogger(__name__)


def parse_possibly_wrapped_json(raw: Any) -> Any | None:
    if isinstance(raw, (dict, list)):
        return raw
    if not isinstance(raw, str):
        return None

    cleaned = raw.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```(?:json)?\s*\n?", "", cleaned)
        cleaned = re.sub(r"\n?```\s*$", "", cleaned)
    if not cleaned:
        return None

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    for opener, closer in (("{", "}"), ("[", "]")):
        start, end = cleaned.find(opener), cleaned.rfind(closer)
        if start != -1 and end > start:
            try:
                return json.loads(cleaned[start:end + 1])
            except json.JSONDecodeError:
                continue
    return None


def _string(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and math.isfinite(value):
        return float(value)
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def _string_list(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    items = [s for s in (_string(entry) for entry in value) if s]
    return items or None


def _citation(value: Any) -> Citation | None:
    if not isinstance(value, dict):
        return None
    title, url = _string(value.get("title")), _string(value.get("url"))
    if not title and not url:
        return None
    return Citation(title=title, url=url, source=_string(value.get("source")))


def _citations(value: Any) -> list[Citation] | None:
    if not isinstance(value, list):
        return None
    citations = [c for c in (_citation(entry) for entry in value) if c]
    return citations or None


def parse_place_item(value: Any, category: str, audience: str | None = None) -> PlaceItem | None:
    if not isinstance(value, dict):
        return None
    name = _string(value.get("name"))
    if not name:
        return None

    distance = _number(value.get("drive_distance_minutes"))
    return PlaceItem(
        name=name,
        location=_string(value.get("location")),
        drive_distance_minutes=round(distance) if distance is not None else None,
        dates=_string(value.get("dates")),
        description=_string(value.get("description")),
        cost=_string(value.get("cost")),
        why_suitable_for_audience=(
            _string(value.get(get_why_suitable_field_key(audience)))
            or _string(value.get("why_suitable_for_audience"))
        ),
        cuisine=_string_list(value.get("cuisine")) if category in ("dining", "coffee_brunch") else None,
        disclaimer=_string(value.get("disclaimer")) if category == "nature_outdoors" else None,
        citations=_citations(value.get("citations")),
    )


def parse_category_items(raw: Any, category: str, audience: str | None = None) -> list[PlaceItem] | None:
    parsed = parse_possibly_wrapped_json(raw)
    if isinstance(parsed, list):
        candidates = parsed
    elif isinstance(parsed, dict) and isinstance(parsed.get("items"), list):
        candidates = parsed["items"]
    else:
        return None
    return [item for item in (parse_place_item(entry, category, audience) for entry in candidates) if item]


def _search_result_citations(results: Any) -> list[Citation] | None:
    if not isinstance(results, list):
        return None
    citations = [
        Citation(title=_string(r.get("title")), url=_string(r.get("url")), source=_string(r.get("source")))
        for r in results
        if isinstance(r, dict) and (_string(r.get("title")) or _string(r.get("url")))
    ]
    return citations or None


def is_city_name(name: str, city: str | None, state: str | None) -> bool:
    normalized = name.strip().lower()
    city_key = (city or "").strip().lower()
    state_key = (state or "").strip().lower()
    if not city_key:
        return False
    return normalized in {city_key, f"{city_key}, {state_key}", f"{city_key} {state_key}"}


def build_category_payload(
    response: dict[str, Any],
    category: str,
    zip_code: str,
    audience: str | None = None,
    city: str | None = None,
    state: str | None = None,
    max_items: int | None = None,
    now: datetime | None = None,
) -> CommunityCategoryPayload | None:
    try:
        content = response["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None
    if not content:
        return None

    items = parse_category_items(content, category, audience)
    if items is None:
        logger.warning("Unparseable structured-text payload zip=%s category=%s", zip_code, category)
        return None

    fallback_citations = _search_result_citations(response.get("search_results"))
    if fallback_citations:
        items = [
            item if item.citations else item.model_copy(update={"citations": fallback_citations})
            for item in items
        ]
    if category == "neighborhoods":
        items = [item for item in items if not is_city_name(item.name, city, state)]

    return CommunityCategoryPayload(
        category=category,
        audience=audience,
        zip_code=zip_code,
        city=city,
        state=state,
        fetched_at=now or datetime.now(timezone.utc),
        items=items[:max_items] if max_items else items,
    )
