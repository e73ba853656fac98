"""
Prompt + JSON-schema response contract for structured-text category requests.
"""

from __future__ import annotations

from typing import Any

from services.api.community.config import get_audience_label, get_category_display_limit

_AFFORDABLE_CATEGORIES = frozenset({"dining", "coffee_brunch", "nightlife_social"})

CATEGORY_NOTES: dict[str, list[str]] = {
    "dining": [
        'Include cuisine as a short array (e.g., ["italian", "seafood"]).',
        "Prefer locally owned spots over national chains when possible.",
    ],
    "coffee_brunch": [
        'Include cuisine as a short array (e.g., ["coffee", "bakery"]).',
        "Prefer local cafes or bakeries.",
    ],
    "nature_outdoors": [
        "Focus on parks, trails, or scenic areas. If needed, include a short safety disclaimer.",
    ],
    "nightlife_social": [
        "Call out the vibe (brewery, cocktail bar, live music, etc.) in description.",
    ],
    "education": [
        "Focus on larger 4-year universities and campus events in the area.",
        "Include university sports options and the mascot when available.",
        "Add a brief community-relevant detail about each university.",
        "Include libraries with a focus on events, classes, or programs.",
        "Do NOT include K-12 schools, school districts, or random educational centers.",
    ],
    "entertainment": [
        "Look for live music venues, theaters, comedy clubs, or family entertainment.",
    ],
    "arts_culture": [
        "Look for museums, galleries, cultural centers, or performing arts.",
    ],
    "attractions": [
        "Look for historic landmarks, tours, amusement parks, zoos, aquariums, or other notable attractions.",
    ],
    "sports_rec": [
        "Look for recreation centers, sports complexes, golf, or outdoor sports hubs.",
    ],
    "fitness_wellness": [
        "Look for gyms, yoga studios, wellness centers, or fitness classes.",
    ],
    "shopping": [
        "Look for boutiques, local shops, markets, or notable retail districts.",
    ],
    "community_events": [
        "Look for recurring community events like markets, festivals, or seasonal gatherings.",
        "Include dates or typical timing when available.",
        "Do not include past events. If no upcoming or current events are available, return an empty items array.",
    ],
    "neighborhoods": [
        "Focus on named neighborhoods, subdivisions, or local districts within the zip code.",
        "Do NOT return the city name as a neighborhood.",
    ],
}

SYSTEM_PROMPT = " ".join([
    "You are a meticulous local researcher helping generate interesting, unique local content "
    "for social media that positions the user as a local expert.",
    "Return only JSON that matches the provided schema.",
    "Only include real places or events, no hallucinations.",
    "Use general area descriptions, not exact street addresses.",
    "If a field is unknown, set it to null.",
    "Include citations per item with title and URL when possible, otherwise set to null.",
    'Do not mention the specific audience segment in the item text. Use "homebuyers" or neutral phrasing instead.',
    "If information is scarce or unverified, omit the item rather than guessing.",
    "If nothing suitable is within a reasonable distance, return fewer items or an empty items array.",
])


def get_why_suitable_field_key(audience: str | None) -> str:
    return f"why_suitable_for_{audience}" if audience else "why_suitable_for_audience"


def format_service_areas(service_areas: list[str] | None) -> str:
    areas = [value.strip() for value in service_areas or [] if value and value.strip()]
    if not areas:
        return ""
    return f"Service areas to prioritize: {', '.join(areas)}."


def build_community_messages(
    category: str,
    city: str,
    state: str,
    audience: str | None = None,
    zip_code: str | None = None,
    service_areas: list[str] | None = None,
    limit: int | None = None,
    extra_instructions: str | None = None,
) -> list[dict[str, str]]:
    limit = limit if limit is not None else get_category_display_limit(category)
    notes = CATEGORY_NOTES.get(category, [])
    affordability = (
        "Prioritize affordable, budget-friendly options."
        if audience == "first_time_homebuyers" and category in _AFFORDABLE_CATEGORIES
        else ""
    )

    lines = [
        f"Target audience: {get_audience_label(audience)}.",
        f"Location: {city}, {state}{f' {zip_code}' if zip_code else ''}.",
        f"Category type: {category}.",
        format_service_areas(service_areas),
        f"Provide up to {limit} items.",
        "If there are not enough suitable options within a reasonable distance, return fewer items or an empty array.",
        "Do not include items with limited or unverifiable information.",
        "Each item should include: name, location, description, cost, dates (for events), "
        f"{get_why_suitable_field_key(audience)}, and optional cuisine/disclaimer when relevant.",
        'Do not reference the specific audience segment in the item text. Use "homebuyers" or neutral phrasing instead.',
        "Estimate drive_distance_minutes from the city center.",
        extra_instructions or "",
        affordability,
        "\n" + "\n".join(notes) if notes else "",
    ]
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": "\n".join(line for line in lines if line)},
    ]


def build_response_format(category: str, audience: str | None = None) -> dict[str, Any]:
    nullable_string = {"type": ["string", "null"]}
    item_properties: dict[str, Any] = {
        "name": {"type": "string"},
        "location": nullable_string,
        "drive_distance_minutes": {"type": ["number", "null"]},
        "dates": nullable_string,
        "description": nullable_string,
        "cost": nullable_string,
        get_why_suitable_field_key(audience): nullable_string,
        "citations": {
            "type": ["array", "null"],
            "items": {
                "type": "object",
                "properties": {
                    "title": nullable_string,
                    "url": nullable_string,
                    "source": nullable_string,
                },
            },
        },
    }
    if category in ("dining", "coffee_brunch"):
        item_properties["cuisine"] = {"type": ["array", "null"], "items": {"type": "string"}}
    if category == "nature_outdoors":
        item_properties["disclaimer"] = nullable_string

    return {
        "type": "json_schema",
        "json_schema": {
            "schema": {
                "type": "object",
                "properties": {
                    "items": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": item_properties,
                            "required": ["name"],
                        },
                    },
                },
                "required": ["items"],
            },
        },
    }


def build_avoid_instructions(names: list[str] | None, category: str) -> str:
    limit = get_category_display_limit(category)
    trimmed = [name.strip() for name in names or [] if name and name.strip()][: max(8, limit * 2)]
    if not trimmed:
        return ""
    return (
        f"Try to avoid recommending these places if possible: {', '.join(trimmed)}. "
        "If you cannot find enough alternatives, you may include items from this list."
    )
