"""Structured-text items -> bulleted list lines."""

from __future__ import annotations

from services.api.community.config import NONE_FOUND
from services.api.community.models import PlaceItem


def format_item_line(item: PlaceItem, category: str) -> str:
    details: list[str] = []
    if item.location:
        details.append(item.location)
    if item.drive_distance_minutes is not None:
        details.append(f"{item.drive_distance_minutes} min drive")
    if item.dates:
        details.append(item.dates)
    if item.cost:
        details.append(item.cost)
    if item.cuisine:
        details.append(", ".join(item.cuisine))

    text = item.description or ""
    if item.why_suitable_for_audience:
        text = f"{text} {item.why_suitable_for_audience}".strip()
    if category == "nature_outdoors" and item.disclaimer:
        text = f"{text} Note: {item.disclaimer}".strip()
    if details:
        text = f"{text} ({'; '.join(details)})".strip()

    if category == "neighborhoods" or not text:
        return f"- {item.name}"
    return f"- {item.name} — {text}"


def format_category_list(category: str, items: list[PlaceItem] | None) -> str:
    if not items:
        return NONE_FOUND
    lines = [format_item_line(item, category) for item in items if item.name]
    return "\n".join(lines) if lines else NONE_FOUND
