"""
Per-user community category rotation.

Each user walks a shuffled cycle of category keys; every call takes `count`
keys from the head of the remaining list. When the remaining list runs short
the carried keys are served first and the rest comes from a fresh shuffle.
After two completed cycles the selection is flagged should_refresh so the
caller can force new upstream content, and the counter resets.

Key format:
  <prefix>:rotation:community:<user_id>  ->  {"remaining": [...], "cyclesCompleted": n}

A bare JSON list is accepted on read. Redis is best-effort: without it the
selection is a plain shuffle and never asks for a refresh.
"""

from __future__ import annotations

import json
import logging
import random
from dataclasses import dataclass, field

from redis.asyncio import Redis

from services.api.community.config import CATEGORY_FIELD_MAP

logger = logging.getLogger(__name__)

COMMUNITY_CATEGORY_KEYS: list[str] = list(CATEGORY_FIELD_MAP.values())
COMMUNITY_CATEGORY_KEY_TO_CATEGORY: dict[str, str] = {
    list_key: category for category, list_key in CATEGORY_FIELD_MAP.items()
}

REFRESH_AFTER_CYCLES = 2


def rotation_key(prefix: str, user_id: str) -> str:
    return f"{prefix}:rotation:community:{user_id}"


def to_category(key: str) -> str | None:
    return COMMUNITY_CATEGORY_KEY_TO_CATEGORY.get(key)


@dataclass
class RotationSelection:
    selected: list[str] = field(default_factory=list)
    should_refresh: bool = False


def _shuffled(values: list[str], rng: random.Random | None) -> list[str]:
    result = list(values)
    (rng or random).shuffle(result)
    return result


async def _read_state(redis: Redis, key: str) -> tuple[list[str] | None, int]:
    try:
        raw = await redis.get(key)
    except Exception:
        logger.warning("Rotation read failed key=%s", key, exc_info=True)
        return None, 0
    if not raw:
        return None, 0
    try:
        state = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Discarding malformed rotation state key=%s", key)
        return None, 0

    if isinstance(state, list):
        return [item for item in state if isinstance(item, str)], 0
    if isinstance(state, dict) and isinstance(state.get("remaining"), list):
        cycles = state.get("cyclesCompleted")
        return (
            [item for item in state["remaining"] if isinstance(item, str)],
            cycles if isinstance(cycles, int) else 0,
        )
    return None, 0


async def select_community_categories(
    redis: Redis | None,
    user_id: str,
    count: int,
    available_keys: list[str],
    prefix: str = "community",
    rng: random.Random | None = None,
) -> RotationSelection:
    if not available_keys:
        return RotationSelection()
    if redis is None:
        return RotationSelection(selected=_shuffled(available_keys, rng)[:count])

    key = rotation_key(prefix, user_id)
    cached, cycles_completed = await _read_state(redis, key)
    available = set(available_keys)
    remaining = [item for item in cached if item in available] if cached is not None else []

    if not remaining:
        cycles_completed += 1
        remaining = _shuffled(available_keys, rng)

    if len(remaining) >= count:
        selected, remaining = remaining[:count], remaining[count:]
    else:
        carry = list(remaining)
        refill = _shuffled(available_keys, rng)
        # the head of a fresh cycle must not repeat a carried key
        if len(refill) > len(carry):
            head = [item for item in refill if item not in carry]
            refill = head + [item for item in refill if item in carry]
        need = count - len(carry)
        selected, remaining = carry + refill[:need], refill[need:]

    should_refresh = cycles_completed >= REFRESH_AFTER_CYCLES
    state = {"remaining": remaining, "cyclesCompleted": 0 if should_refresh else cycles_completed}
    try:
        await redis.set(key, json.dumps(state))
    except Exception:
        logger.warning("Rotation write failed key=%s", key, exc_info=True)
        return RotationSelection(selected=selected)

    logger.debug(
        "Rotation user=%s selected=%s remaining=%d cycles=%d refresh=%s",
        user_id,
        selected,
        len(remaining),
        cycles_completed,
        should_refresh,
    )
    return RotationSelection(selected=selected, should_refresh=should_refresh)


async def peek_next_community_categories(
    redis: Redis | None,
    user_id: str,
    count: int,
    prefix: str = "community",
) -> list[str]:
    if redis is None:
        return []
    remaining, _ = await _read_state(redis, rotation_key(prefix, user_id))
    return (remaining or [])[:count]
