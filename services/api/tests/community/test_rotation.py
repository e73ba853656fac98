"""
Per-user category rotation tests.
"""

from __future__ import annotations

import json
import random

import pytest

from services.api.community.rotation import (
    COMMUNITY_CATEGORY_KEYS,
    peek_next_community_categories,
    rotation_key,
    select_community_categories,
    to_category,
)

pytestmark = pytest.mark.asyncio

KEY = rotation_key("community", "u1")


async def test_key_and_category_mapping():
    assert KEY == "community:rotation:community:u1"
    assert to_category("dining_list") == "dining"
    assert to_category("things_to_do_march") is None
    assert len(COMMUNITY_CATEGORY_KEYS) == 13


async def test_no_available_keys():
    selection = await select_community_categories(None, "u1", 2, [])
    assert selection.selected == []
    assert not selection.should_refresh


async def test_without_redis_is_plain_shuffle():
    selection = await select_community_categories(None, "u1", 2, COMMUNITY_CATEGORY_KEYS, rng=random.Random(3))
    assert len(selection.selected) == 2
    assert set(selection.selected) <= set(COMMUNITY_CATEGORY_KEYS)
    assert not selection.should_refresh
    assert await peek_next_community_categories(None, "u1", 2) == []


async def test_full_cycle_then_refresh(fake_redis):
    keys = COMMUNITY_CATEGORY_KEYS + ["things_to_do_march"]
    rng = random.Random(7)

    seen: list[str] = []
    for _ in range(7):
        selection = await select_community_categories(fake_redis, "u1", 2, keys, rng=rng)
        assert not selection.should_refresh
        seen.extend(selection.selected)

    # one pass covers every key exactly once
    assert sorted(seen) == sorted(keys)
    assert json.loads(fake_redis.store[KEY]) == {"remaining": [], "cyclesCompleted": 1}

    selection = await select_community_categories(fake_redis, "u1", 2, keys, rng=rng)
    assert selection.should_refresh
    assert json.loads(fake_redis.store[KEY])["cyclesCompleted"] == 0


async def test_carry_never_repeats_within_a_selection(fake_redis):
    keys = ["dining_list", "shopping_list", "education_list"]
    rng = random.Random(11)
    for _ in range(10):
        selection = await select_community_categories(fake_redis, "u1", 2, keys, rng=rng)
        assert len(set(selection.selected)) == 2


async def test_legacy_list_state(fake_redis):
    fake_redis.store[KEY] = json.dumps(["dining_list", "shopping_list", "education_list"])

    selection = await select_community_categories(fake_redis, "u1", 2, COMMUNITY_CATEGORY_KEYS)

    assert selection.selected == ["dining_list", "shopping_list"]
    assert json.loads(fake_redis.store[KEY]) == {"remaining": ["education_list"], "cyclesCompleted": 0}
    assert await peek_next_community_categories(fake_redis, "u1", 2) == ["education_list"]


async def test_malformed_state_starts_a_new_cycle(fake_redis):
    fake_redis.store[KEY] = "{not json"
    selection = await select_community_categories(fake_redis, "u1", 2, COMMUNITY_CATEGORY_KEYS)
    assert len(selection.selected) == 2
    assert json.loads(fake_redis.store[KEY])["cyclesCompleted"] == 1


async def test_unavailable_keys_dropped(fake_redis):
    fake_redis.store[KEY] = json.dumps({"remaining": ["things_to_do_february", "dining_list"], "cyclesCompleted": 1})

    selection = await select_community_categories(fake_redis, "u1", 2, COMMUNITY_CATEGORY_KEYS)

    assert selection.selected[0] == "dining_list"
    assert selection.selected[1] != "dining_list"
    assert "things_to_do_february" not in json.loads(fake_redis.store[KEY])["remaining"]


async def test_redis_failure_degrades(fake_redis):
    fake_redis.fail = True
    fake_redis.store[KEY] = json.dumps({"remaining": [], "cyclesCompleted": 5})

    selection = await select_community_categories(fake_redis, "u1", 2, COMMUNITY_CATEGORY_KEYS)

    assert len(selection.selected) == 2
    assert not selection.should_refresh
