"""
Scoring / dedupe / sampling / formatting tests.
"""

from __future__ import annotations

import math
import random

import pytest

from services.api.community.config import NONE_FOUND
from services.api.community.places.scoring import (
    count_list_items,
    dedupe_places,
    format_place_line,
    format_place_list,
    is_empty_list,
    parse_list_lines,
    rank_places,
    sample_from_pool,
    score_place,
    trim_list,
)
from services.api.tests.community.conftest import make_scored


class TestScore:
    def test_formula(self):
        place = make_scored("A", rating=4.5, review_count=99, distance_km=10.0)
        assert score_place(place) == pytest.approx(math.log10(100) * 10 + 4.5 - 10.0 * 0.05)

    def test_distance_penalty_capped(self):
        near_cap = make_scored("A", distance_km=20.0)
        far = make_scored("B", distance_km=35.0)
        assert score_place(near_cap) == pytest.approx(score_place(far))

    def test_unknown_distance_has_no_penalty(self):
        assert score_place(make_scored("A", distance_km=None)) > score_place(make_scored("A", distance_km=5.0))

    def test_rank_prefers_review_volume(self):
        popular = make_scored("Popular", rating=4.5, review_count=5000)
        niche = make_scored("Niche", rating=5.0, review_count=20)
        assert [p.name for p in rank_places([niche, popular])] == ["Popular", "Niche"]


class TestDedupe:
    def test_by_place_id(self):
        places = [
            make_scored("Uchi", place_id="p1", review_count=10, source_queries=["sushi"]),
            make_scored("Uchi Austin", place_id="p1", review_count=900, source_queries=["omakase"]),
        ]
        merged = dedupe_places(places)
        assert len(merged) == 1
        assert merged[0].review_count == 900
        assert merged[0].source_queries == ["sushi", "omakase"]
        # first-seen name is kept
        assert merged[0].name == "Uchi"

    def test_by_name_and_address(self):
        places = [
            make_scored("Joe's Cafe", address="1 Main St"),
            make_scored("JOE'S CAFE", address="1 main st."),
            make_scored("Joe's Cafe", address="9 Elm St"),
        ]
        assert len(dedupe_places(places)) == 2

    def test_keeps_longer_summary(self):
        places = [
            make_scored("A", place_id="p1", summary="short"),
            make_scored("A", place_id="p1", summary="a much longer summary"),
        ]
        assert dedupe_places(places)[0].summary == "a much longer summary"

    def test_inputs_not_mutated(self):
        first = make_scored("A", place_id="p1", source_queries=["x"])
        dedupe_places([first, make_scored("A", place_id="p1", source_queries=["y"])])
        assert first.source_queries == ["x"]

    def test_idempotent_with_unique_ids(self):
        places = [
            make_scored("Uchi", place_id="p1"),
            make_scored("Uchiko", place_id="p2"),
            make_scored("Uchi", place_id="p1", review_count=700),
            make_scored("Joe's Cafe", address="1 Main St"),
            make_scored("joe's cafe", address="1 Main St"),
        ]
        once = dedupe_places(places)
        assert dedupe_places(once) == once
        ids = [p.place_id for p in once if p.place_id]
        assert len(ids) == len(set(ids))


class TestSampling:
    def test_small_pool_returns_everything(self):
        pool = list(range(4))
        assert sorted(sample_from_pool(pool, 8, random.Random(1))) == pool

    def test_zero_count(self):
        assert sample_from_pool(list(range(10)), 0) == []

    def test_tier_weighting(self):
        pool = list(range(20))
        top_tier = set(range(4))
        for seed in range(10):
            sample = sample_from_pool(pool, 5, random.Random(seed))
            assert len(sample) == 5
            assert len(set(sample)) == 5
            # 60% of five rounds up to three top-tier picks
            assert len(top_tier & set(sample)) == 3

    def test_backfills_shortfall(self):
        pool = list(range(6))
        sample = sample_from_pool(pool, 5, random.Random(2))
        assert len(set(sample)) == 5

    def test_seeded_sampling_is_reproducible(self):
        pool = list(range(30))
        assert sample_from_pool(pool, 6, random.Random(42)) == sample_from_pool(pool, 6, random.Random(42))

    def test_unseeded_sampling_varies(self):
        pool = list(range(30))
        draws = {tuple(sorted(sample_from_pool(pool, 6))) for _ in range(20)}
        assert len(draws) > 1


class TestFormatting:
    def test_line_with_summary(self):
        assert format_place_line(make_scored("Uchi", summary="Sushi."), True) == "- Uchi — Sushi."

    def test_line_with_keywords(self):
        place = make_scored("Uchi", keywords=["sushi", "japanese"])
        assert format_place_line(place, True) == "- Uchi — sushi, japanese"
        assert format_place_line(place, False) == "- Uchi"

    def test_list_ranks_and_caps(self):
        places = [
            make_scored("Low", review_count=5, place_id="a"),
            make_scored("High", review_count=5000, place_id="b"),
            make_scored("Mid", review_count=500, place_id="c"),
        ]
        assert format_place_list(places, 2, False) == "- High\n- Mid"

    def test_empty_list(self):
        assert format_place_list([], 5, True) == NONE_FOUND
        assert is_empty_list(NONE_FOUND)
        assert is_empty_list("  ")
        assert not is_empty_list("- Uchi")

    def test_trim_strips_commentary(self):
        value = "- Zilker — big park\n- Hyde Park — historic\n- Clarksville"
        assert trim_list(value, 2, True) == "- Zilker\n- Hyde Park"
        assert trim_list(value, 5, False) == value

    def test_trim_keeps_none_found(self):
        assert trim_list(NONE_FOUND, 3, True) == NONE_FOUND
        assert trim_list("", 3, True) == NONE_FOUND

    def test_parse_and_count(self):
        assert parse_list_lines("- A\n\n- B\n") == ["- A", "- B"]
        assert count_list_items(NONE_FOUND) == 0
        assert count_list_items("- A\n- B") == 2
