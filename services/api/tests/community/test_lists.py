"""
Audience merge + list helper tests.

Covers:
- merge_lists: delta first, name-deduped, capped; empty delta keeps base
- apply_audience_delta: only categories with delta content change
- skip categories: delta meets the category's minimum primary results
- neighborhoods trimmed of commentary; audience neighborhood variant surfaced
- available category keys for rotation
"""

from __future__ import annotations

from services.api.community.config import NONE_FOUND
from services.api.community.lists import (
    apply_audience_delta,
    build_audience_community_data,
    get_audience_skip_categories,
    merge_lists,
    normalize_list_key,
    to_available_category_keys,
    trim_community_data_lists,
)
from services.api.community.models import CommunityData


def _data(**lists: str) -> CommunityData:
    return CommunityData(city="Austin", state="TX", zip_code="78701", **lists)


class TestMergeLists:
    def test_normalize_key(self):
        assert normalize_list_key("- Franklin BBQ — brisket, lines") == "franklin bbq"
        assert normalize_list_key("-Joe's  Cafe") == "joe s cafe"

    def test_delta_first_and_deduped(self):
        delta = "- Kid Spot — playground\n- Uchi — sushi"
        base = "- Uchi — omakase\n- Franklin Barbecue\n- Veracruz"
        merged = merge_lists(delta, base, 3)
        assert merged == "- Kid Spot — playground\n- Uchi — sushi\n- Franklin Barbecue"

    def test_empty_delta_keeps_trimmed_base(self):
        assert merge_lists(NONE_FOUND, "- A\n- B\n- C", 2) == "- A\n- B"
        assert merge_lists("", "- A", 2) == "- A"

    def test_merged_never_exceeds_limit(self):
        delta = "\n".join(f"- Delta {i}" for i in range(10))
        merged = merge_lists(delta, "- Base", 4)
        assert len(merged.split("\n")) == 4
        assert "- Base" not in merged


class TestApplyAudienceDelta:
    def test_merges_into_matching_fields(self):
        base = _data(dining_list="- Uchi\n- Franklin Barbecue", shopping_list="- Waterloo Records")
        merged = apply_audience_delta(base, {"dining": "- Kid Spot", "shopping": NONE_FOUND})
        assert merged.dining_list == "- Kid Spot\n- Uchi\n- Franklin Barbecue"
        assert merged.shopping_list == "- Waterloo Records"
        # original untouched
        assert base.dining_list == "- Uchi\n- Franklin Barbecue"

    def test_delta_over_none_found_base(self):
        merged = apply_audience_delta(_data(), {"dining": "- Kid Spot"})
        assert merged.dining_list == "- Kid Spot"

    def test_unknown_category_ignored(self):
        base = _data()
        assert apply_audience_delta(base, {"bogus": "- X"}) is base


class TestSkipCategories:
    def test_meets_minimum(self):
        delta = {
            "dining": "- A\n- B\n- C",
            "shopping": "- A",
            "nature_outdoors": "- A\n- B",
            "education": "- A\n- B\n- C",
        }
        # dining needs 3, shopping 2, nature_outdoors 2; education is not augmentable
        assert get_audience_skip_categories(delta) == {"dining", "nature_outdoors"}

    def test_none_found_never_skips(self):
        assert get_audience_skip_categories({"dining": NONE_FOUND}) == set()
        assert get_audience_skip_categories(None) == set()


class TestTrimAndAudienceView:
    def test_trim_strips_neighborhood_commentary_only(self):
        data = _data(
            neighborhoods_list="- Hyde Park — historic\n- Mueller — new",
            dining_list="- Uchi — sushi",
        )
        trimmed = trim_community_data_lists(data)
        assert trimmed.neighborhoods_list == "- Hyde Park\n- Mueller"
        assert trimmed.dining_list == "- Uchi — sushi"

    def test_trim_caps_at_display_limit(self):
        data = _data(education_list="- A\n- B\n- C\n- D")
        assert trim_community_data_lists(data).education_list == "- A\n- B\n- C"

    def test_audience_neighborhood_variant(self):
        data = _data(
            neighborhoods_list="- General",
            neighborhoods_family_list="- Family",
            neighborhoods_senior_list="- Senior",
        )
        assert build_audience_community_data(data, "growing_families").neighborhoods_list == "- Family"
        assert build_audience_community_data(data, "active_retirees").neighborhoods_list == "- Senior"
        assert build_audience_community_data(data, "first_time_homebuyers") is data
        assert build_audience_community_data(data, None) is data

    def test_available_keys(self):
        data = _data(
            dining_list="- Uchi",
            shopping_list=NONE_FOUND,
            seasonal_geo_sections={"irish pub": "- Pub", "empty": NONE_FOUND},
        )
        assert to_available_category_keys(data) == ["dining_list", "irish pub"]
        assert to_available_category_keys(None) == []
