"""
Community data configuration — categories, audiences, search constants.

Each category defines:
  - display_limit: lines surfaced in the assembled CommunityData list
  - pool_max: ceiling on the cached candidate pool (0 = no pool)
  - min_rating / min_reviews: place-search quality thresholds
  - target_query_count: how many fallback queries pad sparse audience queries
  - fallback_queries: generic queries used when audience queries are absent or sparse
  - max_per_query: result cap handed to the anchor fan-out
  - min_primary_results: below this, the audience path runs fallback queries too

Audience segments carry PRIMARY augment queries for the augmentable categories;
category fallback queries only run when those come back sparse.
"""

from __future__ import annotations

from dataclasses import dataclass, field


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_SEARCH_RADIUS_METERS = 15000
MAX_PLACE_DISTANCE_KM = 40.0
DISTANCE_SCORE_WEIGHT = 0.05
DISTANCE_SCORE_CAP_KM = 20.0

# (lat, lng) offsets applied to the resolved origin, origin first
SEARCH_ANCHOR_OFFSETS: list[tuple[float, float]] = [
    (0.0, 0.0),
    (0.06, 0.06),
    (-0.06, -0.06),
]

NONE_FOUND = "- (none found)"

CATEGORY_KEYS: list[str] = [
    "neighborhoods",
    "dining",
    "coffee_brunch",
    "nature_outdoors",
    "entertainment",
    "attractions",
    "sports_rec",
    "arts_culture",
    "nightlife_social",
    "fitness_wellness",
    "shopping",
    "education",
    "community_events",
]

NON_NEIGHBORHOOD_CATEGORY_KEYS: list[str] = [
    key for key in CATEGORY_KEYS if key != "neighborhoods"
]

# CommunityData field per category
CATEGORY_FIELD_MAP: dict[str, str] = {key: f"{key}_list" for key in CATEGORY_KEYS}

# Categories where a single search center is enough
LOW_PRIORITY_ANCHOR_CATEGORIES: frozenset[str] = frozenset({
    "entertainment",
    "attractions",
    "sports_rec",
    "arts_culture",
    "fitness_wellness",
    "shopping",
    "education",
    "community_events",
})


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

CHAIN_NAME_BLACKLIST: list[str] = [
    "mcdonald", "burger king", "wendy", "taco bell", "kfc", "subway",
    "domino", "pizza hut", "papa john", "chipotle", "starbucks", "dunkin",
    "panera", "olive garden", "applebee", "chili", "red lobster", "outback",
    "ihop", "denny", "cracker barrel", "buffalo wild wings",
]

CHAIN_FILTER_CATEGORIES: frozenset[str] = frozenset({
    "dining",
    "coffee_brunch",
    "nightlife_social",
    "shopping",
    "fitness_wellness",
    "entertainment",
    "sports_rec",
})

# Names containing these terms are agencies or facilities, not neighborhoods
NEIGHBORHOOD_REJECT_TERMS: list[str] = [
    "services", "division", "department", "office", "authority", "program",
    "government", "city of", "county", "market", "center", "public works",
]


@dataclass(frozen=True)
class NeighborhoodQuery:
    key: str
    query: str
    max_results: int


NEIGHBORHOOD_QUERIES: list[NeighborhoodQuery] = [
    NeighborhoodQuery("neighborhoods_general", "neighborhood subdivision residential community", 12),
    NeighborhoodQuery("neighborhoods_family", "family neighborhood gated community luxury subdivision", 12),
    NeighborhoodQuery("neighborhoods_senior", "55+ community retirement senior living", 8),
]


# ---------------------------------------------------------------------------
# Regions (state code -> seasonal region key)
# ---------------------------------------------------------------------------

STATE_REGIONS: dict[str, frozenset[str]] = {
    "pacific_northwest": frozenset({"WA", "OR"}),
    "mountain": frozenset({"CO", "UT", "ID", "MT", "WY"}),
    "desert_southwest": frozenset({"AZ", "NM", "NV"}),
    "gulf_coast": frozenset({"TX", "LA", "MS", "AL"}),
    "atlantic_south": frozenset({"FL", "GA", "SC", "NC"}),
    "mid_atlantic": frozenset({"VA", "MD", "DE", "NJ"}),
    "new_england": frozenset({"NY", "CT", "RI", "MA", "NH", "ME"}),
    "great_lakes": frozenset({"MN", "WI", "IL", "IN", "MI", "OH", "PA"}),
    "california": frozenset({"CA"}),
    "hawaii": frozenset({"HI"}),
    "alaska": frozenset({"AK"}),
}


def get_region_for_state(state: str | None) -> str | None:
    """Map a two-letter state code to its seasonal region, or None."""
    if not state:
        return None
    code = state.strip().upper()
    for region, states in STATE_REGIONS.items():
        if code in states:
            return region
    return None


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CategoryConfig:
    display_limit: int
    pool_max: int
    min_rating: float
    min_reviews: int
    target_query_count: int
    fallback_queries: list[str]
    max_per_query: int
    min_primary_results: int


CATEGORY_CONFIG: dict[str, CategoryConfig] = {
    "neighborhoods": CategoryConfig(5, 0, 0.0, 0, 1, [], 8, 0),
    "dining": CategoryConfig(8, 50, 4.5, 100, 2, ["best local restaurants"], 20, 3),
    "coffee_brunch": CategoryConfig(5, 30, 4.4, 40, 2, ["coffee shop cafe"], 12, 2),
    "nature_outdoors": CategoryConfig(4, 20, 4.5, 20, 2, ["park trail hiking"], 12, 2),
    "entertainment": CategoryConfig(
        4, 18, 4.0, 10, 1, ["live music theater entertainment venue"], 10, 2
    ),
    "attractions": CategoryConfig(
        4, 10, 4.0, 10, 1, ["local attraction historic landmark tourist site"], 10, 2
    ),
    "sports_rec": CategoryConfig(4, 14, 4.0, 10, 1, ["sports recreation center"], 10, 2),
    "arts_culture": CategoryConfig(
        4, 14, 4.0, 8, 1, ["art gallery museum cultural center"], 10, 2
    ),
    "nightlife_social": CategoryConfig(5, 30, 4.0, 12, 1, ["brewery winery bar lounge"], 10, 2),
    "fitness_wellness": CategoryConfig(4, 16, 4.0, 10, 1, ["gym fitness yoga wellness"], 10, 2),
    "shopping": CategoryConfig(4, 16, 4.0, 10, 1, ["local shop boutique"], 10, 2),
    "education": CategoryConfig(3, 8, 3.8, 200, 1, ["university campus", "public library"], 15, 0),
    "community_events": CategoryConfig(
        3, 10, 3.8, 5, 1, ["farmers market festival fair"], 10, 1
    ),
}


def get_category_display_limit(category: str) -> int:
    config = CATEGORY_CONFIG.get(category)
    return config.display_limit if config else 5


def get_category_pool_max(category: str) -> int:
    config = CATEGORY_CONFIG.get(category)
    return config.pool_max if config else 30


def get_category_min_rating(category: str) -> float:
    config = CATEGORY_CONFIG.get(category)
    return config.min_rating if config else 0.0


def get_category_min_reviews(category: str) -> int:
    config = CATEGORY_CONFIG.get(category)
    return config.min_reviews if config else 0


def get_category_fallback_queries(category: str) -> list[str]:
    config = CATEGORY_CONFIG.get(category)
    return list(config.fallback_queries) if config else []


def get_category_min_primary_results(category: str) -> int:
    config = CATEGORY_CONFIG.get(category)
    return config.min_primary_results if config else 2


def get_category_target_query_count(category: str) -> int:
    config = CATEGORY_CONFIG.get(category)
    return config.target_query_count if config else 1


def get_category_max_per_query(category: str) -> int:
    config = CATEGORY_CONFIG.get(category)
    return config.max_per_query if config else 10


@dataclass(frozen=True)
class QueryOverrides:
    min_rating: float | None = None
    min_reviews: int | None = None


def get_query_overrides(category: str, query: str) -> QueryOverrides | None:
    """Per-query quality thresholds that replace the category defaults."""
    if category == "education" and "library" in query.lower():
        return QueryOverrides(min_reviews=10)
    return None


def should_include_service_areas_in_cache(category: str) -> bool:
    """Neighborhoods are zip-bound; every other category is ranked against service areas."""
    return category != "neighborhoods"


# ---------------------------------------------------------------------------
# Audiences
# ---------------------------------------------------------------------------

AUDIENCE_SEGMENTS: list[str] = [
    "first_time_homebuyers",
    "growing_families",
    "downsizers_retirees",
    "luxury_homebuyers",
    "investors_relocators",
]

AUDIENCE_LABELS: dict[str, str] = {
    "first_time_homebuyers": "first-time homebuyers",
    "growing_families": "growing families",
    "downsizers_retirees": "downsizers and retirees",
    "luxury_homebuyers": "luxury homebuyers",
    "investors_relocators": "investors and relocators",
}

DEFAULT_AUDIENCE_LABEL = "local residents"

AUDIENCE_SEGMENT_ALIASES: dict[str, str] = {
    "young_professionals": "first_time_homebuyers",
    "active_retirees": "downsizers_retirees",
    "luxury_buyers": "luxury_homebuyers",
    "real_estate_investors": "investors_relocators",
    "job_transferees": "investors_relocators",
    "vacation_property_buyers": "investors_relocators",
    "military_veterans": "investors_relocators",
    "relocators": "investors_relocators",
}

AUDIENCE_AUGMENT_CATEGORIES: list[str] = [
    "entertainment",
    "sports_rec",
    "nature_outdoors",
    "dining",
    "fitness_wellness",
    "shopping",
]

_DEFAULT_AUGMENT_LIMITS: dict[str, int] = {
    "entertainment": 6,
    "sports_rec": 6,
    "nature_outdoors": 6,
    "dining": 8,
    "fitness_wellness": 6,
    "shopping": 6,
}


@dataclass(frozen=True)
class AudienceConfig:
    augment_queries: dict[str, list[str]]
    augment_limits: dict[str, int] = field(default_factory=lambda: dict(_DEFAULT_AUGMENT_LIMITS))


AUDIENCE_CONFIG: dict[str, AudienceConfig] = {
    "first_time_homebuyers": AudienceConfig(augment_queries={
        "dining": [
            "trendy restaurant tapas sushi ramen",
            "craft cocktail bar gastropub",
            "vegan vegetarian restaurant",
        ],
        "entertainment": ["live music venue comedy club", "rooftop bar nightclub"],
        "sports_rec": ["climbing gym crossfit", "adult sports league"],
        "nature_outdoors": ["urban park riverwalk trail", "rooftop garden scenic overlook"],
        "fitness_wellness": ["boutique fitness spin cycling", "yoga pilates barre studio"],
        "shopping": ["vintage boutique thrift", "artisan market bookstore"],
    }),
    "growing_families": AudienceConfig(augment_queries={
        "dining": ["family restaurant kids menu", "pizza casual dining"],
        "entertainment": ["family entertainment center arcade", "children theater puppet show"],
        "sports_rec": ["youth sports soccer baseball", "community pool splash pad"],
        "nature_outdoors": [
            "playground park picnic area",
            "nature center petting zoo",
            "easy hiking family trail",
        ],
        "fitness_wellness": ["family gym pool", "kids yoga swim lessons"],
        "shopping": ["toy store children boutique", "family shopping kids clothes"],
    }),
    "downsizers_retirees": AudienceConfig(augment_queries={
        "dining": ["fine dining seafood steakhouse", "bistro brunch classic restaurant"],
        "entertainment": ["performing arts symphony opera", "historic theater concert hall"],
        "sports_rec": ["golf course country club", "tennis pickleball courts"],
        "nature_outdoors": [
            "botanical garden arboretum",
            "scenic overlook easy walk",
            "bird watching nature preserve",
        ],
        "fitness_wellness": ["wellness spa massage", "senior fitness gentle yoga"],
        "shopping": ["antique shop gallery", "bookstore artisan craft"],
    }),
    "luxury_homebuyers": AudienceConfig(augment_queries={
        "dining": ["fine dining michelin tasting menu", "upscale steakhouse sushi omakase"],
        "entertainment": ["private theater vip lounge", "exclusive club members only"],
        "sports_rec": ["private country club golf", "yacht club tennis pro"],
        "nature_outdoors": ["private garden estate grounds", "scenic overlook exclusive"],
        "fitness_wellness": ["luxury spa resort wellness", "private training personal gym"],
        "shopping": ["designer boutique luxury brand", "fine jewelry art gallery"],
    }),
    "investors_relocators": AudienceConfig(augment_queries={
        "dining": ["popular restaurant highly rated", "local favorite food hall"],
        "entertainment": ["event venue concert", "community theater performance"],
        "sports_rec": ["recreation center sports complex", "stadium arena"],
        "nature_outdoors": ["state park regional trail", "lake river waterfront"],
        "fitness_wellness": ["fitness center gym", "community recreation"],
        "shopping": ["shopping district main street", "local market retail"],
    }),
}

# Neighborhood list surfaced as neighborhoods_list for each audience
AUDIENCE_NEIGHBORHOOD_FIELD: dict[str, str] = {
    "growing_families": "neighborhoods_family_list",
    "luxury_homebuyers": "neighborhoods_luxury_list",
    "downsizers_retirees": "neighborhoods_senior_list",
    "investors_relocators": "neighborhoods_relocators_list",
}


def normalize_audience_segment(segment: str | None) -> str | None:
    """Resolve aliases; unknown or empty segments normalise to None."""
    if not segment:
        return None
    key = segment.strip().lower()
    key = AUDIENCE_SEGMENT_ALIASES.get(key, key)
    return key if key in AUDIENCE_CONFIG else None


def get_audience_label(audience: str | None) -> str:
    if not audience:
        return DEFAULT_AUDIENCE_LABEL
    return AUDIENCE_LABELS.get(audience, DEFAULT_AUDIENCE_LABEL)


def get_audience_augment_queries(audience: str) -> dict[str, list[str]] | None:
    config = AUDIENCE_CONFIG.get(audience)
    return config.augment_queries if config else None


def get_audience_augment_limit(audience: str, category: str) -> int:
    config = AUDIENCE_CONFIG.get(audience)
    if config is None:
        return 6
    return config.augment_limits.get(category, 6)
