"""
Seasonal query packs.

HOLIDAY_QUERY_PACK:     category -> month key -> phrases tied to the calendar
GEO_SEASON_QUERY_PACK:  category -> region -> month key -> phrases tied to climate

Regional packs are authored per season and expanded to month keys at import
time. Month keys are lowercase English month names ("january" ... "december").
"""

from __future__ import annotations

MONTH_KEYS: list[str] = [
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
]

_SEASON_MONTHS: dict[str, list[str]] = {
    "winter": ["december", "january", "february"],
    "spring": ["march", "april", "may"],
    "summer": ["june", "july", "august"],
    "fall": ["september", "october", "november"],
}


HOLIDAY_QUERY_PACK: dict[str, dict[str, list[str]]] = {
    "community_events": {
        "january": ["new year celebration", "winter festival"],
        "february": ["valentines day event", "mardi gras celebration"],
        "march": ["st patricks day parade", "spring festival"],
        "april": ["easter egg hunt", "earth day event"],
        "may": ["memorial day event", "cinco de mayo festival"],
        "june": ["juneteenth celebration", "summer concert series"],
        "july": ["fourth of july fireworks", "independence day parade"],
        "august": ["back to school event", "summer night market"],
        "september": ["labor day festival", "oktoberfest"],
        "october": ["halloween festival", "pumpkin patch"],
        "november": ["veterans day parade", "thanksgiving turkey trot"],
        "december": ["holiday lights display", "christmas market"],
    },
    "dining": {
        "february": ["valentines dinner restaurant"],
        "march": ["irish pub"],
        "may": ["mothers day brunch"],
        "november": ["thanksgiving dinner restaurant"],
        "december": ["holiday dinner restaurant"],
    },
    "coffee_brunch": {
        "may": ["mothers day brunch"],
        "october": ["pumpkin spice latte"],
        "december": ["holiday drinks cafe"],
    },
    "nightlife_social": {
        "march": ["st patricks day bar"],
        "october": ["halloween party bar"],
        "december": ["new years eve party"],
    },
    "attractions": {
        "october": ["haunted house", "corn maze"],
        "december": ["holiday light show", "ice skating rink"],
    },
    "shopping": {
        "november": ["black friday shopping district"],
        "december": ["holiday market gifts", "christmas shop"],
    },
    "entertainment": {
        "october": ["haunted attraction"],
        "december": ["nutcracker ballet", "holiday concert"],
    },
    "nature_outdoors": {
        "october": ["fall foliage trail"],
        "april": ["wildflower trail"],
    },
}


_GEO_SEASON_SOURCE: dict[str, dict[str, dict[str, list[str]]]] = {
    "nature_outdoors": {
        "pacific_northwest": {
            "winter": ["rainforest trail", "snowshoe trail"],
            "spring": ["waterfall hike", "wildflower meadow"],
            "summer": ["alpine lake hike", "old growth forest"],
            "fall": ["hot springs", "fall colors hike"],
        },
        "mountain": {
            "winter": ["snowshoe trail", "cross country ski trail"],
            "spring": ["wildflower meadow", "canyon trail"],
            "summer": ["alpine lake", "mountain trail"],
            "fall": ["aspen foliage drive", "scenic overlook"],
        },
        "desert_southwest": {
            "winter": ["desert preserve", "red rock trail"],
            "spring": ["desert wildflower trail", "saguaro trail"],
            "summer": ["sunrise hike", "slot canyon"],
            "fall": ["red rock trail", "desert botanical garden"],
        },
        "gulf_coast": {
            "winter": ["bird sanctuary", "coastal wetlands"],
            "spring": ["bayou trail", "wildflower trail"],
            "summer": ["beach park", "river tubing"],
            "fall": ["coastal wetlands", "nature preserve"],
        },
        "atlantic_south": {
            "winter": ["nature preserve", "coastal trail"],
            "spring": ["barrier island", "botanical garden"],
            "summer": ["beach", "springs swimming"],
            "fall": ["coastal trail", "state park"],
        },
        "mid_atlantic": {
            "winter": ["state park winter hike"],
            "spring": ["bay trail", "cherry blossom"],
            "summer": ["estuary kayak", "state park"],
            "fall": ["fall foliage", "bay trail"],
        },
        "new_england": {
            "winter": ["winter hike", "snowshoe trail"],
            "spring": ["rocky coast trail", "lighthouse walk"],
            "summer": ["lake beach", "rocky coast trail"],
            "fall": ["fall foliage", "covered bridge"],
        },
        "great_lakes": {
            "winter": ["winter hike", "frozen waterfall"],
            "spring": ["riverwalk", "nature preserve"],
            "summer": ["lakefront trail", "dunes"],
            "fall": ["fall foliage", "lakefront trail"],
        },
        "california": {
            "winter": ["whale watching point", "coastal trail"],
            "spring": ["wildflower hike", "canyon hike"],
            "summer": ["redwood forest", "beach"],
            "fall": ["wine country trail", "coastal trail"],
        },
        "hawaii": {
            "winter": ["whale watching", "beach park"],
            "spring": ["tropical garden", "waterfall hike"],
            "summer": ["snorkel beach", "volcanic trail"],
            "fall": ["waterfall hike", "tropical garden"],
        },
        "alaska": {
            "winter": ["northern lights viewpoint", "winter trail"],
            "spring": ["wildlife refuge", "glacier viewpoint"],
            "summer": ["wilderness trail", "glacier viewpoint"],
            "fall": ["wildlife refuge", "fall colors trail"],
        },
    },
    "sports_rec": {
        "pacific_northwest": {
            "winter": ["ski resort", "climbing gym"],
            "summer": ["kayak river", "mountain biking"],
        },
        "mountain": {
            "winter": ["ski resort", "snowboarding"],
            "summer": ["mountain biking", "fly fishing"],
        },
        "desert_southwest": {
            "winter": ["golf course", "rock climbing"],
            "spring": ["trail running", "mountain biking"],
        },
        "gulf_coast": {
            "spring": ["fishing charter", "kayak tour"],
            "summer": ["fishing charter", "water park"],
        },
        "atlantic_south": {
            "spring": ["golf course", "fishing pier"],
            "summer": ["surfing", "beach volleyball"],
        },
        "mid_atlantic": {
            "summer": ["sailing", "kayak rental"],
            "fall": ["golf course"],
        },
        "new_england": {
            "winter": ["ski resort", "ice skating"],
            "summer": ["sailing", "whale watching"],
        },
        "great_lakes": {
            "winter": ["ice fishing", "ice rink"],
            "summer": ["boat rental", "beach volleyball"],
        },
        "california": {
            "summer": ["surfing", "sailing"],
            "fall": ["rock climbing", "mountain biking"],
        },
        "hawaii": {
            "winter": ["surfing"],
            "summer": ["snorkeling", "outrigger canoe"],
        },
        "alaska": {
            "winter": ["dog sledding"],
            "summer": ["fishing charter", "kayaking"],
        },
    },
    "attractions": {
        "pacific_northwest": {"summer": ["farmers market", "brewery"]},
        "mountain": {"winter": ["hot springs resort"], "summer": ["scenic railway"]},
        "desert_southwest": {"winter": ["observatory", "historic pueblo"]},
        "gulf_coast": {"summer": ["aquarium"], "fall": ["historic district"]},
        "atlantic_south": {"summer": ["pier", "aquarium"], "fall": ["historic fort"]},
        "mid_atlantic": {"summer": ["boardwalk"], "winter": ["maritime museum"]},
        "new_england": {"summer": ["lighthouse", "historic harbor"], "fall": ["lobster shack"]},
        "great_lakes": {"summer": ["lakefront attraction"], "winter": ["science museum"]},
        "california": {"fall": ["winery"], "summer": ["theme park"]},
        "hawaii": {"summer": ["luau"], "winter": ["cultural center"]},
        "alaska": {"summer": ["glacier cruise"], "winter": ["wildlife center"]},
    },
}


def _expand_seasons(
    source: dict[str, dict[str, dict[str, list[str]]]],
) -> dict[str, dict[str, dict[str, list[str]]]]:
    expanded: dict[str, dict[str, dict[str, list[str]]]] = {}
    for category, regions in source.items():
        expanded[category] = {}
        for region, seasons in regions.items():
            months: dict[str, list[str]] = {}
            for season, phrases in seasons.items():
                for month in _SEASON_MONTHS[season]:
                    months[month] = list(phrases)
            expanded[category][region] = months
    return expanded


GEO_SEASON_QUERY_PACK: dict[str, dict[str, dict[str, list[str]]]] = _expand_seasons(
    _GEO_SEASON_SOURCE
)


# Per-month prompt hint for the structured-text "things to do" request
MONTH_SEASONAL_HINTS: dict[str, str] = {
    "january": "Prioritize winter activities and cozy indoor events.",
    "february": "Prioritize winter activities and cozy indoor events.",
    "march": "Prioritize early spring activities and seasonal transitions.",
    "april": "Prioritize spring activities and outdoor events.",
    "may": "Prioritize spring outings, festivals, and outdoor activities.",
    "june": "Prioritize summer activities and outdoor events.",
    "july": "Prioritize summer activities, outdoor events, and local celebrations.",
    "august": "Prioritize summer activities, outdoor events, and late-summer outings.",
    "september": "Prioritize early fall activities, festivals, and outdoor events.",
    "october": "Prioritize fall activities, halloween events, and seasonal outings.",
    "november": "Prioritize late-fall activities and holiday lead-in events.",
    "december": "Prioritize winter activities and holiday-season events.",
}
