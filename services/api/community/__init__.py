"""
Community content subsystem: points of interest near a postal code.

Two interchangeable providers produce CommunityData (one bulleted list per
category plus seasonal sections):

  places      place-search provider; multi-anchor search, filtering, dedupe,
              ranking, month-stale pools and audience augmentation
  perplexity  structured-text provider; one JSON-schema request per category

CommunityDataOrchestrator picks the configured primary, applies the one-way
fallback, and assembles the content context (rotation, monthly events, city
description).
"""
