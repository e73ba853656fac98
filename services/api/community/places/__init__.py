"""Place-search provider: client, anchored search, scoring, pools, audience augmentation."""
