"""
Community content test suite.

Covers:
- Geo resolution, distance caches, service-area centers
- Seasonal planner: month keys, seeded shuffle, header rotation, call estimates
- Scoring, dedupe, tiered sampling, list formatting
- Anchored search fan-out and candidate filters
- Month-stale pools, background refresh, details hydration
- Audience delta merge and skip categories
- Cache keys, TTLs, degraded Redis
- HTTP retry, Places and Perplexity clients (httpx.MockTransport)
- Structured-text parsing, formatting, provider caching
- Registry, fallback, rotation, content context, router
"""
