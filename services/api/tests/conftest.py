"""
Shared test fixtures for the community API test suite.

Provides:
- FakeRedis: dict-backed async Redis stand-in that records TTLs
- async FastAPI test client with a mocked orchestrator on app.state
"""

import os
from typing import Any
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

# Ensure test env vars before any app imports
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("COMMUNITY_DATA_PROVIDER", "google")
os.environ.setdefault("GOOGLE_PLACES_API_KEY", "")
os.environ.setdefault("PERPLEXITY_API_KEY", "")
os.environ.setdefault("ANTHROPIC_API_KEY", "")


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------

class FakeRedis:
    """In-memory async Redis subset: get / set(ex=) / delete / ping."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise ConnectionError("redis unavailable")

    async def get(self, key: str) -> str | None:
        self._check()
        return self.store.get(key)

    async def set(self, key: str, value: Any, ex: int | None = None) -> bool:
        self._check()
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def ping(self) -> bool:
        self._check()
        return True

    async def aclose(self) -> None:
        return None


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


# ---------------------------------------------------------------------------
# FastAPI test client — orchestrator mocked, no external services
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_orchestrator():
    orchestrator = AsyncMock()
    orchestrator.get_community_data_by_zip_and_audience = AsyncMock(return_value=None)
    orchestrator.get_community_content_context = AsyncMock()
    return orchestrator


@pytest.fixture
async def app(fake_redis, mock_orchestrator):
    """Create a test FastAPI app with mocked dependencies."""
    from services.api.main import app as _app

    _app.state.redis = fake_redis
    _app.state.settings = __import__(
        "services.api.config", fromlist=["settings"]
    ).settings
    _app.state.community_orchestrator = mock_orchestrator
    return _app


@pytest.fixture
async def client(app):
    """Async HTTP client bound to the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
