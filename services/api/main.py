"""
Community API service: points of interest near a postal code.

Entrypoint: uvicorn services.api.main:app --host 0.0.0.0 --port 8000
"""

import logging
import uuid
from contextlib import asynccontextmanager

import anthropic
import httpx
import redis.asyncio as aioredis
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from services.api.community.cache import CommunityCache
from services.api.community.city_description import CityDescriptionService
from services.api.community.geo import GeoIndex
from services.api.community.orchestrator import CommunityDataOrchestrator
from services.api.community.perplexity.client import PerplexityClient
from services.api.community.perplexity.provider import PerplexityProvider
from services.api.community.places.client import PlacesClient
from services.api.community.places.provider import GooglePlacesProvider
from services.api.community.registry import GOOGLE, PERPLEXITY, ProviderRegistry
from services.api.config import settings
from services.api.routers import community

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    # Redis is a soft dependency: without it every cache read is a miss
    redis_client = None
    if settings.redis_url:
        try:
            redis_client = aioredis.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
            )
            await redis_client.ping()
        except Exception:
            logger.warning("Redis unavailable at startup; community caching disabled", exc_info=True)
            redis_client = None

    http_client = httpx.AsyncClient()
    anthropic_client = (
        anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
        if settings.anthropic_api_key
        else None
    )

    cache = CommunityCache(
        redis_client,
        prefix=settings.community_cache_key_prefix,
        ttl_days=settings.community_cache_ttl_days,
    )
    geo = GeoIndex.from_csv(settings.community_cities_dataset)
    city_descriptions = CityDescriptionService(
        anthropic_client,
        cache,
        model=settings.city_description_model,
        timeout_s=settings.city_description_timeout_s,
    )

    places_client = PlacesClient(
        http_client,
        settings.google_places_api_key,
        timeout_s=settings.places_api_timeout_s,
    )
    perplexity_client = PerplexityClient(
        http_client,
        settings.perplexity_api_key,
        model=settings.perplexity_model,
        timeout_s=settings.perplexity_timeout_s,
        max_tokens=settings.perplexity_max_tokens,
        temperature=settings.perplexity_temperature,
    )

    registry = ProviderRegistry(
        {
            GOOGLE: GooglePlacesProvider(places_client, cache, geo, city_descriptions),
            PERPLEXITY: PerplexityProvider(perplexity_client, cache, geo, city_descriptions),
        },
        primary=settings.community_data_provider,
    )
    logger.info("Community data provider: %s (fallback: %s)", registry.primary_name,
                registry.fallback.name if registry.fallback else None)

    app.state.redis = redis_client
    app.state.settings = settings
    app.state.community_orchestrator = CommunityDataOrchestrator(
        registry,
        redis_client,
        prefix=settings.community_cache_key_prefix,
    )

    yield

    await http_client.aclose()
    if anthropic_client:
        await anthropic_client.close()
    if redis_client:
        await redis_client.aclose()


app = FastAPI(
    title="Community API",
    version=settings.app_version,
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url=None,
    lifespan=lifespan,
)

app.include_router(community.router)


@app.get("/health")
async def health(request: Request) -> dict:
    return {
        "success": True,
        "data": {"status": "ok", "version": settings.app_version},
        "requestId": getattr(request.state, "request_id", ""),
    }


# Request ID injection
@app.middleware("http")
async def request_envelope_middleware(request: Request, call_next) -> Response:
    request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# -- Exception Handlers --

_DEFAULT_ERRORS = {
    404: ("NOT_FOUND", "Resource not found."),
    422: ("VALIDATION_ERROR", "Validation error."),
}


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, dict) else {}
    error = detail.get("error")
    if not isinstance(error, dict):
        code, message = _DEFAULT_ERRORS.get(exc.status_code, ("HTTP_ERROR", str(exc.detail)))
        error = {"code": code, "message": message}
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": error,
            "requestId": getattr(request.state, "request_id", str(uuid.uuid4())),
        },
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": {"code": "VALIDATION_ERROR", "message": str(exc.errors())},
            "requestId": getattr(request.state, "request_id", str(uuid.uuid4())),
        },
    )


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {"code": "INTERNAL_ERROR", "message": "An unexpected error occurred."},
            "requestId": getattr(request.state, "request_id", str(uuid.uuid4())),
        },
    )
