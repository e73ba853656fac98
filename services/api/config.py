"""
Application configuration via pydantic-settings.
All config read from environment variables with sensible defaults for local dev.
"""

from pathlib import Path

from pydantic_settings import BaseSettings
from pydantic import Field

_DEFAULT_CITIES_DATASET = str(
    Path(__file__).resolve().parent / "community" / "data" / "us_cities_sample.csv"
)


class Settings(BaseSettings):
    # App
    app_name: str = "community-api"
    app_version: str = "0.1.0"
    environment: str = Field(default="development", pattern=r"^(development|staging|production)$")
    debug: bool = False

    # Redis: an empty string disables the shared cache
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Community data
    # Primary provider: "google" (place search) or "perplexity" (structured text)
    community_data_provider: str = "google"
    community_cache_key_prefix: str = "community"
    community_cache_ttl_days: int = Field(default=30, ge=1)
    community_cities_dataset: str = _DEFAULT_CITIES_DATASET

    # Google Places
    google_places_api_key: str = ""
    places_api_timeout_s: float = 8.0

    # Perplexity
    perplexity_api_key: str = ""
    perplexity_model: str = "sonar"
    perplexity_timeout_s: float = 30.0
    perplexity_max_tokens: int = 1800
    perplexity_temperature: float = Field(default=0.2, ge=0.0, le=2.0)

    # Anthropic (city descriptions)
    anthropic_api_key: str = ""
    city_description_model: str = "claude-haiku-4-5-20251001"
    city_description_timeout_s: float = 10.0

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}


settings = Settings()
