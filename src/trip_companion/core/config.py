from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "dev"
    public_base_url: str = "http://localhost:8000"

    database_url: str = "sqlite:///./trip_companion.db"
    redis_url: str = "redis://localhost:6379/0"

    # Identity provider (mandatory)
    identity_url: str | None = None
    identity_service_key: str | None = None
    identity_timeout_seconds: float = 10.0
    identity_cache_max_ttl_seconds: int = 300
    identity_cache_max_entries: int = 1000

    # AI document service
    ai_api_key: str | None = None
    ai_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    ai_model: str = "gemini-2.5-flash"
    ai_timeout_seconds: float = 60.0
    bypass_ai_limits: bool = False

    # Geocoding / routing
    maps_api_key: str | None = None
    maps_base_url: str = "https://maps.googleapis.com/maps/api"
    maps_geocode_timeout_seconds: float = 10.0
    maps_directions_timeout_seconds: float = 15.0

    # Emission factors
    climatiq_api_key: str | None = None
    climatiq_base_url: str = "https://api.climatiq.io/data/v1"
    climatiq_data_version: str = "^21"
    climatiq_region: str = "AT"
    climatiq_activity_id_gasoline: str | None = None
    climatiq_activity_id_diesel: str | None = None
    climatiq_timeout_seconds: float = 10.0
    factor_cache_ttl_seconds: int = 30 * 24 * 60 * 60
    factor_cache_max_entries: int = 256

    # Grid carbon intensity
    electricity_maps_api_key: str | None = None
    electricity_maps_base_url: str = "https://api.electricitymap.org/v3"
    electricity_maps_default_zone: str = "AT"
    electricity_maps_timeout_seconds: float = 10.0
    grid_cache_ttl_seconds: int = 5 * 60

    storage_backend: Literal["local", "s3"] = "local"
    local_storage_path: Path = Path(".local_storage")

    s3_endpoint_url: str | None = None
    s3_region: str | None = None
    s3_bucket: str = "trip-companion"
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None

    rate_limit_backend: Literal["memory", "redis"] = "memory"

    max_upload_bytes: int = 10 * 1024 * 1024
    job_stuck_timeout_minutes: int = 10


settings = Settings()
