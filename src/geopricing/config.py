"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="GEOPRICING_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Dynamic Geopricing API"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO", description="Root log level for the service.")
    data_root: Path = Field(default=Path("data"), description="Root directory for static data files.")
    seed_file: Path = Field(
        default=Path("data/geopricing_seed.json"),
        description="Shop origins and zones used when no database is configured.",
    )

    # Mapping providers
    google_maps_api_key: Optional[str] = Field(
        default=None,
        description="API key for the Google Geocoding and Distance Matrix services.",
    )
    distance_provider: Literal["google", "osrm"] = Field(
        default="google",
        description="Which distance-matrix provider computes drive times.",
    )
    osrm_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for the OSRM routing service (e.g., http://localhost:5000).",
    )
    osrm_profile: Literal["driving", "driving-hgv"] = Field(default="driving")
    geocoding_region: Optional[str] = Field(default="ca", description="Region bias for geocoding lookups.")
    provider_timeout_seconds: float = Field(default=10.0, gt=0.0)
    provider_max_retries: int = Field(default=2, ge=0)
    provider_backoff_seconds: float = Field(default=0.5, ge=0.0)
    max_destinations_per_request: int = Field(default=25, ge=1, le=25)
    max_parallel_requests: int = Field(default=4, ge=1)

    # Drive time estimation and caching
    fallback_speed_kmh: float = Field(default=40.0, gt=0.0, description="Urban average speed for estimates.")
    routing_factor: float = Field(default=1.3, ge=1.0, description="Road distance over straight-line distance.")
    drive_time_cache_ttl_seconds: int = Field(default=900, ge=1)
    drive_time_cache_max_entries: int = Field(default=10_000, ge=1)
    cache_sweep_interval_seconds: float = Field(default=60.0, gt=0.0)
    redis_url: Optional[str] = Field(default=None, description="Shared drive-time cache (redis://host:port/db).")

    # Pricing
    default_origin_radius_km: float = Field(default=100.0, gt=0.0)
    quote_validity_minutes: int = Field(default=30, ge=1)
    persist_calculations: bool = Field(default=True)

    # Rate limiting
    rate_limit_requests: int = Field(default=10, ge=1)
    rate_limit_window_seconds: float = Field(default=60.0, gt=0.0)
    rate_limit_sweep_interval_seconds: float = Field(default=60.0, gt=0.0)

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=("http://localhost:3000", "http://127.0.0.1:3000"),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    @field_validator("data_root", "seed_file", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


settings = Settings()
