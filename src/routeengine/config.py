"""Application configuration and settings management."""

from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="ROUTEENGINE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Route Optimization & Capacity Engine"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO", description="Root log level for the service.")
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Mapping service (Google Distance Matrix)
    maps_api_key: Optional[str] = Field(
        default=None,
        description="API key for the distance matrix service. Leave empty to use haversine estimates.",
    )
    maps_base_url: str = Field(
        default="https://maps.googleapis.com/maps/api",
        description="Base URL for the mapping service.",
    )
    maps_timeout_seconds: float = Field(default=10.0, gt=0.0)
    maps_max_retries: int = Field(default=1, ge=0, le=1)
    maps_backoff_seconds: float = Field(default=0.5, ge=0.0)
    maps_max_parallel_requests: int = Field(default=4, ge=1)
    maps_units: Literal["metric", "imperial"] = "metric"
    matrix_cache_ttl_seconds: float = Field(default=900.0, ge=0.0)
    matrix_cache_max_entries: int = Field(default=256, ge=0)

    # Haversine fallback
    average_speed_kmh: float = Field(default=40.0, gt=0.0)

    # Route optimizer
    exact_search_max_trips: int = Field(default=8, ge=2, le=9)
    solver_first_solution_strategy: str = Field(default="PATH_CHEAPEST_ARC")
    solver_local_search_metaheuristic: str = Field(default="GREEDY_DESCENT")
    solver_time_limit_seconds: int = Field(default=5, ge=1)
    two_opt_max_passes: int = Field(default=50, ge=1)
    batch_max_workers: int = Field(default=4, ge=1)

    # Capacity planning
    default_vehicle_capacity: int = Field(default=8, ge=1)
    capacity_time_window_minutes: int = Field(default=15, ge=0)
    capacity_proximity_km: float = Field(default=3.0, ge=0.0)

    # Combination matching and capacity alerts
    combination_time_window_minutes: int = Field(default=30, gt=0)
    combination_proximity_km: float = Field(default=2.0, gt=0.0)
    combination_history_saturation: int = Field(default=5, ge=1)
    default_fare: float = Field(default=10.0, ge=0.0)
    alert_utilization_threshold: float = Field(default=0.6, gt=0.0, le=1.0)
    alert_min_capacity: int = Field(default=4, ge=1)
    alert_max_recommendations: int = Field(default=5, ge=1)

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

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

    @field_validator("maps_api_key", "supabase_url", "supabase_key", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


settings = Settings()
