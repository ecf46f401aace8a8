"""
Application configuration using Pydantic Settings.
Loads from environment variables and .env file.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Local status-sync outbox
    database_url: str = "sqlite+aiosqlite:///./freshroute.db"

    # Application
    app_env: str = "development"
    debug: bool = False
    app_title: str = "FreshRoute Transporter Gateway"
    app_version: str = "1.0.0"
    api_prefix: str = "/api/v1"

    # Marketplace backend
    backend_url: str = "http://localhost:4000"
    transporter_api_prefix: str = "/api/transporter"
    request_timeout_seconds: float = 10.0

    # Geofence verification
    geofence_threshold_m: float = 100.0  # pickup radius in meters

    # External navigation handoff
    maps_directions_url: str = "https://www.google.com/maps/dir/"
    travel_mode: str = "driving"

    # Map auto-framing
    viewport_padding_factor: float = 1.2
    viewport_min_delta: float = 0.01


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
