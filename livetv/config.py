"""
Configuration management for the live TV backend.
Uses pydantic-settings for environment variable loading.
"""
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    app_name: str = "LiveTV"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000

    # CORS Configuration
    # Default allows all origins for development; set LIVETV_CORS_ORIGINS for production
    cors_origins: list[str] = ["*"]

    # Rate Limiting
    rate_limit_per_minute: int = 100

    # Base URL used to resolve root-relative playlist paths
    base_url: str = "http://localhost:3000"

    # Outbound fetches
    default_user_agent: str = "AptvPlayer/1.4.10"
    m3u_fetch_timeout: float = 30.0

    # Durable store
    database_path: str = "data/livetv.db"
    store_timeout: float = 10.0

    # Config file read when no admin config has been persisted yet
    config_file_path: str = "config.json"

    # Site owner, always present in the user list with the owner role
    owner_username: str = "admin"

    # Pydantic V2 configuration
    model_config = SettingsConfigDict(env_prefix="LIVETV_", env_file=".env")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
