"""
Configuration Management for Budget Planner Sync

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Each concern (remote API, local cache, sync behaviour, app runtime)
gets its own settings group with its own environment prefix, so a
deployment can override one group without touching the others.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ApiSettings(BaseSettings):
    """Remote CRUD API configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PLANNER_API_",
        extra="ignore"
    )

    base_url: str = Field(
        default="http://localhost:5000",
        description="Base URL of the budget planner API"
    )
    token: Optional[str] = Field(
        default=None,
        description="Bearer token sent with every request"
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Transport timeout for API calls"
    )

    @field_validator('base_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Endpoints are joined with a leading slash."""
        return v.rstrip("/")


class CacheSettings(BaseSettings):
    """Local entity cache configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PLANNER_CACHE_",
        extra="ignore"
    )

    backend: str = Field(
        default="file",
        pattern="^(memory|file)$",
        description="Which local store backend to use"
    )
    data_dir: Path = Field(
        default=Path(".planner_cache"),
        description="Directory holding one JSON document per storage key"
    )
    key_prefix: str = Field(
        default="budget_app_",
        description="Prefix applied to every storage key"
    )


class SyncSettings(BaseSettings):
    """Synchronization behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="PLANNER_SYNC_",
        extra="ignore"
    )

    freshness_policy: str = Field(
        default="pending_changes",
        pattern="^(pending_changes|ttl)$",
        description="Policy deciding when cached data may be served"
    )
    freshness_threshold_seconds: int = Field(
        default=3600,
        ge=0,
        description="Age after which a background refresh is attempted"
    )
    ttl_seconds: int = Field(
        default=300,
        ge=1,
        description="Cache lifetime used by the TTL policy"
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Push attempts before a queued change is left as a dead letter"
    )
    background_refresh: bool = Field(
        default=True,
        description="Refresh stale snapshots in the background"
    )
    conflict_strategy: Optional[str] = Field(
        default=None,
        pattern="^(local_wins|remote_wins|manual)$",
        description="Reconcile queued edits during sync instead of skipping their types"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for local structured logs"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def api(self) -> ApiSettings:
        return ApiSettings()

    @property
    def cache(self) -> CacheSettings:
        return CacheSettings()

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus a
    "<name>_error" entry for each group that failed.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("api", "cache", "sync", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
