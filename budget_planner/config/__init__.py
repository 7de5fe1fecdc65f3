"""Configuration package."""

from budget_planner.config.settings import (
    ApiSettings,
    AppSettings,
    CacheSettings,
    Settings,
    SyncSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "ApiSettings",
    "AppSettings",
    "CacheSettings",
    "Settings",
    "SyncSettings",
    "get_settings",
    "validate_all_settings",
]
