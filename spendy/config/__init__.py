"""Configuration package."""

from spendy.config.settings import (
    AnalyticsSettings,
    AppSettings,
    ExpenseApiSettings,
    IdentitySettings,
    SecureStoreSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AnalyticsSettings",
    "AppSettings",
    "ExpenseApiSettings",
    "IdentitySettings",
    "SecureStoreSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
