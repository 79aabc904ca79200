"""
Configuration Management for Spendy

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see which external endpoints the client talks to
and ensures every value is validated at startup.

Unlike server-side services, the client holds no API keys: every field
has a sensible default so the core runs without any environment set up.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class IdentitySettings(BaseSettings):
    """Identity (auth) endpoint configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SPENDY_IDENTITY_",
        extra="ignore"
    )

    base_url: str = Field(
        default="http://localhost:8080/Auth/rest/auth",
        description="Base URL of the identity endpoint"
    )
    timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        le=120,
        description="Per-request timeout enforced by the transport"
    )

    # Retry policy for connection-level failures only
    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for requests that fail to connect"
    )
    retry_wait_min_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Minimum backoff between attempts"
    )
    retry_wait_max_seconds: float = Field(
        default=8.0,
        ge=0,
        description="Maximum backoff between attempts"
    )

    @field_validator('base_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Paths are joined with a leading slash, so drop the trailing one."""
        return v.rstrip("/")


class ExpenseApiSettings(BaseSettings):
    """Expense transport configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SPENDY_EXPENSES_",
        extra="ignore"
    )

    base_url: str = Field(
        default="http://localhost:8080/Expenses/rest/expenses",
        description="Base URL of the expenses API"
    )
    list_path: str = Field(
        default="/list",
        description="Path returning all expenses of the current user"
    )
    by_date_path: str = Field(
        default="/byDate",
        description="Path returning expenses between two dates"
    )

    @field_validator('base_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class SecureStoreSettings(BaseSettings):
    """Secure (keychain-like) storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SPENDY_KEYCHAIN_",
        extra="ignore"
    )

    service: str = Field(
        default="com.appios.auth",
        description="Service namespace every secret is stored under"
    )
    path: str = Field(
        default=str(Path.home() / ".spendy" / "keychain.json"),
        description="Location of the file-backed secure store"
    )

    # Account names inside the service namespace
    access_token_account: str = "accessToken"
    refresh_token_account: str = "refreshToken"
    pin_account: str = "userPIN"


class AnalyticsSettings(BaseSettings):
    """Classification and aggregation configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SPENDY_ANALYTICS_",
        extra="ignore"
    )

    keyword_rules_path: Optional[str] = Field(
        default=None,
        description="Optional JSON file replacing the built-in keyword rules"
    )
    monthly_bucket_threshold_days: int = Field(
        default=31,
        ge=1,
        description="Date ranges longer than this are bucketed by month"
    )

    @field_validator('keyword_rules_path')
    @classmethod
    def validate_rules_path(cls, v: Optional[str]) -> Optional[str]:
        """Warn if the rules file doesn't exist (the built-in table is used instead)."""
        if v and not Path(v).exists():
            import warnings
            warnings.warn(
                f"Keyword rules file not found at {v}. "
                "Falling back to the built-in keyword table."
            )
        return v


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

    # Credentials
    pin_length: int = Field(
        default=6,
        ge=4,
        le=12,
        description="Expected number of digits in the user PIN"
    )
    min_username_length: int = Field(
        default=3,
        ge=1,
        description="Minimum username length accepted at registration"
    )
    biometric_reason: str = Field(
        default="Sblocca l'app per accedere ai tuoi dati",
        description="Reason shown by the platform biometric prompt"
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

    @property
    def identity(self) -> IdentitySettings:
        return IdentitySettings()

    @property
    def expenses(self) -> ExpenseApiSettings:
        return ExpenseApiSettings()

    @property
    def secure_store(self) -> SecureStoreSettings:
        return SecureStoreSettings()

    @property
    def analytics(self) -> AnalyticsSettings:
        return AnalyticsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries for the failures.
    """
    results = {}
    settings = get_settings()

    for name in ("identity", "expenses", "secure_store", "analytics", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
