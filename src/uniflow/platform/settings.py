"""Centralized configuration using pydantic-settings.

All configuration is loaded from environment variables and .env files.
This is the single source of truth for all platform configuration.
"""

from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Settings(BaseSettings):
    """Main application settings.

    All settings can be overridden via environment variables.
    For nested settings, use double underscore: SUBSCRIPTIONS__TRIAL_DAYS=30
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    # ============================================================
    # Core Application Settings
    # ============================================================

    app_name: str = Field("uniflow-crm", description="Application name")
    app_version: str = Field("1.0.0", description="Application version")
    environment: Environment = Field(Environment.DEVELOPMENT, description="Deployment environment")
    debug: bool = Field(False, description="Debug mode")
    testing: bool = Field(False, description="Testing mode")

    # ============================================================
    # Database Configuration
    # ============================================================

    class DatabaseSettings(BaseModel):
        """Database configuration."""

        url: str | None = Field(None, description="Full database URL")
        host: str = Field("localhost", description="Database host")
        port: int = Field(5432, description="Database port")
        database: str = Field("uniflow", description="Database name")
        username: str = Field("uniflow", description="Database username")
        password: str = Field("", description="Database password")

        # Connection pool
        pool_size: int = Field(10, description="Connection pool size")
        max_overflow: int = Field(20, description="Max overflow connections")
        pool_timeout: int = Field(30, description="Pool timeout in seconds")
        pool_recycle: int = Field(3600, description="Recycle connections after seconds")
        pool_pre_ping: bool = Field(True, description="Test connections before use")

        echo: bool = Field(False, description="Echo SQL statements")

    database: DatabaseSettings = DatabaseSettings()  # type: ignore[call-arg]

    # ============================================================
    # Observability
    # ============================================================

    class ObservabilitySettings(BaseModel):
        """Observability configuration."""

        log_level: LogLevel = Field(LogLevel.INFO, description="Log level")
        log_format: str = Field("json", description="Log format (json or text)")
        enable_correlation_ids: bool = Field(True, description="Enable correlation IDs")

    observability: ObservabilitySettings = ObservabilitySettings()  # type: ignore[call-arg]

    # ============================================================
    # Subscription Lifecycle
    # ============================================================

    class SubscriptionSettings(BaseModel):
        """Trial and subscription defaults."""

        trial_days: int = Field(15, ge=0, description="Trial length when the plan has none")
        trial_plan: str = Field(
            "Professional", description="Plan whose features a new tenant trials"
        )
        currency: str = Field("INR", description="Billing currency for subscriptions")
        organization_id_prefix: str = Field(
            "UFS", description="Prefix for generated organization codes (UFS001, UFS002...)"
        )
        organization_id_width: int = Field(3, ge=1, description="Zero padding of org codes")

    subscriptions: SubscriptionSettings = SubscriptionSettings()  # type: ignore[call-arg]

    # ============================================================
    # Reseller Commission
    # ============================================================

    class CommissionSettings(BaseModel):
        """Reseller commission defaults."""

        default_rate: Decimal = Field(
            Decimal("10"), ge=0, le=100, description="Default commission percentage"
        )
        partner_portal_url: str = Field(
            "http://localhost:3000", description="Base URL used in reseller referral links"
        )

    commission: CommissionSettings = CommissionSettings()  # type: ignore[call-arg]

    # ============================================================
    # Usage Metering
    # ============================================================

    class UsageSettings(BaseModel):
        """Where live usage counts come from."""

        tables: dict[str, str] = Field(
            default_factory=dict,
            description="Metered resource -> collaborator table counted per tenant "
            '(e.g. {"leads": "leads", "contacts": "contacts"})',
        )
        tenant_column: str = Field("tenant_id", description="Tenant key column in those tables")
        source_timeout_seconds: float = Field(
            2.0, gt=0, description="A source slower than this reports usage as unknown"
        )

    usage: UsageSettings = UsageSettings()  # type: ignore[call-arg]

    # ============================================================
    # Validation & Helpers
    # ============================================================

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v: Any) -> Any:
        """Validate environment."""
        if isinstance(v, str):
            return Environment(v.lower())
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_testing(self) -> bool:
        """Check if running in test mode."""
        return self.testing or self.environment == Environment.TEST


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get global settings instance (singleton)."""
    global _settings
    if _settings is None:
        _settings = Settings()  # type: ignore
    return _settings


# Convenience export
settings = get_settings()
