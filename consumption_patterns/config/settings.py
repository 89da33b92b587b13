"""
Consumption Patterns Scoring Engine
Centralized Configuration Management

Pydantic settings with environment variable support for the database,
the pattern scoring pipeline and logging.
"""

from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="consumption_patterns", alias="database", description="Database name")
    user: str = Field(default="patterns", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(default=None, description="Full async URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """Async database URL, asyncpg unless overridden"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class PatternSettings(BaseSettings):
    """Pattern scoring configuration"""

    model_config = SettingsConfigDict(env_prefix="PATTERNS_")

    trend_weeks: int = Field(default=12, ge=1, description="Weeks plotted in the VPC trend")
    leaderboard_size: int = Field(default=3, ge=1, description="Waiters per best/worst leaderboard")
    max_concurrent_reports: int = Field(default=4, ge=1, description="Reports computed in parallel per batch")

    # Taxonomy names resolved per group
    pattern_taxonomy_name: str = Field(default="patron", description="Taxonomy holding pattern tags")
    waiter_taxonomy_name: str = Field(default="mesonero", description="Taxonomy holding waiter tags")
    not_workable_taxonomy_name: str = Field(default="No trabajable", description="Taxonomy of not-workable exclusion tags")

    grouping_kind: str = Field(default="product-experience-tags", description="Category grouping used by aggregates")
    goal_type: str = Field(default="PATTERN", description="Goal type evaluated by the engine")


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="consumption-patterns", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    patterns: PatternSettings = Field(default_factory=PatternSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
