"""Application configuration via Pydantic Settings.

All configuration is loaded from environment variables following 12-factor principles.
"""

import re
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        description="PostgreSQL async connection string",
    )
    database_schema: str | None = Field(
        default=None,
        description="PostgreSQL schema for isolated environments (e.g., pr_42)",
    )

    @field_validator("database_schema")
    @classmethod
    def validate_database_schema(cls, v: str | None) -> str | None:
        if v is None:
            return None
        if not re.match(r"^[a-z_][a-z0-9_]{0,62}$", v):
            msg = "Invalid database_schema: must match ^[a-z_][a-z0-9_]{0,62}$"
            raise ValueError(msg)
        return v

    # JWT (tokens are issued by the external authentication service)
    jwt_secret_key: str = Field(min_length=32, description="Secret key for verifying JWTs (minimum 32 characters)")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")

    # Tallying
    tally_weighting: Literal["linear", "all_or_nothing"] = Field(
        default="linear",
        description="Knowledge weighting curve applied to ballots at tally time",
    )
    quiz_lenient_option_match: bool = Field(
        default=True,
        description="Accept a quiz answer that matches any configured choice when the answer key does not match",
    )

    # Auto-tally
    auto_tally_enabled: bool = Field(
        default=False,
        description="Run the auto-tally sweep in-process (otherwise drive it from cron via the CLI)",
    )
    auto_tally_interval: int = Field(
        default=120,
        description="Seconds between in-process auto-tally sweeps",
        ge=30,
    )
    auto_tally_window_seconds: int = Field(
        default=300,
        description="A stage whose end fell within this many seconds before a sweep is tallied",
        gt=0,
    )

    # Vote opening requirements
    min_stage1_options: int = Field(
        default=2,
        description="Minimum number of Stage 1 issues required to open a vote",
        gt=0,
    )
    min_questions_per_option: int = Field(
        default=3,
        description="Minimum number of well-formed knowledge questions per issue required to open a vote",
        ge=0,
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_dir: str | None = Field(
        default=None,
        description="Directory for log files (enables file logging with 24h rotation when set)",
    )

    # CORS
    cors_origins: str = Field(
        default="",
        description="Comma-separated list of allowed CORS origins (must be explicitly configured)",
    )
    cors_origin_regex: str = Field(
        default="",
        description="Regex pattern for allowed CORS origins",
    )

    # Environment
    environment: str = Field(
        default="production",
        description="Deployment environment name (e.g. production, dev, staging)",
    )

    # API
    api_v1_prefix: str = Field(
        default="/api/v1",
        description="API version prefix",
    )

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        if not self.cors_origins.strip():
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()  # type: ignore[call-arg]
