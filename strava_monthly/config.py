"""
Application Configuration

Uses Pydantic Settings for type-safe configuration.
"""

from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import AliasChoices, Field, field_validator, ConfigDict


class Settings(BaseSettings):
    """Application settings with validation."""

    # === Core ===
    log_level: str = Field(default="INFO", description="Logging level")

    # === Credential storage ===
    database_url: str = Field(
        default="sqlite:///./strava_credentials.db",
        description="Database holding the persisted OAuth credentials"
    )

    # === Strava client identity ===
    strava_client_id: Optional[str] = Field(default=None)
    strava_client_secret: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("strava_client_secret", "strava_secret"),  # Also accept STRAVA_SECRET
    )
    strava_redirect_uri: str = Field(
        default="http://localhost/exchange_token",
        description="Redirect URI registered with the Strava application"
    )
    strava_scope: str = Field(default="activity:read_all")

    # === Strava endpoints ===
    strava_authorize_url: str = Field(default="https://www.strava.com/oauth/authorize")
    strava_token_url: str = Field(default="https://www.strava.com/oauth/token")
    strava_deauthorize_url: str = Field(default="https://www.strava.com/oauth/deauthorize")
    strava_api_url: str = Field(default="https://www.strava.com/api/v3")

    # === HTTP ===
    http_timeout: Optional[float] = Field(
        default=None,
        description="Request timeout in seconds (unset = httpx default)"
    )

    # === Activities ===
    activities_per_page: int = Field(default=30, ge=1, le=200)
    aggregation_page_size: int = Field(default=200, ge=1, le=200)
    aggregation_months: int = Field(default=2, ge=1)
    aggregation_max_pages: Optional[int] = Field(
        default=None,
        ge=1,
        description="Page budget for monthly aggregation (unset = walk full history)"
    )

    @field_validator('database_url')
    @classmethod
    def fix_postgres_url(cls, v: str) -> str:
        """Fix postgres:// URL to postgresql://"""
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    @field_validator('strava_api_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore"
    )


# Global settings instance
settings = Settings()
