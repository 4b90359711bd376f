"""
Application configuration settings.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Self


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Assessment Engine"
    APP_VERSION: str = "0.1.0"
    ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # API
    API_V1_PREFIX: str = "/v1"

    # Database
    DATABASE_URL: str = "sqlite:///./assessment.db"
    DB_POOL_SIZE: int = 10  # Number of connections to maintain
    DB_POOL_MAX_OVERFLOW: int = 20  # Max extra connections when pool exhausted
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for available connection
    DB_POOL_RECYCLE: int = 3600  # Recycle connections after 1 hour
    DB_POOL_PRE_PING: bool = True

    # Test definition defaults, applied when an author omits a setting
    DEFAULT_TIME_LIMIT_MINUTES: int = Field(default=60, gt=0)
    DEFAULT_ATTEMPTS_ALLOWED: int = Field(default=1, ge=1)
    DEFAULT_PASSING_SCORE_PERCENT: int = Field(default=70, ge=0, le=100)

    # Section validation thresholds
    # A section warns when its estimated completion time exceeds its
    # declared limit by more than this factor.
    SECTION_TIME_WARNING_RATIO: float = 2.0
    # Sum of section limits above which splitting the test is suggested (4 hours)
    MAX_TOTAL_SECTION_MINUTES: int = 240

    # Time buckets used by distribution targets (estimated seconds per question)
    TIME_BUCKET_QUICK_MAX_SECONDS: int = 120
    TIME_BUCKET_MEDIUM_MAX_SECONDS: int = 300

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields from .env not defined in Settings
    )

    @model_validator(mode="after")
    def validate_section_thresholds(self) -> Self:
        """Validate section warning thresholds at startup."""
        if self.SECTION_TIME_WARNING_RATIO <= 0:
            raise ValueError(
                f"SECTION_TIME_WARNING_RATIO must be positive, "
                f"got {self.SECTION_TIME_WARNING_RATIO}"
            )
        if self.MAX_TOTAL_SECTION_MINUTES <= 0:
            raise ValueError(
                f"MAX_TOTAL_SECTION_MINUTES must be positive, "
                f"got {self.MAX_TOTAL_SECTION_MINUTES}"
            )
        return self

    @model_validator(mode="after")
    def validate_time_buckets(self) -> Self:
        """Validate that time bucket bounds are positive and ordered."""
        quick = self.TIME_BUCKET_QUICK_MAX_SECONDS
        medium = self.TIME_BUCKET_MEDIUM_MAX_SECONDS
        if quick <= 0:
            raise ValueError(
                f"TIME_BUCKET_QUICK_MAX_SECONDS must be positive, got {quick}"
            )
        if medium <= quick:
            raise ValueError(
                "TIME_BUCKET_MEDIUM_MAX_SECONDS must be greater than "
                f"TIME_BUCKET_QUICK_MAX_SECONDS, got {medium} <= {quick}"
            )
        return self


settings = Settings()
