"""Configuration management for TeachMatch."""

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    # Application
    APP_NAME: str = "TeachMatch"
    VERSION: str = "0.1.0"
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    ENVIRONMENT: str = Field(default="development", description="Environment")

    # API Configuration
    HOST: str = Field(default="0.0.0.0", description="Host to bind")
    PORT: int = Field(default=8000, description="Port to bind")
    ALLOWED_ORIGINS: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of CORS origins"
    )

    # Database
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./teachmatch.db",
        description="Async database connection URL"
    )

    # Auth (tokens are issued by the external auth provider)
    AUTH_JWT_SECRET: str = Field(
        default="dev-secret-key-change-in-production",
        description="Shared secret used to verify bearer tokens"
    )
    AUTH_JWT_ALGORITHM: str = Field(default="HS256", description="JWT signing algorithm")
    AUTH_JWT_AUDIENCE: Optional[str] = Field(
        default=None,
        description="Expected 'aud' claim, if the provider sets one"
    )
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(
        default=60,
        description="Lifetime of locally generated tokens (dev and tests)"
    )
    CRON_SECRET: Optional[str] = Field(
        default=None,
        description="Shared secret expected in X-Cron-Secret on the sweep trigger"
    )

    # Escalation Configuration
    REQUEST_TIMEOUT_MINUTES: int = Field(
        default=120,
        description="How long an assigned teacher has to respond"
    )
    SWEEP_BATCH_SIZE: int = Field(
        default=10,
        description="Maximum lapsed requests processed per sweep"
    )
    CANDIDATE_POOL_SIZE: int = Field(
        default=3,
        description="Ranked candidates frozen into an automated request"
    )
    SWEEP_INTERVAL_SECONDS: int = Field(
        default=300,
        description="How often the in-process scheduler sweeps"
    )
    ENABLE_SCHEDULER: bool = Field(
        default=True,
        description="Run the timeout sweep inside the API process"
    )

    # SMTP Configuration
    ENABLE_EMAIL_NOTIFICATIONS: bool = Field(
        default=False,
        description="Send e-mail alongside in-app notifications"
    )
    SMTP_HOST: str = Field(default="", description="SMTP server host")
    SMTP_PORT: int = Field(default=587, description="SMTP server port")
    SMTP_USER: str = Field(default="", description="SMTP username")
    SMTP_PASS: str = Field(default="", description="SMTP password")
    SMTP_FROM: str = Field(
        default="noreply@teachmatch.app",
        description="From email address"
    )
    SMTP_FROM_NAME: str = Field(
        default="TeachMatch",
        description="From name for emails"
    )

    # Monitoring
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    @property
    def allowed_origins(self) -> List[str]:
        """Convert comma-separated origins to list."""
        if not self.ALLOWED_ORIGINS:
            return []
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalise the log level name."""
        return v.upper()


# Global settings instance
settings = Settings()
