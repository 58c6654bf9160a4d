"""Application configuration using Pydantic Settings"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=Path(__file__).parent.parent.parent / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Twitch app credentials (Helix stream lookup)
    client_id: str = Field(..., description="Twitch OAuth Client ID")
    client_secret: str = Field(..., description="Twitch OAuth Client Secret")
    twitch_webhook_secret: str = Field(..., description="EventSub webhook HMAC secret")

    # Discord bot (message delivery)
    discord_bot_token: str = Field(..., description="Discord bot token for channel messages")

    # Database
    database_url: str = Field(..., description="PostgreSQL database URL")
    database_ssl: bool = Field(default=True, description="Require TLS for database connections")

    # Environment
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    webhook_path: str = Field(default="/webhooks/twitch", description="EventSub callback path")

    # Webhook verification
    signature_max_age_seconds: int = Field(default=600, description="Replay window in seconds")
    idempotency_ttl_seconds: int = Field(default=900, description="Seen message-id lifetime")
    idempotency_sweep_interval_seconds: int = Field(default=60, description="Guard sweep period")

    # Rate limiting
    webhook_rate_per_second: float = Field(default=100.0, description="Webhook sustained rate")
    webhook_burst: int = Field(default=200, description="Webhook bucket capacity")
    caller_rate_per_minute: float = Field(default=50.0, description="Per-caller sustained rate")
    caller_burst: int = Field(default=50, description="Per-caller bucket capacity")
    global_rate_per_second: float = Field(default=1000.0, description="Global sustained rate")
    global_burst: int = Field(default=2000, description="Global bucket capacity")
    rate_limit_idle_seconds: int = Field(default=600, description="Evict limiter keys idle this long")
    rate_limit_sweep_interval_seconds: int = Field(default=300, description="Limiter sweep period")

    # Delivery
    delivery_timeout_seconds: float = Field(default=8.0, description="Per-recipient send budget")
    http_timeout_seconds: float = Field(default=10.0, description="Outbound HTTP client timeout")
    thumbnail_resolution: str = Field(default="1920x1080", description="Stream thumbnail size")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning(f"Invalid log level '{v}', defaulting to INFO")
            return "INFO"
        return v_upper

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL uses a PostgreSQL scheme"""
        if not v.startswith(("postgres://", "postgresql://")):
            raise ValueError("database_url must start with postgres:// or postgresql://")
        return v

    @field_validator("webhook_path")
    @classmethod
    def validate_webhook_path(cls, v: str) -> str:
        if not v.startswith("/"):
            return f"/{v}"
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment"""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()  # type: ignore[call-arg]
