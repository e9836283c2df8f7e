"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the application.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Persistence (key-value store) Configuration
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    STORE_KEY_PREFIX: str = Field(default="slimfit")

    # Team broker (pub/sub transport) Configuration
    BROKER_URL: str = Field(default="redis://localhost:6379/1")
    BROKER_KEEPALIVE_S: int = Field(default=60, ge=1)
    BROKER_CLEAN_SESSION: bool = Field(default=True)
    BROKER_RECONNECT_INTERVAL_MS: int = Field(default=1000, ge=100)
    # How often the API event loop drains inbound broker messages.
    BROKER_PUMP_INTERVAL_S: float = Field(default=0.2, gt=0)
    CLIENT_ID_PREFIX: str = Field(default="slimfit")

    # Plan / check-in rules
    DEFAULT_PLAN_WEEKS: int = Field(default=8, ge=1, le=24)
    STARTING_COINS: int = Field(default=1000, ge=0)
    PENALTY_COINS: int = Field(default=50, ge=0)
    ALLOWED_DEVIATION_KG: float = Field(default=0.5, ge=0)
    REFLECTION_THRESHOLD_KG: float = Field(default=0.2, ge=0)

    # Team chat / presence
    CHAT_HISTORY_LIMIT: int = Field(default=50, ge=1)
    # None keeps a member's last snapshot until it is overwritten.
    PRESENCE_STALE_AFTER_S: Optional[int] = Field(default=None, ge=1)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    CORS_ORIGINS: Optional[str] = Field(default=None)


# Global settings instance
settings = Settings()
