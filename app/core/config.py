"""
app/core/config.py

Purpose: Application configuration

- Loads environment variables
- Centralizes config values (bot token, admin id, deposit limits, anti-spam)
- Falls back to safe defaults for malformed numeric values
- Validates configuration on startup
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, Literal


# Defaults used when an env value is missing or unusable
DEFAULT_SPAM_LIMIT = 5
DEFAULT_SPAM_WINDOW_MS = 5000
DEFAULT_DEPOSIT_MIN = 10000
DEFAULT_DEPOSIT_MAX = 10000000
DEFAULT_PAYMENT_TTL_MINUTES = 15
DEFAULT_SESSION_TTL_SECONDS = 600
DEFAULT_KV_MAX_CAS_ATTEMPTS = 5


def _positive_int(value, default: int) -> int:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Validates all required configs on startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # Telegram
    BOT_TOKEN: str = Field(
        default="",
        description="Telegram Bot API token"
    )
    TELEGRAM_API_BASE: str = Field(
        default="https://api.telegram.org",
        description="Telegram Bot API base URL"
    )
    TELEGRAM_TIMEOUT: float = Field(
        default=10.0,
        description="Timeout in seconds for Bot API calls"
    )
    WEBHOOK_SECRET: Optional[str] = Field(
        default=None,
        description="Expected X-Telegram-Bot-Api-Secret-Token header value"
    )

    # Shop identity
    ADMIN_ID: str = Field(
        default="",
        description="Telegram user id of the single shop admin"
    )
    ADMIN_USERNAME: str = Field(
        default="",
        description="Admin @username shown to customers"
    )
    BOT_NAME: str = Field(
        default="Nexus Shop",
        description="Bot display name"
    )
    LOG_CHANNEL_ID: Optional[str] = Field(
        default=None,
        description="Chat id of the audit log channel (overridable with /setnotif)"
    )

    # Deposits
    BONUS_PERCENTAGE: float = Field(
        default=0.0,
        description="Initial deposit bonus percentage (seeded into the config table)"
    )
    DEPOSIT_MIN: int = Field(
        default=DEFAULT_DEPOSIT_MIN,
        description="Minimum deposit nominal"
    )
    DEPOSIT_MAX: int = Field(
        default=DEFAULT_DEPOSIT_MAX,
        description="Maximum deposit nominal"
    )
    PAYMENT_TTL_MINUTES: int = Field(
        default=DEFAULT_PAYMENT_TTL_MINUTES,
        description="Minutes before a pending deposit expires"
    )
    QRIS_IMAGE_URL: Optional[str] = Field(
        default=None,
        description="Static QR image sent with deposit instructions"
    )

    # Anti-spam
    SPAM_LIMIT: int = Field(
        default=DEFAULT_SPAM_LIMIT,
        description="Messages allowed inside the spam window"
    )
    SPAM_WINDOW_MS: int = Field(
        default=DEFAULT_SPAM_WINDOW_MS,
        description="Spam window length in milliseconds"
    )

    # Session Management
    SESSION_TTL_SECONDS: int = Field(
        default=DEFAULT_SESSION_TTL_SECONDS,
        description="Idle seconds before an in-memory session is evicted"
    )

    # Persistence
    KV_BACKEND: Literal["mongo", "memory"] = Field(
        default="mongo",
        description="Key-value backend"
    )
    KV_MAX_CAS_ATTEMPTS: int = Field(
        default=DEFAULT_KV_MAX_CAS_ATTEMPTS,
        description="Compare-and-swap retries before a write is given up"
    )
    MONGODB_URL: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI"
    )
    MONGODB_DB_NAME: str = Field(
        default="nexusshop",
        description="MongoDB database name"
    )

    # Application
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    API_PREFIX: str = Field(
        default="/api/v1",
        description="API route prefix"
    )
    CORS_ORIGINS: list = Field(
        default=["*"],
        description="Allowed CORS origins"
    )

    @field_validator("SPAM_LIMIT", mode="before")
    @classmethod
    def coerce_spam_limit(cls, v):
        return _positive_int(v, DEFAULT_SPAM_LIMIT)

    @field_validator("SPAM_WINDOW_MS", mode="before")
    @classmethod
    def coerce_spam_window(cls, v):
        return _positive_int(v, DEFAULT_SPAM_WINDOW_MS)

    @field_validator("DEPOSIT_MIN", mode="before")
    @classmethod
    def coerce_deposit_min(cls, v):
        return _positive_int(v, DEFAULT_DEPOSIT_MIN)

    @field_validator("DEPOSIT_MAX", mode="before")
    @classmethod
    def coerce_deposit_max(cls, v):
        return _positive_int(v, DEFAULT_DEPOSIT_MAX)

    @field_validator("PAYMENT_TTL_MINUTES", mode="before")
    @classmethod
    def coerce_payment_ttl(cls, v):
        return _positive_int(v, DEFAULT_PAYMENT_TTL_MINUTES)

    @field_validator("SESSION_TTL_SECONDS", mode="before")
    @classmethod
    def coerce_session_ttl(cls, v):
        return _positive_int(v, DEFAULT_SESSION_TTL_SECONDS)

    @field_validator("KV_MAX_CAS_ATTEMPTS", mode="before")
    @classmethod
    def coerce_cas_attempts(cls, v):
        return _positive_int(v, DEFAULT_KV_MAX_CAS_ATTEMPTS)

    @field_validator("BONUS_PERCENTAGE", mode="before")
    @classmethod
    def coerce_bonus(cls, v):
        """Negative or unparseable bonus means no bonus."""
        try:
            value = float(str(v).strip())
        except (TypeError, ValueError):
            return 0.0
        return value if value >= 0 else 0.0

    @field_validator("ADMIN_ID", mode="before")
    @classmethod
    def normalize_admin_id(cls, v):
        return str(v).strip() if v is not None else ""

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    @property
    def admin_contact(self) -> str:
        """Admin handle shown in customer-facing messages."""
        if self.ADMIN_USERNAME:
            return f"@{self.ADMIN_USERNAME.lstrip('@')}"
        return self.ADMIN_ID or "admin"


# Global settings instance
settings = Settings()


def validate_settings(config: Optional[Settings] = None):
    """
    Validates critical settings on application startup.
    Raises ValueError if any required setting is missing or invalid.
    """
    config = config or settings
    errors = []

    if config.KV_BACKEND == "mongo" and not config.MONGODB_URL:
        errors.append("MONGODB_URL is required")

    if config.DEPOSIT_MIN > config.DEPOSIT_MAX:
        errors.append("DEPOSIT_MIN must not exceed DEPOSIT_MAX")

    # Production-specific validations
    if config.is_production:
        if not config.BOT_TOKEN:
            errors.append("BOT_TOKEN is required in production")
        if not config.ADMIN_ID:
            errors.append("ADMIN_ID is required in production")
        if config.KV_BACKEND == "memory":
            errors.append("KV_BACKEND=memory is not allowed in production")

    if errors:
        raise ValueError(f"Configuration validation failed: {', '.join(errors)}")

    return True
