"""
StreamGate Backend - Application Configuration
================================================

What:  Centralized configuration management using Pydantic Settings.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides a singleton `settings` object.
Who:   Imported by every module that needs configuration values.
When:  Loaded once at module import time; validated before app starts.

Secrets:
    TELEGRAM_BOT_TOKEN and SHARED_SECRET are required to serve streams but are
    NOT enforced at import time. A process with missing secrets still starts,
    reports itself as misconfigured on /health, and answers /stream with 500.
"""

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes are grouped by concern for readability.
    """

    # ── Secrets ───────────────────────────────────────────────────────────
    # What: Bot API credential used for getFile and file downloads
    # Server-side only: never logged, never returned to a client
    telegram_bot_token: str = Field(
        default="",
        description="Telegram bot token used to resolve and download files",
    )

    # What: HMAC-SHA256 key shared with the URL signer
    shared_secret: str = Field(
        default="",
        description="Shared secret for capability token signatures",
    )

    # ── Upstream ──────────────────────────────────────────────────────────
    telegram_api_base: str = Field(default="https://api.telegram.org")

    # What: httpx timeouts for metadata and content requests
    # Read timeout applies per chunk, not to the whole stream
    upstream_connect_timeout: float = Field(default=10.0, gt=0, le=120)
    upstream_read_timeout: float = Field(default=60.0, gt=0, le=3600)

    @field_validator("telegram_api_base")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    # ── Streaming ─────────────────────────────────────────────────────────
    # What: Maximum concurrent streams served by THIS process
    # Not shared across workers or instances
    max_concurrent_streams: int = Field(default=10, ge=1, le=10_000)

    # What: Default per-stream bandwidth ceiling in bytes/second (0 = unthrottled)
    default_throttle_bps: int = Field(default=0, ge=0)

    # ── CORS ──────────────────────────────────────────────────────────────
    # Format: Comma-separated origins, "*" allows any
    cors_origins: str = Field(default="*")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=8000, ge=1024, le=65535)

    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    @property
    def is_configured(self) -> bool:
        """True when both secrets needed to serve a stream are present."""
        return bool(self.shared_secret) and bool(self.telegram_bot_token)

    def validate_required_for_production(self) -> None:
        """
        What:  Validates that critical settings are configured.
        When:  Called during app startup (lifespan).
        How:   Checks each required field and raises ValueError with guidance.
        """
        errors = []
        if not self.telegram_bot_token:
            errors.append(
                "TELEGRAM_BOT_TOKEN is not set. "
                "Create a bot with @BotFather and copy its token."
            )
        if not self.shared_secret:
            errors.append(
                "SHARED_SECRET is not set. "
                "Use the same value as the service that signs stream URLs."
            )
        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )


# Singleton instance, imported throughout the application
settings = Settings()
